"""Signup abuse policy: configuration resolution and the pure decision evaluator."""

from __future__ import annotations

import os
import re
from typing import Mapping

from .contracts import (
    SIGN_UP_PATH,
    SignupAbusePolicyConfig,
    SignupAttempt,
    SignupDecision,
    SignupDenialReason,
    SignupPolicyMode,
)
from .errors import INVALID_INVITE_CODE_MESSAGE, SIGN_UP_BLOCKED_MESSAGE

PRODUCTION_ENV = "production"
MONITORED_SIGNUP_PATHS = frozenset({SIGN_UP_PATH})

_ALLOWLIST_SEPARATORS = re.compile(r"[\n,;]+")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def parse_allowlisted_signup_emails(value: str | None) -> tuple[str, ...]:
    """Split an allowlist blob into unique lower-cased emails in first-seen order."""
    if not value:
        return ()

    seen: dict[str, None] = {}
    for segment in _ALLOWLIST_SEPARATORS.split(value):
        email = normalize_email(segment)
        if email:
            seen.setdefault(email, None)
    return tuple(seen)


def _resolve_signup_policy_mode(override: str | None, is_production: bool) -> SignupPolicyMode:
    fallback = SignupPolicyMode.allowlist if is_production else SignupPolicyMode.open
    configured = (override or "").strip().lower()
    if not configured:
        return fallback
    try:
        return SignupPolicyMode(configured)
    except ValueError:
        return fallback


def resolve_signup_abuse_policy_config(
    runtime_env: Mapping[str, str | None] | None = None,
) -> SignupAbusePolicyConfig:
    """Derive the active signup policy from environment-style configuration.

    Unrecognised ``SIGNUP_POLICY`` values fall back to the environment default,
    which in production is always ``allowlist``.
    """
    if runtime_env is None:
        runtime_env = os.environ

    is_production = runtime_env.get("APP_ENV") == PRODUCTION_ENV
    return SignupAbusePolicyConfig(
        is_production=is_production,
        signup_policy_mode=_resolve_signup_policy_mode(runtime_env.get("SIGNUP_POLICY"), is_production),
        allowlisted_emails=frozenset(parse_allowlisted_signup_emails(runtime_env.get("SIGNUP_ALLOWLIST"))),
        local_invite_code=runtime_env.get("SIGNUP_INVITE_CODE"),
    )


def evaluate_signup_attempt(attempt: SignupAttempt, config: SignupAbusePolicyConfig) -> SignupDecision:
    """Map a signup attempt to an allow/deny decision without side effects."""
    if attempt.path not in MONITORED_SIGNUP_PATHS:
        return SignupDecision.allow()

    # Production relies on allowlist/invite enforcement outside this evaluator.
    if config.is_production:
        return SignupDecision.allow()

    if (
        config.signup_policy_mode is SignupPolicyMode.allowlist
        and normalize_email(attempt.email) not in config.allowlisted_emails
    ):
        return SignupDecision.deny(SignupDenialReason.allowlist_denied, SIGN_UP_BLOCKED_MESSAGE)

    if config.local_invite_code is not None and attempt.invite_code_header != config.local_invite_code:
        return SignupDecision.deny(SignupDenialReason.invalid_invite_code, INVALID_INVITE_CODE_MESSAGE)

    return SignupDecision.allow()
