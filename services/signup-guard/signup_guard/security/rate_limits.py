"""Declarative auth rate-limit policy consumed by the external limiter."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class RateLimitRule:
    """At most ``max`` requests per ``window`` seconds."""

    window: int
    max: int

    def as_dict(self) -> dict[str, int]:
        return {"window": self.window, "max": self.max}


AUTH_RATE_LIMIT_RULES: Mapping[str, RateLimitRule] = MappingProxyType(
    {
        "/sign-up/*": RateLimitRule(window=15 * 60, max=3),
        "/sign-in/*": RateLimitRule(window=5 * 60, max=5),
        "/forget-password": RateLimitRule(window=10 * 60, max=3),
    }
)


@dataclass(frozen=True, slots=True)
class AuthRateLimitConfig:
    enabled: bool = True
    storage: str = "database"
    window: int = 60
    max: int = 60
    custom_rules: Mapping[str, RateLimitRule] = field(default_factory=lambda: AUTH_RATE_LIMIT_RULES)

    def as_dict(self) -> dict[str, Any]:
        """Render the table in the shape the limiter's configuration expects."""
        return {
            "enabled": self.enabled,
            "storage": self.storage,
            "window": self.window,
            "max": self.max,
            "customRules": {path: rule.as_dict() for path, rule in self.custom_rules.items()},
        }


def build_auth_rate_limit_config() -> AuthRateLimitConfig:
    """Return the static throttling table: persistent storage, 60 requests per 60s globally."""
    return AuthRateLimitConfig()
