"""Signup onboarding service coordinating abuse policy and organization assignment."""

from __future__ import annotations

import logging
from typing import Any, Mapping, NoReturn

from .collaborators import (
    FinalizedJoinSignup,
    OrganizationSignupGateway,
    ReservationDenied,
    SignupReconciliationRecorder,
)
from .context import SignupContext
from .contracts import (
    ADMIN_CREATE_USER_PATH,
    ORG_CODE_HEADER,
    ORG_MODE_HEADER,
    ORG_NAME_HEADER,
    CreateProvisioned,
    JoinReserved,
    OrganizationAssignmentData,
    PendingAccountRecord,
    SignupAbusePolicyConfig,
    SignupDecision,
    SignupDenialReason,
    SignupRequest,
)
from .errors import (
    AllowlistDenied,
    InvalidInviteCode,
    MissingOrganizationAssignment,
    OrganizationSignupDenied,
    SignupDenied,
)
from .policy import MONITORED_SIGNUP_PATHS, evaluate_signup_attempt
from ..metrics import JOIN_FINALIZATIONS, ORGANIZATION_ASSIGNMENTS, SIGNUP_DECISIONS

logger = logging.getLogger(__name__)

JOIN_MODE = "join"
CREATE_MODE = "create"


def email_domain(email: str | None) -> str | None:
    """Return the lower-cased domain of ``email`` for log fields."""
    if not email:
        return None
    _, at, domain = email.rpartition("@")
    if not at or not domain:
        return None
    return domain.lower()


def client_ip(headers: Mapping[str, str] | None) -> str | None:
    if not headers:
        return None
    forwarded_for = headers.get("x-forwarded-for")
    if not forwarded_for:
        return headers.get("x-real-ip")
    return forwarded_for.split(",")[0].strip() or None


def _denial_error(decision: SignupDecision) -> SignupDenied:
    if decision.reason is SignupDenialReason.invalid_invite_code:
        return InvalidInviteCode(decision.message)
    return AllowlistDenied(decision.message)


def _extract_signed_up_user(returned: Mapping[str, Any] | None) -> tuple[str, str | None] | None:
    if not isinstance(returned, Mapping):
        return None
    user = returned.get("user")
    if not isinstance(user, Mapping):
        return None
    user_id = user.get("id")
    if not isinstance(user_id, str) or not user_id:
        return None
    email = user.get("email")
    return user_id, email if isinstance(email, str) else None


def materialize_organization_assignment(
    record: PendingAccountRecord,
    *,
    path: str,
    context: SignupContext,
) -> OrganizationAssignmentData:
    """Emit the organization fields for a new account record, failing closed.

    The guard's assignment wins. Only the administrative create-user path may
    instead supply explicit fields on the record, which pass through unchanged.
    """
    assignment = context.organization_assignment
    if assignment is not None:
        ORGANIZATION_ASSIGNMENTS.labels(source=assignment.source).inc()
        return OrganizationAssignmentData(
            organization_id=assignment.organization_id,
            role=assignment.role,
        )

    if path == ADMIN_CREATE_USER_PATH and record.organization_id and record.role:
        ORGANIZATION_ASSIGNMENTS.labels(source="explicit").inc()
        return OrganizationAssignmentData(organization_id=record.organization_id, role=record.role)

    logger.error(
        "auth_signup_missing_organization_assignment path=%s email_domain=%s",
        path,
        email_domain(record.email),
    )
    raise MissingOrganizationAssignment()


class SignupOnboardingService:
    """Runs the pre-creation guard, record materializer and post-creation finalizer."""

    def __init__(
        self,
        gateway: OrganizationSignupGateway,
        config: SignupAbusePolicyConfig,
        reconciliation_recorder: SignupReconciliationRecorder | None = None,
    ) -> None:
        """Store the collaborators and the policy evaluated on every signup."""
        self._gateway = gateway
        self._config = config
        self._reconciliation_recorder = reconciliation_recorder

    async def guard_signup(self, request: SignupRequest, context: SignupContext) -> None:
        """Evaluate abuse policy, then reserve or provision the declared organization.

        Raises
        ------
        SignupDenied
            When the policy or the organization collaborator rejects the attempt.
            Collaborator exceptions propagate unchanged so the host aborts creation.
        """
        decision = evaluate_signup_attempt(request.to_attempt(), self._config)
        if not decision.allowed:
            SIGNUP_DECISIONS.labels(outcome="denied", reason=decision.reason.value).inc()
            logger.warning(
                "auth_signup_blocked reason=%s email_domain=%s ip=%s signup_policy_mode=%s is_production=%s",
                decision.reason.value,
                email_domain(request.email),
                client_ip(request.headers),
                self._config.signup_policy_mode.value,
                self._config.is_production,
            )
            raise _denial_error(decision)

        if request.path not in MONITORED_SIGNUP_PATHS:
            return

        mode = request.header(ORG_MODE_HEADER)
        if mode is not None:
            mode = mode.lower()
            if mode == JOIN_MODE:
                await self._reserve_join(request, context)
            elif mode == CREATE_MODE:
                await self._provision_create(request, context)
            else:
                self._reject_organization_intent(request, "invalid_org_mode")

        SIGNUP_DECISIONS.labels(outcome="allowed", reason="").inc()

    async def _reserve_join(self, request: SignupRequest, context: SignupContext) -> None:
        organization_code = request.header(ORG_CODE_HEADER)
        if organization_code is None:
            self._reject_organization_intent(request, "invalid_org_code")

        outcome = await self._gateway.reserve_organization_join_signup(
            organization_code=organization_code,
            email=request.email,
        )
        if isinstance(outcome, ReservationDenied):
            self._reject_organization_intent(request, outcome.reason)

        context.record_assignment(
            JoinReserved(
                reservation_id=outcome.reservation_id,
                organization_id=outcome.organization_id,
                role=outcome.target_role,
            )
        )
        logger.info(
            "auth_signup_join_reserved reservation_id=%s organization_id=%s",
            outcome.reservation_id,
            outcome.organization_id,
        )

    async def _provision_create(self, request: SignupRequest, context: SignupContext) -> None:
        organization_name = request.header(ORG_NAME_HEADER)
        if organization_name is None:
            self._reject_organization_intent(request, "invalid_org_name")

        provisioned = await self._gateway.prepare_organization_create_signup(
            organization_name=organization_name,
        )
        if provisioned is None:
            self._reject_organization_intent(request, "invalid_org_name")

        context.record_assignment(CreateProvisioned(organization_id=provisioned.organization_id))
        logger.info(
            "auth_signup_organization_provisioned organization_id=%s slug=%s",
            provisioned.organization_id,
            provisioned.organization_slug,
        )

    def _reject_organization_intent(self, request: SignupRequest, reason: str) -> NoReturn:
        SIGNUP_DECISIONS.labels(outcome="denied", reason=reason).inc()
        logger.warning(
            "auth_signup_organization_denied reason=%s email_domain=%s ip=%s",
            reason,
            email_domain(request.email),
            client_ip(request.headers),
        )
        raise OrganizationSignupDenied(reason)

    def materialize_assignment(
        self,
        record: PendingAccountRecord,
        *,
        path: str,
        context: SignupContext,
    ) -> OrganizationAssignmentData:
        """Record-construction hook; see :func:`materialize_organization_assignment`."""
        return materialize_organization_assignment(record, path=path, context=context)

    async def finalize_signup(
        self,
        *,
        path: str,
        headers: Mapping[str, str] | None,
        context: SignupContext,
    ) -> FinalizedJoinSignup | None:
        """Consume the join reservation once the host has created the account.

        Only join signups are finalized, whatever path the host mounted the
        signup route under. The reservation is handed to the gateway at most
        once per context; if the host never produced a user the reservation is
        left for the gateway's expiry.
        """
        assignment = context.organization_assignment
        if not isinstance(assignment, JoinReserved) or context.join_finalized:
            return None

        signed_up_user = _extract_signed_up_user(context.returned)
        if signed_up_user is None:
            JOIN_FINALIZATIONS.labels(result="missing_user").inc()
            logger.warning(
                "auth_signup_onboarding_missing_user reservation_id=%s path=%s ip=%s",
                assignment.reservation_id,
                path,
                client_ip(headers),
            )
            return None

        user_id, email = signed_up_user
        context.join_finalized = True
        finalized = await self._gateway.finalize_organization_join_signup(
            reservation_id=assignment.reservation_id,
            user_id=user_id,
        )
        if finalized is None:
            JOIN_FINALIZATIONS.labels(result="not_consumed").inc()
            logger.warning(
                "auth_signup_onboarding_not_consumed reservation_id=%s user_id=%s email_domain=%s",
                assignment.reservation_id,
                user_id,
                email_domain(email),
            )
            if self._reconciliation_recorder is not None:
                await self._reconciliation_recorder.record_signup_finalize_reconciliation(
                    reservation_id=assignment.reservation_id,
                    user_id=user_id,
                    email=email,
                )
            return None

        JOIN_FINALIZATIONS.labels(result="consumed").inc()
        logger.info(
            "auth_signup_onboarding_consumed reservation_id=%s user_id=%s organization_id=%s",
            finalized.reservation_id,
            user_id,
            finalized.organization_id,
        )
        return finalized
