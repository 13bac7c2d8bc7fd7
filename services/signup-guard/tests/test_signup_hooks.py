"""Tests for the guard -> materializer -> finalizer signup flow."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from prometheus_client import REGISTRY

from signup_guard.domain.collaborators import (
    FinalizedJoinSignup,
    ProvisionedOrganization,
    ReservationAllowed,
    ReservationDenied,
)
from signup_guard.domain.context import SignupContext
from signup_guard.domain.contracts import (
    CreateProvisioned,
    JoinReserved,
    OrganizationAssignmentData,
    PendingAccountRecord,
    SignupAbusePolicyConfig,
    SignupPolicyMode,
    SignupRequest,
)
from signup_guard.domain.errors import (
    AllowlistDenied,
    AssignmentAlreadyRecorded,
    InvalidInviteCode,
    MissingOrganizationAssignment,
    OrganizationSignupDenied,
)
from signup_guard.domain.service import SignupOnboardingService, materialize_organization_assignment

SIGN_UP = "/sign-up/email"
RESERVATION_ID = "11111111-1111-4111-8111-111111111111"
ORGANIZATION_ID = "aaaaaaaa-aaaa-4aaa-8aaa-aaaaaaaaaaaa"


def production_config() -> SignupAbusePolicyConfig:
    return SignupAbusePolicyConfig(
        is_production=True,
        signup_policy_mode=SignupPolicyMode.allowlist,
    )


class FakeGateway:
    """Organization gateway whose calls are recorded by AsyncMocks."""

    def __init__(self) -> None:
        self.reserve_organization_join_signup = AsyncMock(
            return_value=ReservationAllowed(
                reservation_id=RESERVATION_ID,
                organization_id=ORGANIZATION_ID,
                target_role="driver",
            )
        )
        self.prepare_organization_create_signup = AsyncMock(
            return_value=ProvisionedOrganization(
                organization_id="org-create",
                organization_slug="acme-logistics",
                organization_join_code="A1B2C3D4E5F6",
            )
        )
        self.finalize_organization_join_signup = AsyncMock(
            return_value=FinalizedJoinSignup(
                reservation_id=RESERVATION_ID,
                organization_id=ORGANIZATION_ID,
                target_role="driver",
            )
        )


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def service(gateway) -> SignupOnboardingService:
    return SignupOnboardingService(gateway, production_config())


def join_request(email: str = "joiner@example.test", code: str | None = "ORG-JOIN-123") -> SignupRequest:
    headers = {"x-signup-org-mode": "join"}
    if code is not None:
        headers["x-signup-org-code"] = code
    return SignupRequest(path=SIGN_UP, email=email, headers=headers)


@pytest.mark.asyncio
async def test_join_flow_reserves_materializes_and_finalizes_once(service, gateway):
    context = SignupContext()

    await service.guard_signup(join_request(email="driver@example.test"), context)
    gateway.reserve_organization_join_signup.assert_awaited_once_with(
        organization_code="ORG-JOIN-123", email="driver@example.test"
    )
    assert context.organization_assignment == JoinReserved(
        reservation_id=RESERVATION_ID,
        organization_id=ORGANIZATION_ID,
        role="driver",
    )

    data = service.materialize_assignment(
        PendingAccountRecord(email="driver@example.test"), path=SIGN_UP, context=context
    )
    assert data == OrganizationAssignmentData(organization_id=ORGANIZATION_ID, role="driver")
    assert data.as_dict() == {"data": {"organizationId": ORGANIZATION_ID, "role": "driver"}}

    context.returned = {"user": {"id": "driver-1", "email": "driver@example.test"}}
    finalized = await service.finalize_signup(path=SIGN_UP, headers={}, context=context)
    again = await service.finalize_signup(path=SIGN_UP, headers={}, context=context)

    gateway.finalize_organization_join_signup.assert_awaited_once_with(
        reservation_id=RESERVATION_ID, user_id="driver-1"
    )
    assert finalized.organization_id == ORGANIZATION_ID
    assert again is None


@pytest.mark.asyncio
async def test_create_flow_provisions_once_and_assigns_manager(service, gateway):
    context = SignupContext()
    request = SignupRequest(
        path=SIGN_UP,
        email="owner@example.test",
        headers={"x-signup-org-mode": "create", "x-signup-org-name": "Acme Logistics"},
    )

    await service.guard_signup(request, context)
    data = service.materialize_assignment(
        PendingAccountRecord(email="owner@example.test"), path=SIGN_UP, context=context
    )

    gateway.prepare_organization_create_signup.assert_awaited_once_with(organization_name="Acme Logistics")
    assert data == OrganizationAssignmentData(organization_id="org-create", role="manager")
    assert context.organization_assignment == CreateProvisioned(organization_id="org-create")
    assert context.organization_assignment.source == "create_provision"

    context.returned = {"user": {"id": "owner-1", "email": "owner@example.test"}}
    assert await service.finalize_signup(path=SIGN_UP, headers={}, context=context) is None
    gateway.finalize_organization_join_signup.assert_not_awaited()
    gateway.reserve_organization_join_signup.assert_not_awaited()


@pytest.mark.asyncio
async def test_guard_without_org_intent_leaves_context_empty(service, gateway):
    context = SignupContext()
    await service.guard_signup(SignupRequest(path=SIGN_UP, email="solo@example.test"), context)

    assert context.organization_assignment is None
    gateway.reserve_organization_join_signup.assert_not_awaited()
    gateway.prepare_organization_create_signup.assert_not_awaited()


@pytest.mark.asyncio
async def test_guard_ignores_org_intent_on_other_paths(service, gateway):
    context = SignupContext()
    request = SignupRequest(
        path="/sign-in/email",
        email="joiner@example.test",
        headers={"x-signup-org-mode": "join", "x-signup-org-code": "ORG-JOIN-123"},
    )
    await service.guard_signup(request, context)

    assert context.organization_assignment is None
    gateway.reserve_organization_join_signup.assert_not_awaited()


@pytest.mark.asyncio
async def test_guard_raises_policy_denial_before_touching_collaborators(gateway):
    config = SignupAbusePolicyConfig(
        is_production=False,
        signup_policy_mode=SignupPolicyMode.allowlist,
        allowlisted_emails=frozenset({"approved@driver.test"}),
    )
    service = SignupOnboardingService(gateway, config)
    context = SignupContext()

    with pytest.raises(AllowlistDenied) as exc_info:
        await service.guard_signup(join_request(email="new-driver@driver.test"), context)

    assert exc_info.value.reason == "allowlist_denied"
    assert context.organization_assignment is None
    gateway.reserve_organization_join_signup.assert_not_awaited()


@pytest.mark.asyncio
async def test_guard_raises_invalid_invite_code(gateway):
    config = SignupAbusePolicyConfig(
        is_production=False,
        signup_policy_mode=SignupPolicyMode.open,
        local_invite_code="dev-only-invite",
    )
    service = SignupOnboardingService(gateway, config)
    request = SignupRequest(path=SIGN_UP, email="anyone@driver.test", headers={"x-invite-code": "wrong-code"})

    with pytest.raises(InvalidInviteCode) as exc_info:
        await service.guard_signup(request, SignupContext())
    assert exc_info.value.reason == "invalid_invite_code"


@pytest.mark.asyncio
async def test_guard_rejects_denied_reservation(service, gateway):
    gateway.reserve_organization_join_signup.return_value = ReservationDenied(reason="approval_not_found")
    context = SignupContext()

    with pytest.raises(OrganizationSignupDenied) as exc_info:
        await service.guard_signup(join_request(), context)

    assert exc_info.value.reason == "approval_not_found"
    assert context.organization_assignment is None


@pytest.mark.asyncio
async def test_guard_rejects_join_without_code(service, gateway):
    with pytest.raises(OrganizationSignupDenied) as exc_info:
        await service.guard_signup(join_request(code="   "), SignupContext())

    assert exc_info.value.reason == "invalid_org_code"
    gateway.reserve_organization_join_signup.assert_not_awaited()


@pytest.mark.asyncio
async def test_guard_rejects_unrecognised_org_mode(service):
    request = SignupRequest(path=SIGN_UP, email="x@example.test", headers={"x-signup-org-mode": "merge"})
    with pytest.raises(OrganizationSignupDenied) as exc_info:
        await service.guard_signup(request, SignupContext())
    assert exc_info.value.reason == "invalid_org_mode"


@pytest.mark.asyncio
async def test_guard_rejects_create_when_name_refused(service, gateway):
    gateway.prepare_organization_create_signup.return_value = None
    request = SignupRequest(
        path=SIGN_UP,
        email="owner@example.test",
        headers={"x-signup-org-mode": "create", "x-signup-org-name": "A"},
    )
    context = SignupContext()

    with pytest.raises(OrganizationSignupDenied) as exc_info:
        await service.guard_signup(request, context)

    assert exc_info.value.reason == "invalid_org_name"
    assert context.organization_assignment is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "headers",
    [
        {"x-signup-org-mode": "create", "x-signup-org-name": "  "},
        {"x-signup-org-mode": "create"},
    ],
    ids=["blank-name", "missing-name"],
)
async def test_guard_rejects_create_without_usable_name(service, gateway, headers):
    context = SignupContext()
    request = SignupRequest(path=SIGN_UP, email="owner@example.test", headers=headers)

    with pytest.raises(OrganizationSignupDenied) as exc_info:
        await service.guard_signup(request, context)

    assert exc_info.value.reason == "invalid_org_name"
    assert context.organization_assignment is None
    gateway.prepare_organization_create_signup.assert_not_awaited()


@pytest.mark.asyncio
async def test_join_role_from_reservation_is_passed_through(service, gateway):
    gateway.reserve_organization_join_signup.return_value = ReservationAllowed(
        reservation_id=RESERVATION_ID,
        organization_id=ORGANIZATION_ID,
        target_role="worker",
    )
    context = SignupContext()

    await service.guard_signup(join_request(), context)
    data = service.materialize_assignment(
        PendingAccountRecord(email="joiner@example.test"), path=SIGN_UP, context=context
    )

    assert context.organization_assignment.role == "worker"
    assert data.as_dict() == {"data": {"organizationId": ORGANIZATION_ID, "role": "worker"}}


def decision_count(outcome: str, reason: str) -> float:
    value = REGISTRY.get_sample_value(
        "signup_guard_decisions_total", {"outcome": outcome, "reason": reason}
    )
    return value or 0.0


@pytest.mark.asyncio
async def test_rejected_org_intent_is_only_counted_as_denied(service):
    allowed_before = decision_count("allowed", "")
    denied_before = decision_count("denied", "invalid_org_mode")
    request = SignupRequest(path=SIGN_UP, email="x@example.test", headers={"x-signup-org-mode": "merge"})

    with pytest.raises(OrganizationSignupDenied):
        await service.guard_signup(request, SignupContext())

    assert decision_count("allowed", "") == allowed_before
    assert decision_count("denied", "invalid_org_mode") == denied_before + 1


@pytest.mark.asyncio
async def test_collaborator_failures_propagate_unchanged(service, gateway):
    failure = ConnectionError("reservation store unavailable")
    gateway.reserve_organization_join_signup.side_effect = failure
    context = SignupContext()

    with pytest.raises(ConnectionError) as exc_info:
        await service.guard_signup(join_request(), context)

    assert exc_info.value is failure
    assert context.organization_assignment is None


@pytest.mark.asyncio
async def test_context_assignment_is_write_once(service):
    context = SignupContext()
    await service.guard_signup(join_request(), context)
    first = context.organization_assignment

    with pytest.raises(AssignmentAlreadyRecorded):
        context.record_assignment(CreateProvisioned(organization_id="org-other"))
    assert context.organization_assignment is first


def test_materializer_fails_closed_without_assignment():
    with pytest.raises(MissingOrganizationAssignment):
        materialize_organization_assignment(
            PendingAccountRecord(email="new-user@example.test"),
            path="/admin/create-user",
            context=SignupContext(),
        )

    with pytest.raises(MissingOrganizationAssignment):
        materialize_organization_assignment(
            PendingAccountRecord(email="new-user@example.test", organization_id="org-1", role="driver"),
            path=SIGN_UP,
            context=SignupContext(),
        )


def test_materializer_passes_explicit_admin_assignment_through():
    data = materialize_organization_assignment(
        PendingAccountRecord(
            email="new-user@example.test",
            organization_id="22222222-2222-4222-8222-222222222222",
            role="user",
        ),
        path="/admin/create-user",
        context=SignupContext(),
    )
    assert data == OrganizationAssignmentData(
        organization_id="22222222-2222-4222-8222-222222222222", role="user"
    )


def test_materializer_prefers_context_over_record_fields():
    context = SignupContext()
    context.record_assignment(CreateProvisioned(organization_id="org-create"))

    data = materialize_organization_assignment(
        PendingAccountRecord(email="owner@example.test", organization_id="org-forged", role="admin"),
        path="/admin/create-user",
        context=context,
    )
    assert data == OrganizationAssignmentData(organization_id="org-create", role="manager")


@pytest.mark.asyncio
async def test_finalizer_skips_when_user_missing(service, gateway):
    context = SignupContext()
    await service.guard_signup(join_request(), context)

    context.returned = {"error": "failed"}
    assert await service.finalize_signup(path=SIGN_UP, headers={}, context=context) is None
    gateway.finalize_organization_join_signup.assert_not_awaited()
    assert context.join_finalized is False


@pytest.mark.asyncio
async def test_finalizer_consumes_reservation_under_mounted_path(service, gateway):
    context = SignupContext()
    await service.guard_signup(join_request(), context)
    context.returned = {"user": {"id": "driver-2", "email": "driver2@example.test"}}

    finalized = await service.finalize_signup(path="/api/auth/sign-up/email", headers={}, context=context)

    assert finalized is not None
    gateway.finalize_organization_join_signup.assert_awaited_once_with(
        reservation_id=RESERVATION_ID, user_id="driver-2"
    )


@pytest.mark.asyncio
async def test_finalizer_records_reconciliation_when_not_consumed(gateway):
    recorder = AsyncMock()
    service = SignupOnboardingService(gateway, production_config(), reconciliation_recorder=recorder)
    gateway.finalize_organization_join_signup.return_value = None
    context = SignupContext()
    await service.guard_signup(join_request(), context)

    context.returned = {"user": {"id": "driver-8", "email": "driver8@example.test"}}
    assert await service.finalize_signup(path=SIGN_UP, headers={}, context=context) is None

    recorder.record_signup_finalize_reconciliation.assert_awaited_once_with(
        reservation_id=RESERVATION_ID, user_id="driver-8", email="driver8@example.test"
    )


@pytest.mark.asyncio
async def test_finalizer_failure_propagates_and_is_not_retried(service, gateway):
    gateway.finalize_organization_join_signup.side_effect = RuntimeError("finalize failed")
    context = SignupContext()
    await service.guard_signup(join_request(), context)
    context.returned = {"user": {"id": "driver-4", "email": "driver4@example.test"}}

    with pytest.raises(RuntimeError):
        await service.finalize_signup(path=SIGN_UP, headers={}, context=context)
    assert await service.finalize_signup(path=SIGN_UP, headers={}, context=context) is None
    assert gateway.finalize_organization_join_signup.await_count == 1
