"""Interfaces for services this core calls but does not own."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Union

from .account import Account
from .contracts import PendingAccountRecord


@dataclass(frozen=True, slots=True)
class ReservationAllowed:
    reservation_id: str
    organization_id: str
    target_role: str


@dataclass(frozen=True, slots=True)
class ReservationDenied:
    """Collaborator refusal, e.g. ``invalid_org_code`` or ``approval_not_found``."""

    reason: str


ReservationOutcome = Union[ReservationAllowed, ReservationDenied]


@dataclass(frozen=True, slots=True)
class ProvisionedOrganization:
    organization_id: str
    organization_slug: str
    organization_join_code: str


@dataclass(frozen=True, slots=True)
class FinalizedJoinSignup:
    reservation_id: str
    organization_id: str
    target_role: str


class OrganizationSignupGateway(Protocol):
    """Reservation and provisioning service backing organization signups.

    Implementations own persistence and expiry. A reservation that is never
    finalized (the host aborted after the guard ran) must lapse through the
    gateway's own TTL; this core performs no compensation. Finalizing is safe
    to call at most once per reservation, and finalizing an already consumed
    reservation for the same user returns the first result.
    """

    async def reserve_organization_join_signup(
        self, *, organization_code: str, email: str
    ) -> ReservationOutcome:
        ...

    async def prepare_organization_create_signup(
        self, *, organization_name: str
    ) -> ProvisionedOrganization | None:
        """Provision an owner-less organization; ``None`` when the name is rejected."""
        ...

    async def finalize_organization_join_signup(
        self, *, reservation_id: str, user_id: str
    ) -> FinalizedJoinSignup | None:
        """Consume the reservation for ``user_id``; ``None`` when it was not consumed."""
        ...


class SignupReconciliationRecorder(Protocol):
    """Sink for join signups whose reservation could not be consumed."""

    async def record_signup_finalize_reconciliation(
        self, *, reservation_id: str, user_id: str, email: str | None
    ) -> None:
        ...


class AccountStore(Protocol):
    """Host-side account persistence, including credential hashing."""

    async def create_account(self, record: PendingAccountRecord, *, password: str) -> Account:
        ...
