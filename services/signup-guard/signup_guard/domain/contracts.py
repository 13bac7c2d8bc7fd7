"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Union


SIGN_UP_PATH = "/sign-up/email"
ADMIN_CREATE_USER_PATH = "/admin/create-user"

INVITE_CODE_HEADER = "x-invite-code"
ORG_MODE_HEADER = "x-signup-org-mode"
ORG_CODE_HEADER = "x-signup-org-code"
ORG_NAME_HEADER = "x-signup-org-name"


class SignupPolicyMode(str, Enum):
    allowlist = "allowlist"
    open = "open"


class SignupDenialReason(str, Enum):
    allowlist_denied = "allowlist_denied"
    invalid_invite_code = "invalid_invite_code"


class OrganizationRole(str, Enum):
    driver = "driver"
    manager = "manager"


@dataclass(frozen=True, slots=True)
class SignupAbusePolicyConfig:
    """Active signup policy; invite-code bypass is never honored in production."""

    is_production: bool
    signup_policy_mode: SignupPolicyMode
    allowlisted_emails: frozenset[str] = frozenset()
    local_invite_code: str | None = None


@dataclass(frozen=True, slots=True)
class SignupAttempt:
    """Immutable view of one signup request as seen by the decision evaluator."""

    path: str
    email: str
    invite_code_header: str | None = None


@dataclass(frozen=True, slots=True)
class SignupDecision:
    """Allow/deny outcome of signup policy evaluation."""

    allowed: bool
    reason: SignupDenialReason | None = None
    message: str | None = None

    @classmethod
    def allow(cls) -> "SignupDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: SignupDenialReason, message: str) -> "SignupDecision":
        return cls(allowed=False, reason=reason, message=message)


@dataclass(frozen=True, slots=True)
class SignupRequest:
    """Signup attempt plus the raw headers the guard reads organization intent from."""

    path: str
    email: str
    headers: Mapping[str, str] = field(default_factory=dict)

    def header(self, name: str) -> str | None:
        """Return a trimmed header value, or ``None`` when absent or blank."""
        value = self.headers.get(name)
        if value is None:
            return None
        value = value.strip()
        return value or None

    def to_attempt(self) -> SignupAttempt:
        return SignupAttempt(
            path=self.path,
            email=self.email,
            invite_code_header=self.headers.get(INVITE_CODE_HEADER),
        )


@dataclass(frozen=True, slots=True)
class JoinReserved:
    """Join intent backed by a collaborator-held reservation."""

    reservation_id: str
    organization_id: str
    role: str
    source: str = "join_reservation"


@dataclass(frozen=True, slots=True)
class CreateProvisioned:
    """Create intent whose organization was provisioned before the account exists."""

    organization_id: str
    role: str = OrganizationRole.manager.value
    source: str = "create_provision"


OrganizationAssignment = Union[JoinReserved, CreateProvisioned]


@dataclass(frozen=True, slots=True)
class PendingAccountRecord:
    """Account record under construction by the host pipeline."""

    email: str
    name: str | None = None
    organization_id: str | None = None
    role: str | None = None


@dataclass(frozen=True, slots=True)
class OrganizationAssignmentData:
    """Organization fields merged into a new account record."""

    organization_id: str
    role: str

    def as_dict(self) -> dict[str, dict[str, str]]:
        return {"data": {"organizationId": self.organization_id, "role": self.role}}
