"""Signup guard exceptions."""

from __future__ import annotations


SIGN_UP_BLOCKED_MESSAGE = "Signup is restricted. Please contact a manager for approval."
INVALID_INVITE_CODE_MESSAGE = "Invalid invite code"
ORGANIZATION_SIGNUP_DENIED_MESSAGE = "Organization signup could not be completed."


class SignupError(Exception):
    """Base signup guard error."""


class SignupDenied(SignupError):
    """Client-facing denial carrying a stable machine-readable reason."""

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message


class AllowlistDenied(SignupDenied):
    def __init__(self, message: str = SIGN_UP_BLOCKED_MESSAGE) -> None:
        super().__init__("allowlist_denied", message)


class InvalidInviteCode(SignupDenied):
    def __init__(self, message: str = INVALID_INVITE_CODE_MESSAGE) -> None:
        super().__init__("invalid_invite_code", message)


class OrganizationSignupDenied(SignupDenied):
    """Organization join/create intent rejected before the account exists."""

    def __init__(self, reason: str, message: str = ORGANIZATION_SIGNUP_DENIED_MESSAGE) -> None:
        super().__init__(reason, message)


class MissingOrganizationAssignment(SignupError):
    """Account record reached construction without a traceable organization assignment."""

    def __init__(self, message: str = "organization assignment required") -> None:
        super().__init__(message)


class AssignmentAlreadyRecorded(SignupError):
    """A second organization assignment was written to the same signup context."""
