"""HTTP route definitions for the signup guard service."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, EmailStr, Field

from ..domain.account import Account
from ..domain.collaborators import AccountStore
from ..domain.context import SignupContext
from ..domain.contracts import SIGN_UP_PATH, PendingAccountRecord, SignupRequest
from ..domain.errors import MissingOrganizationAssignment, SignupDenied
from ..domain.service import SignupOnboardingService
from ..security.rate_limits import build_auth_rate_limit_config

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth")


class AccountResponse(BaseModel):
    """Serialised representation of an `Account` aggregate."""

    account_id: str
    email: EmailStr
    name: str | None = None
    organization_id: str
    role: str
    created_at: str

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        """Build a response model from the domain aggregate."""
        return cls(
            account_id=account.account_id,
            email=account.email,
            name=account.name,
            organization_id=account.organization_id,
            role=account.role,
            created_at=account.created_at.isoformat(),
        )


class SignUpEmailRequest(BaseModel):
    """Payload accepted by the email signup endpoint."""

    email: EmailStr
    password: str = Field(..., min_length=8)
    name: str | None = None


class SignUpEmailResponse(BaseModel):
    """Response returned after an account is created and bound to its organization."""

    user: AccountResponse
    organization_source: str


def get_service(request: Request) -> SignupOnboardingService:
    """Resolve the `SignupOnboardingService` stored on the FastAPI application state."""
    service: SignupOnboardingService = request.app.state.signup_service
    return service


def get_account_store(request: Request) -> AccountStore:
    store: AccountStore = request.app.state.account_store
    return store


@router.post("/sign-up/email", response_model=SignUpEmailResponse, status_code=status.HTTP_201_CREATED)
async def sign_up_email(
    request: Request,
    payload: SignUpEmailRequest,
    service: SignupOnboardingService = Depends(get_service),
    account_store: AccountStore = Depends(get_account_store),
) -> SignUpEmailResponse:
    """Create an account through guard, record construction and onboarding finalization."""
    context = SignupContext()
    signup_request = SignupRequest(path=SIGN_UP_PATH, email=payload.email, headers=request.headers)

    try:
        await service.guard_signup(signup_request, context)
        record = PendingAccountRecord(email=payload.email, name=payload.name)
        assignment = service.materialize_assignment(record, path=SIGN_UP_PATH, context=context)
    except SignupDenied as exc:
        raise _http_error_from_denial(exc) from exc
    except MissingOrganizationAssignment as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    account = await account_store.create_account(
        PendingAccountRecord(
            email=record.email,
            name=record.name,
            organization_id=assignment.organization_id,
            role=assignment.role,
        ),
        password=payload.password,
    )
    context.returned = {"user": {"id": account.account_id, "email": account.email}}

    await service.finalize_signup(path=SIGN_UP_PATH, headers=request.headers, context=context)

    return SignUpEmailResponse(
        user=AccountResponse.from_domain(account),
        organization_source=context.organization_assignment.source,
    )


@router.get("/rate-limits")
def rate_limits() -> dict:
    """Expose the declarative throttling table for the external limiter."""
    return build_auth_rate_limit_config().as_dict()


def _http_error_from_denial(exc: SignupDenied) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"reason": exc.reason, "message": exc.message},
    )
