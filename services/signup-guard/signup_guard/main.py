"""FastAPI application wiring for the signup guard service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .api.routes import router as auth_router
from .config import Settings, get_settings
from .domain.collaborators import AccountStore, OrganizationSignupGateway, SignupReconciliationRecorder
from .domain.contracts import SignupAbusePolicyConfig
from .domain.policy import resolve_signup_abuse_policy_config
from .domain.service import SignupOnboardingService

logger = logging.getLogger(__name__)


def create_app(
    *,
    gateway: OrganizationSignupGateway,
    account_store: AccountStore,
    reconciliation_recorder: SignupReconciliationRecorder | None = None,
    policy_config: SignupAbusePolicyConfig | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Build the application around the injected organization gateway and account store."""
    settings = settings or get_settings()
    config = policy_config or resolve_signup_abuse_policy_config(settings.runtime_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Configure logging and report the active signup policy for the app lifecycle."""
        logging.basicConfig(level=settings.log_level)
        logger.info(
            "signup policy active mode=%s production=%s allowlisted=%d invite_code=%s",
            config.signup_policy_mode.value,
            config.is_production,
            len(config.allowlisted_emails),
            config.local_invite_code is not None,
        )
        yield

    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)
    app.state.signup_service = SignupOnboardingService(gateway, config, reconciliation_recorder)
    app.state.account_store = account_store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )

    @app.get("/healthz", tags=["health"])
    def healthz() -> dict[str, str]:
        """Return a minimal readiness indicator used by orchestration systems."""
        return {"status": "ok"}

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(auth_router)
    return app
