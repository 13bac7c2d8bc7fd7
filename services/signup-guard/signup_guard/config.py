from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
import os


def _split_origins(value: str) -> tuple[str, ...]:
    return tuple(origin.strip() for origin in value.split(",") if origin.strip())


@dataclass(frozen=True)
class Settings:
    """Runtime configuration values exposed to FastAPI components."""

    app_name: str = "signup-guard"
    version: str = "0.1.0"
    app_env: str = os.getenv("APP_ENV", "development")
    signup_policy: str | None = os.getenv("SIGNUP_POLICY")
    signup_allowlist: str | None = os.getenv("SIGNUP_ALLOWLIST")
    signup_invite_code: str | None = os.getenv("SIGNUP_INVITE_CODE")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    cors_origins: tuple[str, ...] = field(
        default_factory=lambda: _split_origins(
            os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
        )
    )

    def runtime_env(self) -> dict[str, str | None]:
        """Return the signup policy inputs keyed the way the policy resolver reads them."""
        return {
            "APP_ENV": self.app_env,
            "SIGNUP_POLICY": self.signup_policy,
            "SIGNUP_ALLOWLIST": self.signup_allowlist,
            "SIGNUP_INVITE_CODE": self.signup_invite_code,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached Settings instance for the running process."""
    return Settings()
