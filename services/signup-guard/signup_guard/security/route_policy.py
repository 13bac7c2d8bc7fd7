"""Route classification helpers used by the host routing layer."""

from __future__ import annotations

from urllib.parse import quote

PUBLIC_PATHS = frozenset({"/", "/sign-in", "/sign-up", "/forgot-password", "/reset-password"})

PUBLIC_PREFIXES = ("/api/auth", "/api/cron", "/_app", "/static")

MONITORED_AUTH_RATE_LIMIT_PREFIXES = (
    "/api/auth/sign-up",
    "/api/auth/sign-in",
    "/api/auth/request-password-reset",
)

# Characters encodeURIComponent leaves untouched beyond quote()'s defaults.
_URI_COMPONENT_SAFE = "!~*'()"


def is_public_route(pathname: str) -> bool:
    return pathname in PUBLIC_PATHS or pathname.startswith(PUBLIC_PREFIXES)


def is_monitored_auth_rate_limit_path(pathname: str) -> bool:
    return pathname.startswith(MONITORED_AUTH_RATE_LIMIT_PREFIXES)


def build_sign_in_redirect(pathname: str, search: str | None = None) -> str:
    """Build the sign-in URL that returns the user to ``pathname`` with its query string."""
    redirect_target = f"{pathname}{search or ''}"
    return f"/sign-in?redirect={quote(redirect_target, safe=_URI_COMPONENT_SAFE)}"
