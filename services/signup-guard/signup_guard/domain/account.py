from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class Account:
    """Newly created account bound to exactly one organization."""

    account_id: str
    email: str
    organization_id: str
    role: str
    created_at: datetime
    name: str | None = None
