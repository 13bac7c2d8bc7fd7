"""Prometheus counters for signup guard activity."""

from __future__ import annotations

from prometheus_client import Counter

SIGNUP_DECISIONS = Counter(
    "signup_guard_decisions_total",
    "Signup policy decisions taken by the pre-creation guard.",
    ["outcome", "reason"],
)

ORGANIZATION_ASSIGNMENTS = Counter(
    "signup_organization_assignments_total",
    "Organization assignments emitted into new account records.",
    ["source"],
)

JOIN_FINALIZATIONS = Counter(
    "signup_join_finalizations_total",
    "Join reservation finalization attempts after account creation.",
    ["result"],
)
