"""Request-scoped context threaded through the guard, materializer and finalizer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from .contracts import OrganizationAssignment
from .errors import AssignmentAlreadyRecorded


@dataclass(slots=True)
class SignupContext:
    """Mutable per-request bag owned by the host pipeline.

    A context belongs to exactly one in-flight signup and is passed by
    reference to each phase; it is never shared across requests.
    """

    organization_assignment: OrganizationAssignment | None = None
    returned: Mapping[str, Any] | None = None
    join_finalized: bool = False

    def record_assignment(self, assignment: OrganizationAssignment) -> None:
        """Store the organization assignment; a context accepts exactly one."""
        if self.organization_assignment is not None:
            raise AssignmentAlreadyRecorded(
                f"organization assignment already recorded ({self.organization_assignment.source})"
            )
        self.organization_assignment = assignment
