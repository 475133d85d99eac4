"""Port for approving risky reconciliation changes."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from hubsync.domain.reconciliation.report import ChangeReport


class ApprovalDecision(StrEnum):
    APPROVED = "approved"
    REJECTED = "rejected"


@runtime_checkable
class Confirmation(Protocol):
    """Ask a human or calling process to approve a change report.

    May suspend for an arbitrarily long time. Called at most once per
    reconciliation run.
    """

    async def request_approval(self, report: ChangeReport) -> ApprovalDecision: ...


__all__ = ["ApprovalDecision", "Confirmation"]
