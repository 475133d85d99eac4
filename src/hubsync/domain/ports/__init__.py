"""Domain port definitions for adapters."""

from __future__ import annotations

from .confirmation import ApprovalDecision, Confirmation
from .fetching import EntityFetcher, WorkspaceResolver
from .persistence import SnapshotStore

__all__ = [
    "ApprovalDecision",
    "Confirmation",
    "EntityFetcher",
    "SnapshotStore",
    "WorkspaceResolver",
]
