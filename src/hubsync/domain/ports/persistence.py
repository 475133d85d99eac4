"""Ports for persisting workspace snapshots."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from hubsync.domain.model import Snapshot


@runtime_checkable
class SnapshotStore(Protocol):
    """Persistence contract for cached snapshots, one per workspace.

    ``save`` is atomic: afterwards either the complete new snapshot is visible or
    the previous one is untouched (``PersistenceError``). Saves for the same
    workspace are serialised. Unknown schema versions raise
    ``IncompatibleSchemaError`` on both ``load`` and ``save``.
    """

    def load(self, workspace_id: str) -> Snapshot | None: ...

    def save(self, snapshot: Snapshot) -> None: ...

    def delete(self, workspace_id: str) -> bool: ...


__all__ = ["SnapshotStore"]
