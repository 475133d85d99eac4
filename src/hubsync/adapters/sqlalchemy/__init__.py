"""SQLAlchemy persistence adapter."""

from __future__ import annotations

from .mappings import metadata, workspace_snapshot_table
from .store import SqlAlchemySnapshotStore, deserialize_snapshot, serialize_snapshot

__all__ = [
    "SqlAlchemySnapshotStore",
    "deserialize_snapshot",
    "metadata",
    "serialize_snapshot",
    "workspace_snapshot_table",
]
