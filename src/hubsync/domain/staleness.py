"""Decide whether a cached snapshot is old enough to warrant reconciliation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from hubsync.domain.model import Snapshot


class Clock(Protocol):
    def __call__(self) -> datetime: ...


def utcnow() -> datetime:
    return datetime.now(UTC)


def _ensure_aware(value: datetime, *, label: str) -> datetime:
    if value.tzinfo is None:
        raise ValueError(f"{label} must include timezone information")
    return value.astimezone(UTC)


def snapshot_age(snapshot: Snapshot, now: datetime) -> timedelta | None:
    """Return how long ago ``snapshot`` was synchronised, or ``None`` if never."""

    if snapshot.synchronized_at is None:
        return None
    synchronized_at = _ensure_aware(snapshot.synchronized_at, label="synchronized_at")
    return _ensure_aware(now, label="now") - synchronized_at


def is_stale(snapshot: Snapshot, threshold: timedelta, now: datetime) -> bool:
    """A never-synchronised snapshot is always stale; otherwise stale once its age
    strictly exceeds ``threshold``."""

    if threshold < timedelta(0):
        raise ValueError("Staleness threshold must be non-negative")
    age = snapshot_age(snapshot, now)
    if age is None:
        return True
    return age > threshold


@dataclass(frozen=True, slots=True)
class SnapshotStatus:
    """Read-only freshness report for one workspace."""

    workspace_id: str
    synchronized_at: datetime | None
    age: timedelta | None
    threshold: timedelta
    stale: bool


def snapshot_status(
    snapshot: Snapshot,
    threshold: timedelta,
    *,
    clock: Clock = utcnow,
) -> SnapshotStatus:
    now = clock()
    return SnapshotStatus(
        workspace_id=snapshot.workspace_id,
        synchronized_at=snapshot.synchronized_at,
        age=snapshot_age(snapshot, now),
        threshold=threshold,
        stale=is_stale(snapshot, threshold, now),
    )


__all__ = ["Clock", "SnapshotStatus", "is_stale", "snapshot_age", "snapshot_status", "utcnow"]
