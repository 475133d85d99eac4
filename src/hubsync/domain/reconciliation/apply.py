"""Build the next snapshot from the prior one and a run's live state.

Collections fetched successfully are replaced wholesale by their live
contents; everything else (failed scopes, types not requested) is carried
forward from the prior snapshot unchanged. The prior snapshot is never
modified.
"""

from __future__ import annotations

from dataclasses import replace
from operator import attrgetter
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from hubsync.domain.model import Entity, MilestoneEntity, Snapshot

    from .fetching import LiveState


def apply_live_state(cached: Snapshot, live: LiveState, *, synchronized_at: datetime) -> Snapshot:
    projects = _by_id(live.projects) if live.projects is not None else cached.projects
    repositories = (
        _by_id(live.repositories) if live.repositories is not None else cached.repositories
    )
    permissions = _by_id(live.permissions) if live.permissions is not None else cached.permissions

    milestones: dict[str, dict[str, MilestoneEntity]] = {
        repository_id: scoped
        for repository_id, scoped in cached.milestones.items()
        if live.repositories is None or repository_id in repositories
    }
    for repository_id, live_milestones in live.milestones.items():
        milestones[repository_id] = _by_id(live_milestones)

    return replace(
        cached,
        projects=projects,
        repositories=repositories,
        milestones=dict(sorted(milestones.items())),
        permissions=permissions,
        synchronized_at=synchronized_at,
    )


def _by_id[TEntity: Entity](entities: Iterable[TEntity]) -> dict[str, TEntity]:
    # id order keeps the stored payload independent of the API's listing order
    return {entity.id: entity for entity in sorted(entities, key=attrgetter("id"))}
