"""Immutable point-in-time bundle of cached workspace entities."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime  # noqa: TC003
from typing import TYPE_CHECKING, Final

from hubsync.domain.model.entities import (
    MilestoneEntity,
    PermissionEntity,
    ProjectEntity,
    RepositoryEntity,
)
from hubsync.domain.model.enums import EntityType
from hubsync.domain.model.workspace import Workspace  # noqa: TC001

if TYPE_CHECKING:
    from collections.abc import Mapping

    from hubsync.domain.model.entities import Entity

SCHEMA_VERSION: Final[int] = 1
SUPPORTED_SCHEMA_VERSIONS: Final[frozenset[int]] = frozenset({SCHEMA_VERSION})


@dataclass(frozen=True, slots=True, kw_only=True)
class Snapshot:
    """Cached workspace state produced by one reconciliation.

    Snapshots are never mutated: a reconciliation builds a new value with
    ``dataclasses.replace`` and hands it to the store. ``synchronized_at`` is
    ``None`` until the first successful reconciliation.
    """

    workspace: Workspace
    projects: dict[str, ProjectEntity] = field(default_factory=dict[str, ProjectEntity])
    repositories: dict[str, RepositoryEntity] = field(
        default_factory=dict[str, RepositoryEntity]
    )
    # keyed by repository id, then milestone id
    milestones: dict[str, dict[str, MilestoneEntity]] = field(
        default_factory=dict[str, dict[str, MilestoneEntity]]
    )
    permissions: dict[str, PermissionEntity] = field(default_factory=dict[str, PermissionEntity])
    synchronized_at: datetime | None = None
    initialized_at: datetime | None = None
    schema_version: int = SCHEMA_VERSION

    @classmethod
    def empty(cls, workspace: Workspace, *, initialized_at: datetime | None = None) -> Snapshot:
        return cls(workspace=workspace, initialized_at=initialized_at)

    @property
    def workspace_id(self) -> str:
        return self.workspace.id

    @property
    def is_synchronized(self) -> bool:
        return self.synchronized_at is not None

    def entities_for(self, entity_type: EntityType) -> Mapping[str, Entity]:
        """Return the top-level collection for ``entity_type``.

        Milestones are flattened across repositories; use ``milestones_for`` for a
        single repository scope.
        """

        match entity_type:
            case EntityType.PROJECT:
                return self.projects
            case EntityType.REPOSITORY:
                return self.repositories
            case EntityType.PERMISSION:
                return self.permissions
            case EntityType.MILESTONE:
                return {
                    milestone_id: milestone
                    for scoped in self.milestones.values()
                    for milestone_id, milestone in scoped.items()
                }
            case _:
                raise ValueError(f"{entity_type} is not a top-level snapshot collection")

    def milestones_for(self, repository_id: str) -> dict[str, MilestoneEntity]:
        return self.milestones.get(repository_id, {})

    def with_synchronized_at(self, synchronized_at: datetime) -> Snapshot:
        return replace(self, synchronized_at=synchronized_at)

    def same_entities(self, other: Snapshot) -> bool:
        """Compare entity data only, ignoring timestamps."""

        return (
            self.workspace == other.workspace
            and self.projects == other.projects
            and self.repositories == other.repositories
            and self.milestones == other.milestones
            and self.permissions == other.permissions
        )
