"""
Synchronised entities:
stable identity, display attributes, nested child collections.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime  # noqa: TC003
from typing import TYPE_CHECKING, ClassVar

from hubsync.domain.model.enums import (
    EntityType,
    FieldDataType,
    MilestoneState,
    PermissionScope,
)

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True, slots=True, kw_only=True)
class Entity:
    """Remote object identified by an opaque stable id.

    ``id`` is the only valid join key across snapshots. ``name`` is display data:
    it may change at any time and is not unique within a scope.
    """

    id: str
    name: str

    # class-level discriminator; subclasses must override
    ENTITY_TYPE: ClassVar[EntityType]
    # non-identity attributes compared when detecting modifications
    OBSERVED: ClassVar[tuple[str, ...]] = ()

    @property
    def entity_type(self) -> EntityType:
        return self.ENTITY_TYPE

    def observable_attributes(self) -> dict[str, object]:
        return {attribute: getattr(self, attribute) for attribute in self.OBSERVED}

    def children(self) -> Mapping[EntityType, Mapping[str, Entity]]:
        """Nested collections matched per parent scope."""
        return {}


@dataclass(frozen=True, slots=True, kw_only=True)
class OptionEntity(Entity):
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.OPTION


@dataclass(frozen=True, slots=True, kw_only=True)
class IterationEntity(Entity):
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.ITERATION


@dataclass(frozen=True, slots=True, kw_only=True)
class FieldEntity(Entity):
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.FIELD
    OBSERVED: ClassVar[tuple[str, ...]] = ("data_type",)

    data_type: FieldDataType
    options: dict[str, OptionEntity] = field(default_factory=dict[str, OptionEntity])
    iterations: dict[str, IterationEntity] = field(default_factory=dict[str, IterationEntity])

    def children(self) -> Mapping[EntityType, Mapping[str, Entity]]:
        return {EntityType.OPTION: self.options, EntityType.ITERATION: self.iterations}


@dataclass(frozen=True, slots=True, kw_only=True)
class ProjectEntity(Entity):
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.PROJECT
    OBSERVED: ClassVar[tuple[str, ...]] = ("number", "url", "closed")

    number: int
    url: str | None = None
    closed: bool = False
    fields: dict[str, FieldEntity] = field(default_factory=dict[str, FieldEntity])

    @property
    def title(self) -> str:
        return self.name

    def children(self) -> Mapping[EntityType, Mapping[str, Entity]]:
        return {EntityType.FIELD: self.fields}


@dataclass(frozen=True, slots=True, kw_only=True)
class RepositoryEntity(Entity):
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.REPOSITORY
    OBSERVED: ClassVar[tuple[str, ...]] = ("default_branch", "full_name", "visibility")

    default_branch: str | None = None
    full_name: str | None = None
    visibility: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class MilestoneEntity(Entity):
    """Milestone scoped to one repository; ``name`` holds the title."""

    ENTITY_TYPE: ClassVar[EntityType] = EntityType.MILESTONE
    OBSERVED: ClassVar[tuple[str, ...]] = ("number", "state", "due_on")

    repository_id: str
    number: int
    state: MilestoneState = MilestoneState.OPEN
    due_on: datetime | None = None

    @property
    def title(self) -> str:
        return self.name


@dataclass(frozen=True, slots=True, kw_only=True)
class PermissionEntity(Entity):
    """Role of the caller (``name``) on the workspace or on one project/repository."""

    ENTITY_TYPE: ClassVar[EntityType] = EntityType.PERMISSION
    OBSERVED: ClassVar[tuple[str, ...]] = ("role",)

    role: str
    scope: PermissionScope
    scope_id: str

    @property
    def subject(self) -> str:
        return self.name

    @classmethod
    def for_scope(
        cls,
        *,
        subject: str,
        role: str,
        scope: PermissionScope,
        scope_id: str,
    ) -> PermissionEntity:
        return cls(
            id=permission_id(scope, scope_id),
            name=subject,
            role=role,
            scope=scope,
            scope_id=scope_id,
        )


def permission_id(scope: PermissionScope, scope_id: str) -> str:
    return f"{scope}:{scope_id}"
