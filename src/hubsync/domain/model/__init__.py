"""Public domain model surface."""

from __future__ import annotations

from hubsync.domain.model.entities import (
    Entity,
    FieldEntity,
    IterationEntity,
    MilestoneEntity,
    OptionEntity,
    PermissionEntity,
    ProjectEntity,
    RepositoryEntity,
    permission_id,
)
from hubsync.domain.model.enums import (
    FETCHABLE_ENTITY_TYPES,
    EntityType,
    FieldDataType,
    MilestoneState,
    PermissionScope,
    WorkspaceKind,
)
from hubsync.domain.model.snapshot import SCHEMA_VERSION, SUPPORTED_SCHEMA_VERSIONS, Snapshot
from hubsync.domain.model.workspace import Workspace

__all__ = [
    "FETCHABLE_ENTITY_TYPES",
    "SCHEMA_VERSION",
    "SUPPORTED_SCHEMA_VERSIONS",
    "Entity",
    "EntityType",
    "FieldDataType",
    "FieldEntity",
    "IterationEntity",
    "MilestoneEntity",
    "MilestoneState",
    "OptionEntity",
    "PermissionEntity",
    "PermissionScope",
    "ProjectEntity",
    "RepositoryEntity",
    "Snapshot",
    "Workspace",
    "WorkspaceKind",
    "permission_id",
]
