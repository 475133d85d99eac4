"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class WorkspaceKind(StrEnum):
    USER = "user"
    ORGANIZATION = "organization"


class EntityType(StrEnum):
    """Discriminator for every synchronised entity."""

    PROJECT = "project"
    FIELD = "field"
    OPTION = "option"
    ITERATION = "iteration"
    REPOSITORY = "repository"
    MILESTONE = "milestone"
    PERMISSION = "permission"


# Types the orchestrator fetches directly; fields, options and iterations
# travel inside their project.
FETCHABLE_ENTITY_TYPES: tuple[EntityType, ...] = (
    EntityType.PROJECT,
    EntityType.REPOSITORY,
    EntityType.MILESTONE,
    EntityType.PERMISSION,
)


class FieldDataType(StrEnum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    ITERATION = "iteration"
    SINGLE_SELECT = "single_select"
    OTHER = "other"


class MilestoneState(StrEnum):
    OPEN = "open"
    CLOSED = "closed"


class PermissionScope(StrEnum):
    WORKSPACE = "workspace"
    PROJECT = "project"
    REPOSITORY = "repository"
