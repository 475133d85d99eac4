"""Translate GitHub payloads into domain entities."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from hubsync.domain.model import (
    FieldDataType,
    FieldEntity,
    IterationEntity,
    MilestoneEntity,
    MilestoneState,
    OptionEntity,
    PermissionEntity,
    PermissionScope,
    ProjectEntity,
    RepositoryEntity,
    Workspace,
    WorkspaceKind,
)

if TYPE_CHECKING:
    from .schema import (
        AccountPayload,
        FieldPayload,
        MilestonePayload,
        ProjectPayload,
        RepositoryPayload,
    )

log = getLogger(__name__)

# projects v2 do not expose per-viewer roles over the API
PROJECT_ROLE = "admin"


def parse_workspace(payload: AccountPayload) -> Workspace:
    kind = WorkspaceKind.ORGANIZATION if payload.type == "Organization" else WorkspaceKind.USER
    return Workspace(id=payload.node_id, kind=kind, login=payload.login)


def parse_data_type(value: str) -> FieldDataType:
    try:
        return FieldDataType(value.lower())
    except ValueError:
        # title, assignees, labels, ... carry no reconcilable structure
        return FieldDataType.OTHER


def parse_field(payload: FieldPayload) -> FieldEntity:
    options = {
        option.id: OptionEntity(id=option.id, name=option.name)
        for option in payload.options or ()
    }
    iterations: dict[str, IterationEntity] = {}
    if payload.configuration is not None:
        for iteration in (
            *payload.configuration.iterations,
            *payload.configuration.completed_iterations,
        ):
            iterations[iteration.id] = IterationEntity(id=iteration.id, name=iteration.title)
    return FieldEntity(
        id=payload.id,
        name=payload.name,
        data_type=parse_data_type(payload.data_type),
        options=options,
        iterations=iterations,
    )


def parse_project(payload: ProjectPayload) -> ProjectEntity:
    return ProjectEntity(
        id=payload.id,
        name=payload.title,
        number=payload.number,
        url=payload.url,
        closed=payload.closed,
        fields={field.id: parse_field(field) for field in payload.fields.nodes},
    )


def parse_repository(payload: RepositoryPayload) -> RepositoryEntity:
    return RepositoryEntity(
        id=payload.node_id,
        name=payload.name,
        full_name=payload.full_name,
        default_branch=payload.default_branch,
        visibility=payload.resolved_visibility,
    )


def parse_milestone(payload: MilestonePayload, *, repository_id: str) -> MilestoneEntity:
    return MilestoneEntity(
        id=payload.node_id,
        name=payload.title,
        repository_id=repository_id,
        number=payload.number,
        state=MilestoneState(payload.state),
        due_on=payload.due_on,
    )


def parse_repository_permission(
    payload: RepositoryPayload,
    *,
    subject: str,
) -> PermissionEntity | None:
    role = payload.permissions.role() if payload.permissions is not None else None
    if role is None:
        log.debug("No permission information for %s", payload.full_name)
        return None
    return PermissionEntity.for_scope(
        subject=subject,
        role=role,
        scope=PermissionScope.REPOSITORY,
        scope_id=payload.node_id,
    )


def workspace_permission(workspace: Workspace, *, subject: str, role: str) -> PermissionEntity:
    return PermissionEntity.for_scope(
        subject=subject,
        role=role,
        scope=PermissionScope.WORKSPACE,
        scope_id=workspace.id,
    )


def project_permission(project: ProjectEntity, *, subject: str) -> PermissionEntity:
    return PermissionEntity.for_scope(
        subject=subject,
        role=PROJECT_ROLE,
        scope=PermissionScope.PROJECT,
        scope_id=project.id,
    )
