"""Ports for fetching live workspace entities."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from hubsync.domain.model import Entity, EntityType, Workspace


@runtime_checkable
class EntityFetcher(Protocol):
    """Callable port retrieving the live entities of one type within one scope.

    ``parent`` is the scoping entity for scoped types (the repository owning a
    set of milestones) and ``None`` for workspace-level collections. Failures
    must be raised as ``hubsync.domain.errors.FetchError``; the call may run
    concurrently with calls for other types or scopes.
    """

    async def __call__(
        self,
        workspace: Workspace,
        entity_type: EntityType,
        *,
        parent: Entity | None = None,
    ) -> Sequence[Entity]: ...


@runtime_checkable
class WorkspaceResolver(Protocol):
    """Resolve a login into the workspace it names."""

    async def __call__(self, login: str) -> Workspace: ...


__all__ = ["EntityFetcher", "WorkspaceResolver"]
