"""Concurrent, isolated retrieval of live entities.

Every ``(entity_type, scope)`` pair is fetched independently: a failure in one
scope becomes that scope's ``FetchOutcome`` and never affects the others.
Transient failures are retried with exponential backoff; each attempt is bound
by a timeout and the number of attempts in flight by a semaphore.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from hubsync.domain.errors import DuplicateEntityError, FetchError
from hubsync.domain.model import (
    EntityType,
    MilestoneEntity,
    PermissionEntity,
    ProjectEntity,
    RepositoryEntity,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Collection, Sequence

    from hubsync.domain.model import Entity, Snapshot, Workspace
    from hubsync.domain.ports import EntityFetcher

log = getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 4
DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True, slots=True)
class FetchRetryPolicy:
    attempts: int = 3
    backoff_factor: float = 0.5
    max_backoff: float = 30.0
    jitter: float = 0.25

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("Fetch retry policy needs at least one attempt")

    def backoff(self, attempt: int) -> float:
        """Delay before retrying after failed ``attempt`` (1-based)."""

        delay = min(self.max_backoff, self.backoff_factor * (2 ** (attempt - 1)))
        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)  # noqa: S311
        return delay


@dataclass(frozen=True, slots=True)
class FetchScope:
    """One independently fetched collection: an entity type within a parent."""

    entity_type: EntityType
    parent: Entity | None = None

    @property
    def parent_id(self) -> str | None:
        return self.parent.id if self.parent is not None else None

    def __str__(self) -> str:
        if self.parent is None:
            return str(self.entity_type)
        return f"{self.entity_type}@{self.parent.id}"


@dataclass(frozen=True, slots=True)
class FetchOutcome:
    scope: FetchScope
    entities: tuple[Entity, ...] | None = None
    error: FetchError | None = None
    attempts: int = 1

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def entity_type(self) -> EntityType:
        return self.scope.entity_type


@dataclass(slots=True)
class LiveState:
    """Live collections of a run; ``None`` marks a collection that was not fetched."""

    projects: list[ProjectEntity] | None = None
    repositories: list[RepositoryEntity] | None = None
    # only repositories whose milestone fetch succeeded
    milestones: dict[str, list[MilestoneEntity]] = field(
        default_factory=dict[str, list[MilestoneEntity]]
    )
    permissions: list[PermissionEntity] | None = None

    @classmethod
    def from_outcomes(cls, outcomes: Sequence[FetchOutcome]) -> LiveState:
        state = cls()
        for outcome in outcomes:
            if not outcome.succeeded or outcome.entities is None:
                continue
            entities = list(outcome.entities)
            match outcome.entity_type:
                case EntityType.PROJECT:
                    state.projects = [e for e in entities if isinstance(e, ProjectEntity)]
                case EntityType.REPOSITORY:
                    state.repositories = [e for e in entities if isinstance(e, RepositoryEntity)]
                case EntityType.PERMISSION:
                    state.permissions = [e for e in entities if isinstance(e, PermissionEntity)]
                case EntityType.MILESTONE:
                    parent_id = outcome.scope.parent_id
                    if parent_id is None:
                        raise ValueError("Milestone outcomes must be scoped to a repository")
                    state.milestones[parent_id] = [
                        e for e in entities if isinstance(e, MilestoneEntity)
                    ]
                case _:
                    raise ValueError(f"{outcome.entity_type} is not fetched directly")
        return state


_EXPECTED_TYPES: dict[EntityType, type[Entity]] = {
    EntityType.PROJECT: ProjectEntity,
    EntityType.REPOSITORY: RepositoryEntity,
    EntityType.MILESTONE: MilestoneEntity,
    EntityType.PERMISSION: PermissionEntity,
}


@dataclass(slots=True)
class FetchCoordinator:
    """Fetch every requested collection of a workspace in parallel."""

    fetcher: EntityFetcher
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS
    retry: FetchRetryPolicy = field(default_factory=FetchRetryPolicy)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    async def fetch_all(
        self,
        workspace: Workspace,
        cached: Snapshot,
        entity_types: Collection[EntityType],
    ) -> list[FetchOutcome]:
        """Fetch ``entity_types`` for ``workspace``.

        Milestones are scoped per repository: the live repositories are used when
        they were fetched successfully in this run, the cached ones otherwise.
        """

        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        semaphore = asyncio.Semaphore(self.max_concurrency)

        top_level = [
            FetchScope(entity_type)
            for entity_type in (EntityType.PROJECT, EntityType.REPOSITORY, EntityType.PERMISSION)
            if entity_type in entity_types
        ]
        outcomes = await self._gather(workspace, top_level, semaphore)

        if EntityType.MILESTONE in entity_types:
            repositories = _milestone_parents(cached, outcomes)
            milestone_scopes = [
                FetchScope(EntityType.MILESTONE, parent=repository)
                for repository in repositories
            ]
            outcomes.extend(await self._gather(workspace, milestone_scopes, semaphore))
        return outcomes

    async def _gather(
        self,
        workspace: Workspace,
        scopes: Sequence[FetchScope],
        semaphore: asyncio.Semaphore,
    ) -> list[FetchOutcome]:
        if not scopes:
            return []
        async with asyncio.TaskGroup() as group:
            tasks = [
                group.create_task(self._fetch_scope(workspace, scope, semaphore))
                for scope in scopes
            ]
        return [task.result() for task in tasks]

    async def _fetch_scope(
        self,
        workspace: Workspace,
        scope: FetchScope,
        semaphore: asyncio.Semaphore,
    ) -> FetchOutcome:
        attempt = 0
        while True:
            attempt += 1
            try:
                async with semaphore, asyncio.timeout(self.timeout_seconds):
                    entities = await self.fetcher(
                        workspace,
                        scope.entity_type,
                        parent=scope.parent,
                    )
                checked = _validate(scope, entities)
            except TimeoutError:
                error = FetchError(
                    f"Fetching {scope} timed out after {self.timeout_seconds}s",
                    transient=True,
                    entity_type=scope.entity_type,
                    scope=scope.parent_id,
                )
            except FetchError as exc:
                error = exc
            except Exception as exc:
                log.exception("Fetcher raised an unexpected error for %s", scope)
                error = FetchError(
                    f"Unexpected error fetching {scope}: {exc}",
                    entity_type=scope.entity_type,
                    scope=scope.parent_id,
                )
            else:
                log.debug("Fetched %s: %s entities in %s attempt(s)", scope, len(checked), attempt)
                return FetchOutcome(scope=scope, entities=checked, attempts=attempt)

            if not error.transient or attempt >= self.retry.attempts:
                log.warning("Fetching %s failed after %s attempt(s): %s", scope, attempt, error)
                return FetchOutcome(scope=scope, error=error, attempts=attempt)

            delay = self.retry.backoff(attempt)
            log.warning(
                "Transient failure fetching %s (attempt %s/%s), retrying in %.2fs: %s",
                scope,
                attempt,
                self.retry.attempts,
                delay,
                error,
            )
            await self.sleep(delay)


def _validate(scope: FetchScope, entities: Sequence[Entity]) -> tuple[Entity, ...]:
    expected = _EXPECTED_TYPES[scope.entity_type]
    seen: set[str] = set()
    for entity in entities:
        if not isinstance(entity, expected):
            raise FetchError(
                f"Fetcher returned {type(entity).__name__} for {scope}",
                entity_type=scope.entity_type,
                scope=scope.parent_id,
            )
        if isinstance(entity, MilestoneEntity) and entity.repository_id != scope.parent_id:
            raise FetchError(
                f"Milestone {entity.id} belongs to {entity.repository_id}, not {scope.parent_id}",
                entity_type=scope.entity_type,
                scope=scope.parent_id,
            )
        if entity.id in seen:
            duplicate = DuplicateEntityError(scope.entity_type, entity.id)
            raise FetchError(
                str(duplicate),
                entity_type=scope.entity_type,
                scope=scope.parent_id,
            ) from duplicate
        seen.add(entity.id)
    return tuple(entities)


def _milestone_parents(cached: Snapshot, outcomes: Sequence[FetchOutcome]) -> list[Entity]:
    for outcome in outcomes:
        if outcome.entity_type is EntityType.REPOSITORY and outcome.succeeded:
            return list(outcome.entities or ())
    return list(cached.repositories.values())
