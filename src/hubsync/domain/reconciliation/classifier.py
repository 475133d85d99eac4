"""Turn matcher pairs into a change report.

Only this module knows which differences matter for which entity type; the
matcher stays generic. Matched containers are recursed per parent scope
(fields per project, options and iterations per field). A removed container
carries the implied removal of everything below it as nested children.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hubsync.domain.model import EntityType

from .matcher import AddedOnly, Matched, RemovedOnly, match_entities
from .policy import DEFAULT_POLICY, SeverityPolicy
from .report import Change, ChangeKind, ChangeReport, Severity

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from hubsync.domain.model import Entity, Snapshot

    from .fetching import LiveState
    from .matcher import Pair

type NestedCollections = Mapping[str, Mapping[EntityType, Mapping[str, Entity]]]


def classify_pairs(
    pairs: Iterable[Pair[Entity]],
    *,
    parent_path: tuple[str, ...] = (),
    policy: SeverityPolicy = DEFAULT_POLICY,
    nested: NestedCollections | None = None,
) -> list[Change]:
    """Classify pairs from one scope.

    ``nested`` supplies extra child collections keyed by entity id, for
    containment that lives outside the entity itself (milestones of a
    repository).
    """

    changes: list[Change] = []
    for pair in pairs:
        match pair:
            case AddedOnly(live=entity):
                changes.append(
                    Change(
                        entity_type=entity.entity_type,
                        entity_id=entity.id,
                        parent_path=parent_path,
                        kind=ChangeKind.ADDED,
                        severity=Severity.SAFE,
                        after=entity,
                    )
                )
            case RemovedOnly(cached=entity):
                changes.append(_removal(entity, parent_path, policy, nested))
            case Matched(cached=before, live=after):
                changes.extend(_matched(before, after, parent_path, policy))
    return changes


def diff_collection[TEntity: Entity](
    cached: Mapping[str, TEntity],
    live: Iterable[TEntity],
    *,
    parent_path: tuple[str, ...] = (),
    policy: SeverityPolicy = DEFAULT_POLICY,
    nested: NestedCollections | None = None,
) -> list[Change]:
    return classify_pairs(
        match_entities(cached, live),
        parent_path=parent_path,
        policy=policy,
        nested=nested,
    )


def classify_snapshot(
    cached: Snapshot,
    live: LiveState,
    *,
    policy: SeverityPolicy = DEFAULT_POLICY,
) -> ChangeReport:
    """Diff every successfully fetched collection of ``live`` against ``cached``.

    Collections that were not fetched (or whose fetch failed) are absent from
    ``live`` and produce no changes at all.
    """

    changes: list[Change] = []
    if live.projects is not None:
        changes.extend(diff_collection(cached.projects, live.projects, policy=policy))
    if live.repositories is not None:
        milestones_by_repository: NestedCollections = {
            repository_id: {EntityType.MILESTONE: milestones}
            for repository_id, milestones in cached.milestones.items()
        }
        changes.extend(
            diff_collection(
                cached.repositories,
                live.repositories,
                policy=policy,
                nested=milestones_by_repository,
            )
        )
    for repository_id, milestones in live.milestones.items():
        changes.extend(
            diff_collection(
                cached.milestones_for(repository_id),
                milestones,
                parent_path=(repository_id,),
                policy=policy,
            )
        )
    if live.permissions is not None:
        changes.extend(diff_collection(cached.permissions, live.permissions, policy=policy))
    return ChangeReport(tuple(changes))


def _matched(
    before: Entity,
    after: Entity,
    parent_path: tuple[str, ...],
    policy: SeverityPolicy,
) -> list[Change]:
    changes: list[Change] = []
    if before.name != after.name:
        changes.append(
            Change(
                entity_type=after.entity_type,
                entity_id=after.id,
                parent_path=parent_path,
                kind=ChangeKind.RENAMED,
                severity=Severity.SAFE,
                before=before,
                after=after,
                attributes=("name",),
            )
        )

    previous = before.observable_attributes()
    current = after.observable_attributes()
    modified = tuple(name for name, value in current.items() if previous.get(name) != value)
    if modified:
        changes.append(
            Change(
                entity_type=after.entity_type,
                entity_id=after.id,
                parent_path=parent_path,
                kind=ChangeKind.MODIFIED,
                severity=policy.modification_severity(after.entity_type, modified),
                before=before,
                after=after,
                attributes=modified,
            )
        )

    cached_children = before.children()
    child_path = (*parent_path, after.id)
    for entity_type, live_children in after.children().items():
        changes.extend(
            diff_collection(
                cached_children.get(entity_type, {}),
                live_children.values(),
                parent_path=child_path,
                policy=policy,
            )
        )
    return changes


def _removal(
    entity: Entity,
    parent_path: tuple[str, ...],
    policy: SeverityPolicy,
    nested: NestedCollections | None = None,
) -> Change:
    collections: dict[EntityType, Mapping[str, Entity]] = dict(entity.children())
    if nested is not None:
        collections.update(nested.get(entity.id, {}))

    child_path = (*parent_path, entity.id)
    children = tuple(
        _removal(child, child_path, policy)
        for collection in collections.values()
        for child in collection.values()
    )
    return Change(
        entity_type=entity.entity_type,
        entity_id=entity.id,
        parent_path=parent_path,
        kind=ChangeKind.REMOVED,
        severity=policy.removal_severity(entity.entity_type),
        before=entity,
        children=children,
    )
