"""Identity-first pairing of cached and live entities.

Pairs are formed by stable id only. Display names are never consulted: a
matching name with a different id is a removal plus an addition, and a
different name with the same id is the same entity.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from hubsync.domain.errors import DuplicateEntityError
from hubsync.domain.model import Entity


@dataclass(frozen=True, slots=True)
class Matched[TEntity: Entity]:
    cached: TEntity
    live: TEntity


@dataclass(frozen=True, slots=True)
class AddedOnly[TEntity: Entity]:
    live: TEntity


@dataclass(frozen=True, slots=True)
class RemovedOnly[TEntity: Entity]:
    cached: TEntity


type Pair[TEntity: Entity] = Matched[TEntity] | AddedOnly[TEntity] | RemovedOnly[TEntity]


def match_entities[TEntity: Entity](
    cached: Mapping[str, TEntity] | Iterable[TEntity],
    live: Iterable[TEntity],
) -> list[Pair[TEntity]]:
    """Pair ``cached`` against ``live`` within a single parent scope.

    Live order is preserved for matched and added entities; removals follow in
    cached order. Duplicate live ids raise ``DuplicateEntityError``.
    """

    remaining = _index_by_id(cached)
    seen: set[str] = set()
    pairs: list[Pair[TEntity]] = []

    for entity in live:
        if entity.id in seen:
            raise DuplicateEntityError(entity.entity_type, entity.id)
        seen.add(entity.id)
        counterpart = remaining.pop(entity.id, None)
        if counterpart is None:
            pairs.append(AddedOnly(entity))
        else:
            pairs.append(Matched(counterpart, entity))

    pairs.extend(RemovedOnly(entity) for entity in remaining.values())
    return pairs


def _index_by_id[TEntity: Entity](
    cached: Mapping[str, TEntity] | Iterable[TEntity],
) -> dict[str, TEntity]:
    entities = cached.values() if isinstance(cached, Mapping) else cached
    index: dict[str, TEntity] = {}
    for entity in entities:
        if entity.id in index:
            raise DuplicateEntityError(entity.entity_type, entity.id)
        index[entity.id] = entity
    return index
