"""Severity table used by the change classifier.

Removals of fields, options and projects can orphan values a caller already
stored against their ids, so they are breaking by default. Repositories,
milestones, iterations and permissions change routinely (finished iterations
rotate out, access is granted and revoked) and default to safe.
Both tables are plain data so callers can tighten or relax them per run.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from hubsync.domain.model import EntityType

from .report import Severity

if TYPE_CHECKING:
    from collections.abc import Iterable

DEFAULT_BREAKING_REMOVALS: Final[frozenset[EntityType]] = frozenset(
    {EntityType.PROJECT, EntityType.FIELD, EntityType.OPTION}
)


def _default_breaking_modifications() -> Mapping[EntityType, frozenset[str]]:
    return {EntityType.FIELD: frozenset({"data_type"})}


@dataclass(frozen=True, slots=True)
class SeverityPolicy:
    breaking_removals: frozenset[EntityType] = DEFAULT_BREAKING_REMOVALS
    breaking_modifications: Mapping[EntityType, frozenset[str]] = field(
        default_factory=_default_breaking_modifications
    )

    def removal_severity(self, entity_type: EntityType) -> Severity:
        if entity_type in self.breaking_removals:
            return Severity.BREAKING
        return Severity.SAFE

    def modification_severity(
        self,
        entity_type: EntityType,
        attributes: Iterable[str],
    ) -> Severity:
        breaking = self.breaking_modifications.get(entity_type, frozenset())
        if any(attribute in breaking for attribute in attributes):
            return Severity.BREAKING
        return Severity.SAFE


DEFAULT_POLICY: Final[SeverityPolicy] = SeverityPolicy()
