"""Change report types produced by the classifier.

The report is the contract between diffing, the approval gate and the caller:
it is computed once per run, shown to the confirmation collaborator in full and
returned on the reconciliation result whatever the final state.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from hubsync.domain.model import Entity, EntityType


class ChangeKind(StrEnum):
    ADDED = "added"
    REMOVED = "removed"
    RENAMED = "renamed"
    MODIFIED = "modified"


class Severity(StrEnum):
    """Blast radius of applying a change to the cache."""

    SAFE = "safe"
    BREAKING = "breaking"


@dataclass(frozen=True, slots=True, kw_only=True)
class Change:
    """One detected difference between the cached and the live state.

    ``parent_path`` lists ancestor ids from the outermost scope inwards.
    ``children`` holds implied changes of nested entities (for example the options
    of a removed field) which are not reported on their own.
    """

    entity_type: EntityType
    entity_id: str
    parent_path: tuple[str, ...]
    kind: ChangeKind
    severity: Severity
    before: Entity | None = None
    after: Entity | None = None
    attributes: tuple[str, ...] = ()
    children: tuple[Change, ...] = ()

    @property
    def is_breaking(self) -> bool:
        return self.severity is Severity.BREAKING

    @property
    def display_name(self) -> str:
        entity = self.after if self.after is not None else self.before
        return entity.name if entity is not None else self.entity_id

    def walk(self) -> Iterator[Change]:
        yield self
        for child in self.children:
            yield from child.walk()

    def describe(self) -> str:
        match self.kind:
            case ChangeKind.RENAMED:
                before = self.before.name if self.before is not None else "?"
                detail = f"{before!r} -> {self.display_name!r}"
            case ChangeKind.MODIFIED:
                detail = f"{self.display_name!r} ({', '.join(self.attributes)})"
            case _:
                detail = repr(self.display_name)
        return f"{self.kind} {self.entity_type} {self.entity_id} {detail} [{self.severity}]"


@dataclass(frozen=True, slots=True)
class ChangeReport:
    """Ordered, immutable list of top-level changes."""

    changes: tuple[Change, ...] = ()

    def __iter__(self) -> Iterator[Change]:
        return iter(self.changes)

    def __len__(self) -> int:
        return len(self.changes)

    @property
    def is_empty(self) -> bool:
        return not self.changes

    @property
    def has_breaking(self) -> bool:
        return any(change.is_breaking for change in self.walk())

    def walk(self) -> Iterator[Change]:
        """Depth-first iteration over all changes including nested ones."""
        for change in self.changes:
            yield from change.walk()

    def breaking_changes(self) -> list[Change]:
        return [change for change in self.walk() if change.is_breaking]

    def for_entity_type(self, entity_type: EntityType) -> list[Change]:
        return [change for change in self.walk() if change.entity_type == entity_type]

    def summary(self) -> dict[str, int]:
        counts: Counter[str] = Counter()
        for change in self.walk():
            counts[str(change.kind)] += 1
            counts[str(change.severity)] += 1
        return dict(counts)

    def extend(self, changes: tuple[Change, ...] | list[Change]) -> ChangeReport:
        return ChangeReport((*self.changes, *changes))


def render_report(report: ChangeReport) -> str:
    """Render a report as indented text for terminal output."""

    if report.is_empty:
        return "No changes detected."
    lines: list[str] = []

    def _render(change: Change, depth: int) -> None:
        lines.append(f"{'  ' * depth}- {change.describe()}")
        for child in change.children:
            _render(child, depth + 1)

    for change in report:
        _render(change, 0)
    summary = report.summary()
    lines.append(
        f"{len(report)} change(s), {len(list(report.walk()))} including nested: "
        f"{summary.get(str(Severity.BREAKING), 0)} breaking, "
        f"{summary.get(str(Severity.SAFE), 0)} safe"
    )
    return "\n".join(lines)
