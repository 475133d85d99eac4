"""Workspace: the root scope a snapshot belongs to."""

from __future__ import annotations

from dataclasses import dataclass

from hubsync.domain.model.enums import WorkspaceKind


@dataclass(frozen=True, slots=True, kw_only=True)
class Workspace:
    id: str
    kind: WorkspaceKind
    login: str

    @property
    def is_organization(self) -> bool:
        return self.kind is WorkspaceKind.ORGANIZATION
