from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from hubsync.adapters.sqlalchemy import SqlAlchemySnapshotStore
from hubsync.domain.model import Workspace, WorkspaceKind

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HUBSYNC_DATA_DIR", str(tmp_path / "data"))
    for name in (
        "DATABASE_URI",
        "GITHUB_TOKEN",
        "GH_TOKEN",
        "GITHUB_API_URL",
        "HUBSYNC_STALE_AFTER_HOURS",
        "HUBSYNC_MAX_CONCURRENCY",
        "HUBSYNC_FETCH_TIMEOUT",
        "HUBSYNC_FETCH_ATTEMPTS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def workspace() -> Workspace:
    return Workspace(id="O_kgDOexample", kind=WorkspaceKind.ORGANIZATION, login="example-org")


@pytest.fixture
def sqlite_store(tmp_path: Path) -> Iterator[SqlAlchemySnapshotStore]:
    store = SqlAlchemySnapshotStore.from_uri(f"sqlite+pysqlite:///{tmp_path / 'snapshots.db'}")
    try:
        yield store
    finally:
        store.engine.dispose()
