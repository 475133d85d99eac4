from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from hubsync import app
from hubsync.config import ReconcileConfig
from hubsync.domain.errors import PersistenceError, SnapshotNotFoundError
from hubsync.domain.model import Snapshot, Workspace
from hubsync.domain.reconciliation import ReconciliationState, ReconcileOptions
from hubsync.domain.reconciliation.fetching import FetchRetryPolicy
from tests.helpers.reconciliation import (
    WORKSPACE,
    FakeFetcher,
    InMemorySnapshotStore,
    make_field,
    make_milestone,
    make_option,
    make_permission,
    make_project,
    make_repository,
    make_snapshot,
)

if TYPE_CHECKING:
    from hubsync.adapters.sqlalchemy import SqlAlchemySnapshotStore
    from hubsync.domain.ports import SnapshotStore
    from hubsync.domain.reconciliation import ReconciliationEngine


def _live_fetcher() -> FakeFetcher:
    live = make_snapshot(
        projects=[make_project("P1", fields=[make_field("F1", options=[make_option("O1")])])],
        repositories=[make_repository("R1")],
        milestones=[make_milestone("M1", "R1")],
        permissions=[make_permission()],
    )
    return FakeFetcher.from_snapshot(live)


def _engine(fetcher: FakeFetcher, store: SnapshotStore) -> ReconciliationEngine:
    return app.build_engine(
        fetcher=fetcher,
        store=store,
        config=ReconcileConfig(retry=FetchRetryPolicy(attempts=1)),
    )


class FakeResolver:
    def __init__(self, workspace: Workspace) -> None:
        self.workspace = workspace
        self.logins: list[str] = []

    async def __call__(self, login: str) -> Workspace:
        self.logins.append(login)
        return self.workspace


def test_initialize_then_reconcile_persists_live_state(
    sqlite_store: SqlAlchemySnapshotStore,
) -> None:
    engine = _engine(_live_fetcher(), sqlite_store)
    resolver = FakeResolver(WORKSPACE)

    initial = app.initialize_workspace("acme", resolver=resolver, engine=engine)
    result = app.reconcile_workspace(
        WORKSPACE.id,
        ReconcileOptions(auto_approve=True),
        engine=engine,
    )

    assert resolver.logins == ["acme"]
    assert not initial.is_synchronized
    assert result.final_state is ReconciliationState.PERSISTED
    stored = sqlite_store.load(WORKSPACE.id)
    assert stored is not None
    assert set(stored.projects) == {"P1"}
    assert set(stored.projects["P1"].fields["F1"].options) == {"O1"}
    assert set(stored.milestones_for("R1")) == {"M1"}
    assert stored.synchronized_at == result.started_at


def test_initialize_keeps_an_existing_snapshot() -> None:
    existing = make_snapshot(repositories=[make_repository("R1")])
    store = InMemorySnapshotStore(existing)
    engine = _engine(FakeFetcher(), store)

    snapshot = app.initialize_workspace("acme", resolver=FakeResolver(WORKSPACE), engine=engine)

    assert snapshot == existing
    assert store.saved == []


def test_retry_persist_saves_the_pending_snapshot() -> None:
    store = InMemorySnapshotStore(Snapshot.empty(WORKSPACE), fail_saves=1)
    engine = _engine(_live_fetcher(), store)

    failed = app.reconcile_workspace(
        WORKSPACE.id,
        ReconcileOptions(auto_approve=True),
        engine=engine,
    )
    retried = app.retry_persist(failed, engine=engine)

    assert failed.final_state is ReconciliationState.FAILED
    assert isinstance(failed.error, PersistenceError)
    assert failed.pending_snapshot is not None
    assert retried.final_state is ReconciliationState.PERSISTED
    assert store.snapshots[WORKSPACE.id] == failed.pending_snapshot


def test_workspace_status_reads_the_store_only() -> None:
    store = InMemorySnapshotStore(Snapshot.empty(WORKSPACE))

    status = app.workspace_status(WORKSPACE.id, threshold=timedelta(hours=1), store=store)

    assert status.workspace_id == WORKSPACE.id
    assert status.stale
    assert status.synchronized_at is None


def test_workspace_status_requires_a_snapshot() -> None:
    with pytest.raises(SnapshotNotFoundError):
        app.workspace_status("missing", store=InMemorySnapshotStore())
