from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import timedelta
from threading import Thread
from typing import TYPE_CHECKING

import pytest
from pydantic_core import PydanticSerializationError
from sqlalchemy import event, inspect, select, update
from sqlalchemy.exc import OperationalError

from hubsync.adapters.sqlalchemy import SqlAlchemySnapshotStore, workspace_snapshot_table
from hubsync.adapters.sqlalchemy import store as store_module
from hubsync.domain.errors import IncompatibleSchemaError, PersistenceError
from hubsync.domain.model import EntityType, FieldDataType, MilestoneState
from hubsync.domain.reconciliation import (
    FetchRetryPolicy,
    ReconciliationEngine,
    ReconciliationState,
)
from tests.helpers.reconciliation import (
    NOW,
    WORKSPACE,
    FakeConfirmation,
    FakeFetcher,
    fixed_clock,
    make_field,
    make_iteration,
    make_milestone,
    make_option,
    make_permission,
    make_project,
    make_repository,
    make_snapshot,
    no_sleep,
)

if TYPE_CHECKING:
    from pathlib import Path

    from hubsync.domain.model import Snapshot


def _engine(store: SqlAlchemySnapshotStore, fetcher: FakeFetcher) -> ReconciliationEngine:
    return ReconciliationEngine(
        fetcher=fetcher,
        store=store,
        confirmation=FakeConfirmation(),
        retry=FetchRetryPolicy(attempts=1),
        clock=fixed_clock(),
        sleep=no_sleep,
    )


def _snapshot() -> Snapshot:
    milestone = replace(
        make_milestone("M1", "R1", "v1.0", state=MilestoneState.CLOSED),
        due_on=NOW + timedelta(days=14),
    )
    return make_snapshot(
        projects=[
            make_project(
                "P1",
                "Roadmap",
                fields=[
                    make_field("F1", "Status", options=[make_option("O1", "Todo")]),
                    make_field(
                        "F2",
                        "Sprint",
                        data_type=FieldDataType.ITERATION,
                        iterations=[make_iteration("I1", "Sprint 1")],
                    ),
                ],
            )
        ],
        repositories=[make_repository("R1")],
        milestones=[milestone],
        permissions=[make_permission()],
        synchronized_at=NOW,
    )


def test_round_trip_preserves_entities(sqlite_store: SqlAlchemySnapshotStore) -> None:
    snapshot = _snapshot()

    sqlite_store.save(snapshot)
    loaded = sqlite_store.load(WORKSPACE.id)

    assert loaded == snapshot
    assert loaded is not None
    assert loaded.projects["P1"].fields["F2"].iterations["I1"].name == "Sprint 1"
    assert loaded.synchronized_at == NOW


def test_load_unknown_workspace_returns_none(sqlite_store: SqlAlchemySnapshotStore) -> None:
    assert sqlite_store.load("missing") is None


def test_save_replaces_previous_snapshot(sqlite_store: SqlAlchemySnapshotStore) -> None:
    sqlite_store.save(_snapshot())
    replacement = make_snapshot(projects=[make_project("P2")], synchronized_at=NOW)

    sqlite_store.save(replacement)

    assert sqlite_store.load(WORKSPACE.id) == replacement


def test_save_rejects_unknown_schema_version(sqlite_store: SqlAlchemySnapshotStore) -> None:
    snapshot = replace(_snapshot(), schema_version=99)

    with pytest.raises(IncompatibleSchemaError) as exc:
        sqlite_store.save(snapshot)

    assert exc.value.schema_version == 99
    assert sqlite_store.load(WORKSPACE.id) is None


def test_load_rejects_unknown_schema_version(sqlite_store: SqlAlchemySnapshotStore) -> None:
    sqlite_store.save(_snapshot())
    with sqlite_store.engine.begin() as connection:
        connection.execute(update(workspace_snapshot_table).values(schema_version=2))

    with pytest.raises(IncompatibleSchemaError):
        sqlite_store.load(WORKSPACE.id)


def test_failed_save_leaves_previous_snapshot_intact(
    sqlite_store: SqlAlchemySnapshotStore,
) -> None:
    original = _snapshot()
    sqlite_store.save(original)

    def fail_updates(*args: object) -> None:
        statement = str(args[2])
        if statement.lstrip().upper().startswith("UPDATE"):
            raise OperationalError(statement, {}, Exception("disk I/O error"))

    event.listen(sqlite_store.engine, "before_cursor_execute", fail_updates)
    try:
        with pytest.raises(PersistenceError):
            sqlite_store.save(make_snapshot(synchronized_at=NOW + timedelta(hours=1)))
    finally:
        event.remove(sqlite_store.engine, "before_cursor_execute", fail_updates)

    assert sqlite_store.load(WORKSPACE.id) == original


def test_delete_removes_snapshot(sqlite_store: SqlAlchemySnapshotStore) -> None:
    sqlite_store.save(_snapshot())

    assert sqlite_store.delete(WORKSPACE.id)
    assert sqlite_store.load(WORKSPACE.id) is None
    assert not sqlite_store.delete(WORKSPACE.id)


def test_concurrent_saves_leave_one_complete_snapshot(
    sqlite_store: SqlAlchemySnapshotStore,
) -> None:
    candidates = [
        make_snapshot(projects=[make_project(f"P{i}")], synchronized_at=NOW + timedelta(minutes=i))
        for i in range(8)
    ]
    threads = [Thread(target=sqlite_store.save, args=(candidate,)) for candidate in candidates]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    loaded = sqlite_store.load(WORKSPACE.id)

    assert loaded in candidates


def test_from_uri_creates_schema(tmp_path: Path) -> None:
    store = SqlAlchemySnapshotStore.from_uri(f"sqlite+pysqlite:///{tmp_path / 'fresh.db'}")
    try:
        assert inspect(store.engine).has_table("workspace_snapshots")
    finally:
        store.engine.dispose()


def test_serialization_failure_is_a_persistence_error(
    sqlite_store: SqlAlchemySnapshotStore,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    original = _snapshot()
    sqlite_store.save(original)

    def broken_serializer(_snapshot: Snapshot) -> str:
        raise PydanticSerializationError("Unable to serialize unknown type")

    monkeypatch.setattr(store_module, "serialize_snapshot", broken_serializer)

    with pytest.raises(PersistenceError, match="Could not save snapshot"):
        sqlite_store.save(make_snapshot(synchronized_at=NOW + timedelta(hours=1)))

    assert sqlite_store.load(WORKSPACE.id) == original


def test_serialization_failure_keeps_pending_snapshot(
    sqlite_store: SqlAlchemySnapshotStore,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    cached = _snapshot()
    sqlite_store.save(cached)
    fetcher = FakeFetcher.from_snapshot(cached)
    fetcher.serve(EntityType.REPOSITORY, [make_repository("R1"), make_repository("R2")])
    engine = _engine(sqlite_store, fetcher)

    def broken_serializer(_snapshot: Snapshot) -> str:
        raise TypeError("Object of type set is not JSON serializable")

    monkeypatch.setattr(store_module, "serialize_snapshot", broken_serializer)
    result = asyncio.run(engine.reconcile(WORKSPACE.id))

    assert result.final_state is ReconciliationState.FAILED
    assert isinstance(result.error, PersistenceError)
    assert result.pending_snapshot is not None
    assert set(result.pending_snapshot.repositories) == {"R1", "R2"}

    monkeypatch.undo()
    retried = asyncio.run(engine.retry_persist(result))

    assert retried.final_state is ReconciliationState.PERSISTED
    loaded = sqlite_store.load(WORKSPACE.id)
    assert loaded is not None
    assert set(loaded.repositories) == {"R1", "R2"}


def test_unchanged_reconciliations_store_identical_payload(
    sqlite_store: SqlAlchemySnapshotStore,
) -> None:
    cached = make_snapshot(
        projects=[make_project("P2", "Triage"), make_project("P1", "Roadmap")],
        repositories=[make_repository("R2"), make_repository("R1")],
        milestones=[make_milestone("M2", "R1"), make_milestone("M1", "R1")],
        permissions=[make_permission()],
        synchronized_at=NOW - timedelta(days=2),
    )
    sqlite_store.save(cached)

    def stored_payload() -> str:
        with sqlite_store.engine.connect() as connection:
            return connection.execute(select(workspace_snapshot_table.c.payload)).scalar_one()

    unchanged = FakeFetcher.from_snapshot(cached)
    first = asyncio.run(_engine(sqlite_store, unchanged).reconcile(WORKSPACE.id))
    first_payload = stored_payload()

    # same entities, listed in the opposite order
    reordered = (
        FakeFetcher()
        .serve(EntityType.PROJECT, list(reversed(cached.projects.values())))
        .serve(EntityType.REPOSITORY, list(reversed(cached.repositories.values())))
        .serve(EntityType.PERMISSION, list(cached.permissions.values()))
        .serve(
            EntityType.MILESTONE,
            list(reversed(cached.milestones["R1"].values())),
            parent_id="R1",
        )
        .serve(EntityType.MILESTONE, [], parent_id="R2")
    )
    second = asyncio.run(_engine(sqlite_store, reordered).reconcile(WORKSPACE.id))
    second_payload = stored_payload()

    assert first.final_state is ReconciliationState.PERSISTED
    assert second.final_state is ReconciliationState.PERSISTED
    assert second.report.is_empty
    assert second_payload.encode("utf-8") == first_payload.encode("utf-8")
