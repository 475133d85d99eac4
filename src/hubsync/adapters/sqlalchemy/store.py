"""SQLAlchemy-backed snapshot store."""

from __future__ import annotations

import threading
from collections import defaultdict
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import create_engine, delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from hubsync.domain.errors import IncompatibleSchemaError, PersistenceError, SnapshotError
from hubsync.domain.model import SUPPORTED_SCHEMA_VERSIONS, Snapshot

from .mappings import metadata, workspace_snapshot_table

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.engine import Engine

    from hubsync.domain.ports import SnapshotStore

log = getLogger(__name__)

_snapshot_adapter: TypeAdapter[Snapshot] = TypeAdapter(Snapshot)


def serialize_snapshot(snapshot: Snapshot) -> str:
    return _snapshot_adapter.dump_json(snapshot).decode("utf-8")


def deserialize_snapshot(payload: str) -> Snapshot:
    return _snapshot_adapter.validate_json(payload)


def _check_schema_version(schema_version: int) -> None:
    if schema_version not in SUPPORTED_SCHEMA_VERSIONS:
        raise IncompatibleSchemaError(schema_version, supported=SUPPORTED_SCHEMA_VERSIONS)


class WorkspaceLocks:
    """One re-entrant lock per workspace id."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: defaultdict[str, threading.RLock] = defaultdict(threading.RLock)

    def __call__(self, workspace_id: str) -> threading.RLock:
        with self._guard:
            return self._locks[workspace_id]


class SqlAlchemySnapshotStore:
    """Store one snapshot per workspace in a single table row.

    Saves run in one transaction each and are serialised per workspace, so a
    concurrent reader sees either the old or the new snapshot, never a mix.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        self._locks = WorkspaceLocks()
        self._clock = clock or (lambda: datetime.now(UTC))

    @classmethod
    def from_uri(cls, database_uri: str, *, echo: bool = False) -> SqlAlchemySnapshotStore:
        engine = create_engine(database_uri, echo=echo)
        metadata.create_all(engine)
        return cls(engine)

    def load(self, workspace_id: str) -> Snapshot | None:
        with Session(self.engine) as session:
            row = session.execute(
                select(
                    workspace_snapshot_table.c.schema_version,
                    workspace_snapshot_table.c.payload,
                ).where(workspace_snapshot_table.c.workspace_id == workspace_id)
            ).one_or_none()
        if row is None:
            return None

        _check_schema_version(row.schema_version)
        try:
            snapshot = deserialize_snapshot(row.payload)
        except ValidationError as exc:
            raise SnapshotError(f"Stored snapshot of {workspace_id} is unreadable") from exc
        _check_schema_version(snapshot.schema_version)
        return snapshot

    def save(self, snapshot: Snapshot) -> None:
        _check_schema_version(snapshot.schema_version)
        with self._locks(snapshot.workspace_id):
            try:
                values = {
                    "workspace_login": snapshot.workspace.login,
                    "workspace_kind": snapshot.workspace.kind,
                    "schema_version": snapshot.schema_version,
                    "synchronized_at": snapshot.synchronized_at,
                    "initialized_at": snapshot.initialized_at,
                    "saved_at": self._clock(),
                    "payload": serialize_snapshot(snapshot),
                }
                with self._session_factory.begin() as session:
                    exists = session.execute(
                        select(workspace_snapshot_table.c.workspace_id).where(
                            workspace_snapshot_table.c.workspace_id == snapshot.workspace_id
                        )
                    ).first()
                    if exists is None:
                        session.execute(
                            insert(workspace_snapshot_table).values(
                                workspace_id=snapshot.workspace_id, **values
                            )
                        )
                    else:
                        session.execute(
                            update(workspace_snapshot_table)
                            .where(
                                workspace_snapshot_table.c.workspace_id == snapshot.workspace_id
                            )
                            .values(**values)
                        )
            except (SQLAlchemyError, ValueError, TypeError) as exc:
                raise PersistenceError(
                    f"Could not save snapshot of {snapshot.workspace_id}: {exc}"
                ) from exc
        log.debug("Saved snapshot of %s", snapshot.workspace_id)

    def delete(self, workspace_id: str) -> bool:
        with self._locks(workspace_id):
            try:
                with self._session_factory.begin() as session:
                    result = session.execute(
                        delete(workspace_snapshot_table).where(
                            workspace_snapshot_table.c.workspace_id == workspace_id
                        )
                    )
            except SQLAlchemyError as exc:
                raise PersistenceError(f"Could not delete snapshot of {workspace_id}") from exc
        deleted = bool(result.rowcount)
        if deleted:
            log.info("Deleted snapshot of %s", workspace_id)
        return deleted


if TYPE_CHECKING:
    _store_check: SnapshotStore = SqlAlchemySnapshotStore(create_engine("sqlite://"))
