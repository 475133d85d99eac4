"""SQLAlchemy table metadata for cached workspace snapshots."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    TypeDecorator,
)

from hubsync.domain.model import WorkspaceKind

if TYPE_CHECKING:
    from sqlalchemy import Dialect

metadata = MetaData()


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


# One row per workspace. The entity graph is stored as a single JSON document so
# that a save replaces the whole snapshot in one statement.
workspace_snapshot_table = Table(
    "workspace_snapshots",
    metadata,
    Column("workspace_id", String(255), primary_key=True),
    Column("workspace_login", String(255), nullable=False),
    Column("workspace_kind", Enum(WorkspaceKind, native_enum=False), nullable=False),
    Column("schema_version", Integer, nullable=False),
    Column("synchronized_at", UTCDateTime(), nullable=True),
    Column("initialized_at", UTCDateTime(), nullable=True),
    Column("saved_at", UTCDateTime(), nullable=False),
    Column("payload", Text, nullable=False),
)
