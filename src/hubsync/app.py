"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

from hubsync.adapters.github import GitHubFetcher, GitHubWorkspaceResolver
from hubsync.adapters.sqlalchemy import SqlAlchemySnapshotStore
from hubsync.config import get_database_config, get_reconcile_config
from hubsync.domain.errors import SnapshotNotFoundError
from hubsync.domain.reconciliation import ReconciliationEngine, ReconcileOptions
from hubsync.domain.staleness import snapshot_status

if TYPE_CHECKING:
    from datetime import timedelta

    from hubsync.config import ReconcileConfig
    from hubsync.domain.model import Snapshot
    from hubsync.domain.ports import (
        Confirmation,
        EntityFetcher,
        SnapshotStore,
        WorkspaceResolver,
    )
    from hubsync.domain.reconciliation import ReconciliationResult
    from hubsync.domain.staleness import SnapshotStatus

log = getLogger(__name__)


def build_store(database_uri: str | None = None) -> SqlAlchemySnapshotStore:
    database = get_database_config()
    return SqlAlchemySnapshotStore.from_uri(database_uri or database.uri, echo=database.echo)


def build_engine(
    *,
    fetcher: EntityFetcher | None = None,
    store: SnapshotStore | None = None,
    confirmation: Confirmation | None = None,
    config: ReconcileConfig | None = None,
) -> ReconciliationEngine:
    """Wire the reconciliation engine with GitHub and SQLAlchemy defaults."""

    effective_config = config or get_reconcile_config()
    return ReconciliationEngine(
        fetcher=fetcher or GitHubFetcher(),
        store=store or build_store(),
        confirmation=confirmation,
        max_concurrency=effective_config.max_concurrency,
        fetch_timeout_seconds=effective_config.fetch_timeout_seconds,
        retry=effective_config.retry,
    )


def initialize_workspace(
    login: str,
    *,
    resolver: WorkspaceResolver | None = None,
    engine: ReconciliationEngine | None = None,
) -> Snapshot:
    """Resolve ``login`` and store an empty snapshot for its workspace."""

    effective_resolver = resolver or GitHubWorkspaceResolver()
    effective_engine = engine or build_engine()

    async def _initialize() -> Snapshot:
        workspace = await effective_resolver(login)
        return await effective_engine.initialize(workspace)

    snapshot = asyncio.run(_initialize())
    log.info("Workspace %s ready (id=%s)", login, snapshot.workspace_id)
    return snapshot


def reconcile_workspace(
    workspace_id: str,
    options: ReconcileOptions | None = None,
    *,
    engine: ReconciliationEngine | None = None,
    confirmation: Confirmation | None = None,
) -> ReconciliationResult:
    """Run one reconciliation of ``workspace_id`` using the configured adapters."""

    effective_engine = engine or build_engine(confirmation=confirmation)
    effective_options = options or ReconcileOptions(stale_after=get_reconcile_config().stale_after)
    log.info(
        "Starting reconciliation of %s: auto_approve=%s, dry_run=%s, stale_only=%s, types=%s",
        workspace_id,
        effective_options.auto_approve,
        effective_options.dry_run,
        effective_options.stale_only,
        ", ".join(effective_options.requested_types()),
    )

    result = asyncio.run(effective_engine.reconcile(workspace_id, effective_options))

    log.info(
        "Finished reconciliation of %s: state=%s, changes=%s, reconciled=%s, unreconciled=%s",
        workspace_id,
        result.final_state,
        len(result.report),
        [str(entity_type) for entity_type in result.reconciled_types],
        [str(entity_type) for entity_type in result.unreconciled_types],
    )
    return result


def retry_persist(
    result: ReconciliationResult,
    *,
    engine: ReconciliationEngine | None = None,
) -> ReconciliationResult:
    effective_engine = engine or build_engine()
    return asyncio.run(effective_engine.retry_persist(result))


def workspace_status(
    workspace_id: str,
    *,
    threshold: timedelta | None = None,
    store: SnapshotStore | None = None,
) -> SnapshotStatus:
    """Report how fresh the cached snapshot of ``workspace_id`` is; never fetches."""

    effective_store = store or build_store()
    effective_threshold = threshold if threshold is not None else get_reconcile_config().stale_after
    snapshot = effective_store.load(workspace_id)
    if snapshot is None:
        raise SnapshotNotFoundError(workspace_id)
    return snapshot_status(snapshot, effective_threshold)
