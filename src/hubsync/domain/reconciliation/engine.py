"""Orchestrator for the reconciliation subsystem.

One run walks ``idle -> fetching -> diffing -> awaiting_approval -> applying ->
persisted``. Entity-type failures are isolated and reported on the result;
workspace-level failures (missing or incompatible snapshot, persistence)
end the run in ``failed`` with the error attached. Nothing is saved unless the
run reaches ``applying``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from logging import getLogger
from typing import TYPE_CHECKING, Final

from hubsync.domain.errors import (
    AllFetchesFailedError,
    HubsyncError,
    IncompatibleSchemaError,
    PersistenceError,
    ReconciliationCancelledError,
    SnapshotError,
    SnapshotNotFoundError,
)
from hubsync.domain.model import FETCHABLE_ENTITY_TYPES, EntityType, Snapshot
from hubsync.domain.ports.confirmation import ApprovalDecision
from hubsync.domain.staleness import is_stale, snapshot_status, utcnow

from .apply import apply_live_state
from .cancellation import run_cancellable
from .classifier import classify_snapshot
from .fetching import (
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    DEFAULT_MAX_CONCURRENCY,
    FetchCoordinator,
    FetchOutcome,
    FetchRetryPolicy,
    LiveState,
)
from .policy import DEFAULT_POLICY, SeverityPolicy
from .report import ChangeReport, render_report
from .state import ReconciliationState, StateMachine

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable
    from datetime import datetime

    from hubsync.domain.model import Workspace
    from hubsync.domain.ports import Confirmation, EntityFetcher, SnapshotStore
    from hubsync.domain.staleness import Clock, SnapshotStatus

log = getLogger(__name__)

DEFAULT_STALE_AFTER: Final[timedelta] = timedelta(hours=24)


@dataclass(frozen=True, slots=True, kw_only=True)
class ReconcileOptions:
    """Caller choices for one reconciliation run.

    ``auto_approve`` applies breaking changes without asking; ``dry_run`` stops
    after diffing; ``confirm_safe_changes`` asks for approval of any non-empty
    report instead of breaking ones only. ``entity_types`` restricts the run to a
    subset of the fetchable types. ``cancel`` aborts the run cooperatively.
    """

    auto_approve: bool = False
    dry_run: bool = False
    confirm_safe_changes: bool = False
    entity_types: frozenset[EntityType] | None = None
    stale_only: bool = False
    stale_after: timedelta = DEFAULT_STALE_AFTER
    cancel: asyncio.Event | None = None

    def requested_types(self) -> tuple[EntityType, ...]:
        if self.entity_types is None:
            return FETCHABLE_ENTITY_TYPES
        unsupported = self.entity_types - set(FETCHABLE_ENTITY_TYPES)
        if unsupported:
            names = ", ".join(sorted(unsupported))
            raise ValueError(f"Entity types cannot be reconciled on their own: {names}")
        return tuple(t for t in FETCHABLE_ENTITY_TYPES if t in self.entity_types)


@dataclass(frozen=True, slots=True, kw_only=True)
class ReconciliationResult:
    """Outcome of a run.

    ``snapshot`` is the snapshot in effect afterwards (the new one when
    persisted, the prior one otherwise). ``pending_snapshot`` is the snapshot a
    failed save attempted to write, kept so the caller can retry without
    re-fetching.
    """

    workspace_id: str
    final_state: ReconciliationState
    started_at: datetime
    report: ChangeReport = field(default_factory=ChangeReport)
    unreconciled: tuple[FetchOutcome, ...] = ()
    reconciled: tuple[FetchOutcome, ...] = ()
    # requested types whose fetch stage ran, including types with no scopes
    fetched_types: tuple[EntityType, ...] = ()
    error: BaseException | None = None
    reason: str | None = None
    snapshot: Snapshot | None = None
    pending_snapshot: Snapshot | None = None
    history: tuple[ReconciliationState, ...] = ()

    @property
    def unreconciled_types(self) -> list[EntityType]:
        return _unique_types(outcome.entity_type for outcome in self.unreconciled)

    @property
    def reconciled_types(self) -> list[EntityType]:
        failed = set(self.unreconciled_types)
        return [entity_type for entity_type in self.fetched_types if entity_type not in failed]

    @property
    def is_partial(self) -> bool:
        return bool(self.unreconciled)

    @property
    def succeeded(self) -> bool:
        return self.final_state in {ReconciliationState.PERSISTED, ReconciliationState.SKIPPED}


@dataclass(slots=True)
class ReconciliationEngine:
    """Run reconciliation of cached workspace snapshots against live state."""

    fetcher: EntityFetcher
    store: SnapshotStore
    confirmation: Confirmation | None = None
    policy: SeverityPolicy = DEFAULT_POLICY
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS
    retry: FetchRetryPolicy = field(default_factory=FetchRetryPolicy)
    clock: Clock = utcnow
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    async def initialize(self, workspace: Workspace) -> Snapshot:
        """Create and store an empty snapshot unless one already exists."""

        existing = await asyncio.to_thread(self.store.load, workspace.id)
        if existing is not None:
            log.info("Workspace %s already initialised", workspace.login)
            return existing
        snapshot = Snapshot.empty(workspace, initialized_at=self.clock())
        await asyncio.to_thread(self.store.save, snapshot)
        log.info("Initialised empty snapshot for %s (%s)", workspace.login, workspace.kind)
        return snapshot

    async def status(self, workspace_id: str, threshold: timedelta) -> SnapshotStatus:
        """Report the freshness of a stored snapshot without fetching anything."""

        snapshot = await asyncio.to_thread(self.store.load, workspace_id)
        if snapshot is None:
            raise SnapshotNotFoundError(workspace_id)
        return snapshot_status(snapshot, threshold, clock=self.clock)

    async def reconcile(
        self,
        workspace_id: str,
        options: ReconcileOptions | None = None,
    ) -> ReconciliationResult:
        opts = options or ReconcileOptions()
        requested = opts.requested_types()
        run = _Run(workspace_id, started_at=self.clock())
        try:
            return await self._reconcile(run, opts, requested)
        except Exception as exc:
            log.exception("Reconciliation of %s failed in state %s", workspace_id, run.state)
            return run.fail(exc)

    async def retry_persist(self, result: ReconciliationResult) -> ReconciliationResult:
        """Save the pending snapshot of a run that failed while persisting."""

        if result.pending_snapshot is None:
            raise ValueError("Result has no pending snapshot to persist")
        run = _Run(
            result.workspace_id,
            started_at=result.started_at,
            initial=ReconciliationState.APPLYING,
        )
        run.report = result.report
        run.outcomes = [*result.reconciled, *result.unreconciled]
        run.fetched_types = result.fetched_types
        return await self._persist(run, result.pending_snapshot)

    async def _reconcile(
        self,
        run: _Run,
        options: ReconcileOptions,
        requested: tuple[EntityType, ...],
    ) -> ReconciliationResult:
        try:
            prior = await asyncio.to_thread(self.store.load, run.workspace_id)
        except SnapshotError as exc:
            return run.fail(exc)
        if prior is None:
            return run.fail(SnapshotNotFoundError(run.workspace_id))
        run.prior = prior

        if options.stale_only and not is_stale(prior, options.stale_after, run.started_at):
            log.info("Snapshot of %s is fresh; skipping reconciliation", run.workspace_id)
            return run.finish(ReconciliationState.SKIPPED, reason="snapshot is fresh")

        run.transition(ReconciliationState.FETCHING)
        coordinator = FetchCoordinator(
            fetcher=self.fetcher,
            max_concurrency=self.max_concurrency,
            timeout_seconds=self.fetch_timeout_seconds,
            retry=self.retry,
            sleep=self.sleep,
        )
        try:
            run.outcomes = await run_cancellable(
                coordinator.fetch_all(prior.workspace, prior, requested),
                options.cancel,
                stage="fetching",
            )
        except ReconciliationCancelledError as exc:
            return run.finish(ReconciliationState.ABORTED, reason=str(exc))

        run.fetched_types = requested
        # a milestone-only run on a workspace without repositories has no scopes
        if run.outcomes and not any(outcome.succeeded for outcome in run.outcomes):
            failed = ", ".join(str(outcome.scope) for outcome in run.outcomes)
            return run.fail(AllFetchesFailedError(f"No entity type could be fetched ({failed})"))

        run.transition(ReconciliationState.DIFFING)
        live = LiveState.from_outcomes(run.outcomes)
        run.report = classify_snapshot(prior, live, policy=self.policy)
        pending = apply_live_state(prior, live, synchronized_at=run.started_at)
        log.info(
            "Workspace %s: %s top-level change(s), breaking=%s, unreconciled=%s",
            run.workspace_id,
            len(run.report),
            run.report.has_breaking,
            [str(outcome.scope) for outcome in run.failed_outcomes],
        )
        log.debug("Change report for %s:\n%s", run.workspace_id, render_report(run.report))

        if options.dry_run:
            return run.finish(
                ReconciliationState.SKIPPED,
                reason="dry run",
                pending_snapshot=pending,
            )

        if self._needs_approval(run.report, options):
            run.transition(ReconciliationState.AWAITING_APPROVAL)
            if self.confirmation is None:
                return run.fail(
                    HubsyncError("Approval required but no confirmation channel is configured")
                )
            try:
                decision = await run_cancellable(
                    self.confirmation.request_approval(run.report),
                    options.cancel,
                    stage="approval",
                )
            except ReconciliationCancelledError as exc:
                return run.finish(ReconciliationState.ABORTED, reason=str(exc))
            if decision is not ApprovalDecision.APPROVED:
                log.info("Changes for %s rejected; snapshot left untouched", run.workspace_id)
                return run.finish(ReconciliationState.ABORTED, reason="changes rejected")

        run.transition(ReconciliationState.APPLYING)
        return await self._persist(run, pending)

    async def _persist(self, run: _Run, pending: Snapshot) -> ReconciliationResult:
        try:
            await asyncio.to_thread(self.store.save, pending)
        except (PersistenceError, IncompatibleSchemaError) as exc:
            log.error("Saving snapshot of %s failed: %s", run.workspace_id, exc)  # noqa: TRY400
            return run.fail(exc, pending_snapshot=pending)
        run.prior = pending
        log.info(
            "Persisted snapshot of %s synchronised at %s",
            run.workspace_id,
            pending.synchronized_at,
        )
        return run.finish(ReconciliationState.PERSISTED)

    @staticmethod
    def _needs_approval(report: ChangeReport, options: ReconcileOptions) -> bool:
        if options.auto_approve:
            return False
        if report.has_breaking:
            return True
        return options.confirm_safe_changes and not report.is_empty


class _Run:
    """Mutable bookkeeping of one run; produces the immutable result."""

    def __init__(
        self,
        workspace_id: str,
        *,
        started_at: datetime,
        initial: ReconciliationState = ReconciliationState.IDLE,
    ) -> None:
        self.workspace_id = workspace_id
        self.started_at = started_at
        self.machine = StateMachine(workspace_id, initial=initial)
        self.report = ChangeReport()
        self.outcomes: list[FetchOutcome] = []
        self.fetched_types: tuple[EntityType, ...] = ()
        self.prior: Snapshot | None = None

    @property
    def state(self) -> ReconciliationState:
        return self.machine.state

    @property
    def failed_outcomes(self) -> tuple[FetchOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes if not outcome.succeeded)

    def transition(self, target: ReconciliationState) -> None:
        self.machine.transition(target)

    def fail(
        self,
        error: BaseException,
        *,
        pending_snapshot: Snapshot | None = None,
    ) -> ReconciliationResult:
        if self.state.is_terminal:
            raise error
        return self.finish(
            ReconciliationState.FAILED,
            reason=str(error),
            error=error,
            pending_snapshot=pending_snapshot,
        )

    def finish(
        self,
        state: ReconciliationState,
        *,
        reason: str | None = None,
        error: BaseException | None = None,
        pending_snapshot: Snapshot | None = None,
    ) -> ReconciliationResult:
        self.machine.transition(state)
        result = ReconciliationResult(
            workspace_id=self.workspace_id,
            final_state=state,
            started_at=self.started_at,
            report=self.report,
            unreconciled=self.failed_outcomes,
            reconciled=tuple(outcome for outcome in self.outcomes if outcome.succeeded),
            fetched_types=self.fetched_types,
            error=error,
            reason=reason,
            snapshot=self.prior,
            pending_snapshot=pending_snapshot,
            history=self.machine.history,
        )
        if result.is_partial:
            log.warning(
                "Workspace %s partially reconciled; unreconciled: %s",
                self.workspace_id,
                ", ".join(str(outcome.scope) for outcome in result.unreconciled),
            )
        return result


def _unique_types(entity_types: Iterable[EntityType]) -> list[EntityType]:
    return list(dict.fromkeys(entity_types))

