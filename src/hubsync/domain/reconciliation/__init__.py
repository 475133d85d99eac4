"""Matching, classification and orchestration of workspace reconciliation."""

from __future__ import annotations

from .apply import apply_live_state
from .cancellation import run_cancellable
from .classifier import classify_pairs, classify_snapshot, diff_collection
from .engine import (
    DEFAULT_STALE_AFTER,
    ReconciliationEngine,
    ReconciliationResult,
    ReconcileOptions,
)
from .fetching import FetchCoordinator, FetchOutcome, FetchRetryPolicy, FetchScope, LiveState
from .matcher import AddedOnly, Matched, RemovedOnly, match_entities
from .policy import DEFAULT_POLICY, SeverityPolicy
from .report import Change, ChangeKind, ChangeReport, Severity, render_report
from .state import ReconciliationState, StateMachine

__all__ = [
    "DEFAULT_POLICY",
    "DEFAULT_STALE_AFTER",
    "AddedOnly",
    "Change",
    "ChangeKind",
    "ChangeReport",
    "FetchCoordinator",
    "FetchOutcome",
    "FetchRetryPolicy",
    "FetchScope",
    "LiveState",
    "Matched",
    "ReconcileOptions",
    "ReconciliationEngine",
    "ReconciliationResult",
    "ReconciliationState",
    "RemovedOnly",
    "Severity",
    "SeverityPolicy",
    "StateMachine",
    "apply_live_state",
    "classify_pairs",
    "classify_snapshot",
    "diff_collection",
    "match_entities",
    "render_report",
    "run_cancellable",
]
