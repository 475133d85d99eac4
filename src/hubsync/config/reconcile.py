"""Reconciliation defaults."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from hubsync.domain.reconciliation.engine import DEFAULT_STALE_AFTER
from hubsync.domain.reconciliation.fetching import (
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    DEFAULT_MAX_CONCURRENCY,
    FetchRetryPolicy,
)

from .env import env_float, env_int
from .errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class ReconcileConfig:
    stale_after: timedelta = DEFAULT_STALE_AFTER
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS
    retry: FetchRetryPolicy = field(default_factory=FetchRetryPolicy)


def get_reconcile_config() -> ReconcileConfig:
    stale_hours = env_float(
        "HUBSYNC_STALE_AFTER_HOURS",
        DEFAULT_STALE_AFTER.total_seconds() / 3600,
        minimum=0,
    )
    max_concurrency = env_int("HUBSYNC_MAX_CONCURRENCY", DEFAULT_MAX_CONCURRENCY, minimum=1)
    fetch_timeout = env_float("HUBSYNC_FETCH_TIMEOUT", DEFAULT_FETCH_TIMEOUT_SECONDS)
    if fetch_timeout <= 0:
        raise ConfigurationError(f"HUBSYNC_FETCH_TIMEOUT must be positive, got {fetch_timeout}")
    attempts = env_int("HUBSYNC_FETCH_ATTEMPTS", FetchRetryPolicy().attempts, minimum=1)
    return ReconcileConfig(
        stale_after=timedelta(hours=stale_hours),
        max_concurrency=max_concurrency,
        fetch_timeout_seconds=fetch_timeout,
        retry=FetchRetryPolicy(attempts=attempts),
    )
