from __future__ import annotations

import argparse
import logging
import sys
from datetime import timedelta
from signal import SIGINT, signal
from typing import TYPE_CHECKING, Final

from dotenv import load_dotenv

from hubsync.adapters.git_remote import detect_workspace_login
from hubsync.app import initialize_workspace, reconcile_workspace, workspace_status
from hubsync.config import ConfigurationError, configure_logging, get_reconcile_config
from hubsync.domain.model import FETCHABLE_ENTITY_TYPES, EntityType
from hubsync.domain.reconciliation import ReconciliationState, ReconcileOptions, render_report

from .confirmation import ConsoleConfirmation

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from hubsync.domain.reconciliation import ReconciliationResult
    from hubsync.domain.staleness import SnapshotStatus

log = logging.getLogger(__name__)

EXIT_OK: Final[int] = 0
EXIT_FAILED: Final[int] = 1
EXIT_USAGE: Final[int] = 2
EXIT_ABORTED: Final[int] = 3

_EXIT_CODES: Final[dict[ReconciliationState, int]] = {
    ReconciliationState.PERSISTED: EXIT_OK,
    ReconciliationState.SKIPPED: EXIT_OK,
    ReconciliationState.ABORTED: EXIT_ABORTED,
    ReconciliationState.FAILED: EXIT_FAILED,
}


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile cached GitHub workspace metadata")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init = subparsers.add_parser("init", help="Create an empty snapshot for a workspace")
    init.add_argument(
        "--login",
        type=str,
        help="GitHub user or organisation login (defaults to the owner of git remote origin)",
    )

    reconcile = subparsers.add_parser("reconcile", help="Reconcile a workspace with GitHub")
    reconcile.add_argument(
        "--workspace-id",
        type=str,
        required=True,
        help="Workspace id printed by 'init'",
    )
    reconcile.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help="Apply breaking changes without asking",
    )
    reconcile.add_argument(
        "--dry-run",
        action="store_true",
        help="Report changes without saving anything",
    )
    reconcile.add_argument(
        "--confirm-all",
        action="store_true",
        help="Ask before applying safe changes too",
    )
    reconcile.add_argument(
        "--stale-only",
        action="store_true",
        help="Skip the run when the snapshot is still fresh",
    )
    reconcile.add_argument(
        "--stale-after-hours",
        type=float,
        help="Staleness threshold in hours (defaults to config)",
    )
    reconcile.add_argument(
        "--types",
        type=str,
        help=f"Comma separated entity types ({', '.join(FETCHABLE_ENTITY_TYPES)})",
    )

    status = subparsers.add_parser("status", help="Show how fresh a cached snapshot is")
    status.add_argument(
        "--workspace-id",
        type=str,
        required=True,
        help="Workspace id printed by 'init'",
    )
    status.add_argument(
        "--stale-after-hours",
        type=float,
        help="Staleness threshold in hours (defaults to config)",
    )

    return parser.parse_args(list(argv))


def _parse_entity_types(value: str | None) -> frozenset[EntityType] | None:
    if value is None:
        return None
    names = [name.strip().lower() for name in value.split(",") if name.strip()]
    if not names:
        raise ValueError("--types needs at least one entity type")
    entity_types: set[EntityType] = set()
    for name in names:
        try:
            entity_type = EntityType(name)
        except ValueError as exc:
            raise ValueError(f"Unknown entity type: {name}") from exc
        if entity_type not in FETCHABLE_ENTITY_TYPES:
            raise ValueError(f"Entity type {name} is reconciled as part of its parent")
        entity_types.add(entity_type)
    return frozenset(entity_types)


def _parse_threshold(hours: float | None) -> timedelta:
    if hours is None:
        return get_reconcile_config().stale_after
    if hours < 0:
        raise ValueError("Staleness threshold must be non-negative")
    return timedelta(hours=hours)


def _build_options(args: argparse.Namespace) -> ReconcileOptions:
    return ReconcileOptions(
        auto_approve=args.yes,
        dry_run=args.dry_run,
        confirm_safe_changes=args.confirm_all,
        entity_types=_parse_entity_types(args.types),
        stale_only=args.stale_only,
        stale_after=_parse_threshold(args.stale_after_hours),
    )


def _report_result(result: ReconciliationResult) -> int:
    if result.final_state is not ReconciliationState.SKIPPED or not result.report.is_empty:
        print(render_report(result.report))  # noqa: T201
    if result.is_partial:
        log.warning(
            "Not reconciled (kept from previous snapshot): %s",
            ", ".join(str(outcome.scope) for outcome in result.unreconciled),
        )
    match result.final_state:
        case ReconciliationState.PERSISTED:
            log.info("Snapshot of %s updated", result.workspace_id)
        case ReconciliationState.SKIPPED:
            log.info("Nothing saved for %s: %s", result.workspace_id, result.reason)
        case ReconciliationState.ABORTED:
            log.warning("Reconciliation of %s aborted: %s", result.workspace_id, result.reason)
        case _:
            log.error("Reconciliation of %s failed: %s", result.workspace_id, result.error)
    return _EXIT_CODES.get(result.final_state, EXIT_FAILED)


def _describe_status(status: SnapshotStatus) -> str:
    freshness = "stale" if status.stale else "fresh"
    if status.synchronized_at is None:
        return f"{status.workspace_id}: {freshness}, never synchronized"
    return (
        f"{status.workspace_id}: {freshness}, synchronized at "
        f"{status.synchronized_at.isoformat()} (age {status.age}, threshold {status.threshold})"
    )


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        login = (
            parsed_args.login or detect_workspace_login()
            if parsed_args.command == "init"
            else None
        )
        options = _build_options(parsed_args) if parsed_args.command == "reconcile" else None
        threshold = (
            _parse_threshold(parsed_args.stale_after_hours)
            if parsed_args.command == "status"
            else None
        )
    except (ValueError, ConfigurationError):
        log.exception("CLI validation error")
        sys.exit(EXIT_USAGE)

    try:
        if parsed_args.command == "init" and login is not None:
            snapshot = initialize_workspace(login)
            print(snapshot.workspace_id)  # noqa: T201
        elif parsed_args.command == "reconcile":
            result = reconcile_workspace(
                parsed_args.workspace_id,
                options,
                confirmation=ConsoleConfirmation(),
            )
            sys.exit(_report_result(result))
        elif parsed_args.command == "status":
            status = workspace_status(parsed_args.workspace_id, threshold=threshold)
            print(_describe_status(status))  # noqa: T201
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except Exception:
        log.exception("Fatal error during %s", parsed_args.command)
        sys.exit(EXIT_FAILED)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(EXIT_ABORTED)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
