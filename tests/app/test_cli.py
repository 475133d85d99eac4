from __future__ import annotations

from datetime import timedelta

import pytest

from hubsync.adapters.git_remote import RemoteDetectionError
from hubsync.domain.errors import SnapshotNotFoundError
from hubsync.domain.model import EntityType, Snapshot
from hubsync.domain.reconciliation import (
    DEFAULT_STALE_AFTER,
    ReconciliationResult,
    ReconciliationState,
    ReconcileOptions,
)
from hubsync.domain.staleness import SnapshotStatus
from hubsync.ui import cli as cli_module
from hubsync.ui.confirmation import ConsoleConfirmation
from tests.helpers.reconciliation import NOW, WORKSPACE


def _result(state: ReconciliationState, *, reason: str | None = None) -> ReconciliationResult:
    return ReconciliationResult(
        workspace_id=WORKSPACE.id,
        final_state=state,
        started_at=NOW,
        reason=reason,
    )


def _capture_reconcile(
    monkeypatch: pytest.MonkeyPatch,
    result: ReconciliationResult,
) -> dict[str, object]:
    captured: dict[str, object] = {}

    def fake_reconcile(
        workspace_id: str,
        options: ReconcileOptions | None = None,
        **kwargs: object,
    ) -> ReconciliationResult:
        captured["workspace_id"] = workspace_id
        captured["options"] = options
        captured.update(kwargs)
        return result

    monkeypatch.setattr(cli_module, "reconcile_workspace", fake_reconcile)
    return captured


def test_reconcile_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _capture_reconcile(monkeypatch, _result(ReconciliationState.PERSISTED))

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["reconcile", "--workspace-id", "W1"])

    assert excinfo.value.code == cli_module.EXIT_OK
    assert captured["workspace_id"] == "W1"
    options = captured["options"]
    assert isinstance(options, ReconcileOptions)
    assert not options.auto_approve
    assert not options.dry_run
    assert not options.confirm_safe_changes
    assert not options.stale_only
    assert options.entity_types is None
    assert options.stale_after == DEFAULT_STALE_AFTER
    assert isinstance(captured["confirmation"], ConsoleConfirmation)


def test_reconcile_with_flags(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _capture_reconcile(monkeypatch, _result(ReconciliationState.SKIPPED))

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(
            [
                "reconcile",
                "--workspace-id",
                "W1",
                "--yes",
                "--dry-run",
                "--confirm-all",
                "--stale-only",
                "--stale-after-hours",
                "2.5",
                "--types",
                "Project, milestone",
            ]
        )

    assert excinfo.value.code == cli_module.EXIT_OK
    options = captured["options"]
    assert isinstance(options, ReconcileOptions)
    assert options.auto_approve
    assert options.dry_run
    assert options.confirm_safe_changes
    assert options.stale_only
    assert options.stale_after == timedelta(hours=2.5)
    assert options.entity_types == frozenset({EntityType.PROJECT, EntityType.MILESTONE})


@pytest.mark.parametrize(
    "arguments",
    [
        ["--types", "labels"],
        ["--types", "field"],
        ["--types", " , "],
        ["--stale-after-hours", "-1"],
    ],
)
def test_reconcile_rejects_invalid_arguments(
    monkeypatch: pytest.MonkeyPatch,
    arguments: list[str],
) -> None:
    captured = _capture_reconcile(monkeypatch, _result(ReconciliationState.PERSISTED))

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["reconcile", "--workspace-id", "W1", *arguments])

    assert excinfo.value.code == cli_module.EXIT_USAGE
    assert captured == {}


@pytest.mark.parametrize(
    ("state", "expected"),
    [
        (ReconciliationState.ABORTED, cli_module.EXIT_ABORTED),
        (ReconciliationState.FAILED, cli_module.EXIT_FAILED),
    ],
)
def test_reconcile_exit_codes_follow_final_state(
    monkeypatch: pytest.MonkeyPatch,
    state: ReconciliationState,
    expected: int,
) -> None:
    _capture_reconcile(monkeypatch, _result(state, reason="changes rejected"))

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["reconcile", "--workspace-id", "W1"])

    assert excinfo.value.code == expected


def test_unexpected_errors_exit_with_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_status(*_: object, **__: object) -> SnapshotStatus:
        raise SnapshotNotFoundError("W404")

    monkeypatch.setattr(cli_module, "workspace_status", fake_status)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["status", "--workspace-id", "W404"])

    assert excinfo.value.code == cli_module.EXIT_FAILED


def test_status_prints_freshness(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    captured: dict[str, object] = {}

    def fake_status(workspace_id: str, *, threshold: timedelta | None = None) -> SnapshotStatus:
        captured["threshold"] = threshold
        return SnapshotStatus(
            workspace_id=workspace_id,
            synchronized_at=NOW,
            age=timedelta(hours=3),
            threshold=timedelta(hours=1),
            stale=True,
        )

    monkeypatch.setattr(cli_module, "workspace_status", fake_status)

    cli_module.main(["status", "--workspace-id", "W1", "--stale-after-hours", "1"])

    assert captured["threshold"] == timedelta(hours=1)
    output = capsys.readouterr().out
    assert output.startswith("W1: stale, synchronized at 2025-03-01T12:00:00+00:00")


def test_init_prints_workspace_id(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    logins: list[str] = []

    def fake_initialize(login: str) -> Snapshot:
        logins.append(login)
        return Snapshot.empty(WORKSPACE)

    monkeypatch.setattr(cli_module, "initialize_workspace", fake_initialize)

    cli_module.main(["init", "--login", "acme"])

    assert logins == ["acme"]
    assert capsys.readouterr().out.strip() == WORKSPACE.id


def test_init_defaults_to_the_git_remote_owner(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    logins: list[str] = []

    def fake_initialize(login: str) -> Snapshot:
        logins.append(login)
        return Snapshot.empty(WORKSPACE)

    monkeypatch.setattr(cli_module, "detect_workspace_login", lambda: "acme")
    monkeypatch.setattr(cli_module, "initialize_workspace", fake_initialize)

    cli_module.main(["init"])

    assert logins == ["acme"]
    assert capsys.readouterr().out.strip() == WORKSPACE.id


def test_init_without_login_or_remote_is_a_usage_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def no_remote() -> str:
        raise RemoteDetectionError("No git remote 'origin' found")

    def fail_initialize(login: str) -> Snapshot:
        raise AssertionError(login)

    monkeypatch.setattr(cli_module, "detect_workspace_login", no_remote)
    monkeypatch.setattr(cli_module, "initialize_workspace", fail_initialize)

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["init"])

    assert excinfo.value.code == cli_module.EXIT_USAGE


def test_missing_command_is_a_usage_error() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main([])

    assert excinfo.value.code == cli_module.EXIT_USAGE
