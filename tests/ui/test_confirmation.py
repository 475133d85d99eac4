from __future__ import annotations

import asyncio
import io

import pytest

from hubsync.domain.model import EntityType
from hubsync.domain.ports import ApprovalDecision
from hubsync.domain.reconciliation import Change, ChangeKind, ChangeReport, Severity
from hubsync.ui.confirmation import ConsoleConfirmation
from tests.helpers.reconciliation import make_project

REMOVED_PROJECT = ChangeReport(
    (
        Change(
            entity_type=EntityType.PROJECT,
            entity_id="P1",
            parent_path=(),
            kind=ChangeKind.REMOVED,
            severity=Severity.BREAKING,
            before=make_project("P1", "Roadmap"),
        ),
    )
)


def _ask(
    answer: str | None,
    report: ChangeReport = REMOVED_PROJECT,
) -> tuple[ApprovalDecision, str]:
    output = io.StringIO()
    prompts: list[str] = []

    def fake_input(prompt: str) -> str:
        prompts.append(prompt)
        if answer is None:
            raise EOFError
        return answer

    confirmation = ConsoleConfirmation(input_func=fake_input, output=output)
    decision = asyncio.run(confirmation.request_approval(report))

    assert prompts == [confirmation.prompt]
    return decision, output.getvalue()


@pytest.mark.parametrize("answer", ["y", "YES", "  yes\n"])
def test_explicit_yes_approves(answer: str) -> None:
    decision, output = _ask(answer)

    assert decision is ApprovalDecision.APPROVED
    assert "removed project P1 'Roadmap' [breaking]" in output
    assert "1 breaking change(s)" in output


@pytest.mark.parametrize("answer", ["", "n", "nope", None])
def test_anything_else_rejects(answer: str | None) -> None:
    decision, _ = _ask(answer)

    assert decision is ApprovalDecision.REJECTED


def test_safe_reports_have_no_breaking_warning() -> None:
    report = ChangeReport(
        (
            Change(
                entity_type=EntityType.PROJECT,
                entity_id="P2",
                parent_path=(),
                kind=ChangeKind.ADDED,
                severity=Severity.SAFE,
                after=make_project("P2"),
            ),
        )
    )

    decision, output = _ask("y", report)

    assert decision is ApprovalDecision.APPROVED
    assert "breaking change(s) discard" not in output
