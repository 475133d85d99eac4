"""Interactive approval of change reports on the terminal."""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TextIO

from hubsync.domain.ports import ApprovalDecision
from hubsync.domain.reconciliation import render_report

if TYPE_CHECKING:
    from collections.abc import Callable

    from hubsync.domain.ports import Confirmation
    from hubsync.domain.reconciliation import ChangeReport

_YES = frozenset({"y", "yes"})


@dataclass(slots=True)
class ConsoleConfirmation:
    """Print the report and ask once; anything but an explicit yes rejects."""

    prompt: str = "Apply these changes? [y/N] "
    input_func: Callable[[str], str] = input
    output: TextIO = field(default_factory=lambda: sys.stdout)

    async def request_approval(self, report: ChangeReport) -> ApprovalDecision:
        print(render_report(report), file=self.output)  # noqa: T201
        breaking = len(report.breaking_changes())
        if breaking:
            print(  # noqa: T201
                f"{breaking} breaking change(s) discard cached data callers may depend on.",
                file=self.output,
            )
        try:
            answer = await asyncio.to_thread(self.input_func, self.prompt)
        except EOFError:
            answer = ""
        if answer.strip().lower() in _YES:
            return ApprovalDecision.APPROVED
        return ApprovalDecision.REJECTED


if TYPE_CHECKING:
    _confirmation_check: Confirmation = ConsoleConfirmation()
