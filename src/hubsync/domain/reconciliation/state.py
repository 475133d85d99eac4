"""Reconciliation state machine."""

from __future__ import annotations

from enum import StrEnum
from logging import getLogger
from typing import Final

from hubsync.domain.errors import InvalidTransitionError

log = getLogger(__name__)


class ReconciliationState(StrEnum):
    IDLE = "idle"
    FETCHING = "fetching"
    DIFFING = "diffing"
    AWAITING_APPROVAL = "awaiting_approval"
    APPLYING = "applying"
    PERSISTED = "persisted"
    ABORTED = "aborted"
    FAILED = "failed"
    # stale-only run against a fresh snapshot, or a dry run
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES: Final[frozenset[ReconciliationState]] = frozenset(
    {
        ReconciliationState.PERSISTED,
        ReconciliationState.ABORTED,
        ReconciliationState.FAILED,
        ReconciliationState.SKIPPED,
    }
)

_TRANSITIONS: Final[dict[ReconciliationState, frozenset[ReconciliationState]]] = {
    ReconciliationState.IDLE: frozenset(
        {ReconciliationState.FETCHING, ReconciliationState.SKIPPED, ReconciliationState.FAILED}
    ),
    ReconciliationState.FETCHING: frozenset(
        {ReconciliationState.DIFFING, ReconciliationState.ABORTED, ReconciliationState.FAILED}
    ),
    ReconciliationState.DIFFING: frozenset(
        {
            ReconciliationState.AWAITING_APPROVAL,
            ReconciliationState.APPLYING,
            ReconciliationState.SKIPPED,
            ReconciliationState.FAILED,
        }
    ),
    ReconciliationState.AWAITING_APPROVAL: frozenset(
        {ReconciliationState.APPLYING, ReconciliationState.ABORTED, ReconciliationState.FAILED}
    ),
    ReconciliationState.APPLYING: frozenset(
        {ReconciliationState.PERSISTED, ReconciliationState.FAILED}
    ),
}


class StateMachine:
    """Track and validate the states one reconciliation run passes through."""

    def __init__(
        self,
        workspace_id: str,
        *,
        initial: ReconciliationState = ReconciliationState.IDLE,
    ) -> None:
        self.workspace_id = workspace_id
        self._state = initial
        self._history: list[ReconciliationState] = [initial]

    @property
    def state(self) -> ReconciliationState:
        return self._state

    @property
    def history(self) -> tuple[ReconciliationState, ...]:
        return tuple(self._history)

    def can_transition(self, target: ReconciliationState) -> bool:
        return target in _TRANSITIONS.get(self._state, frozenset())

    def transition(self, target: ReconciliationState) -> None:
        if not self.can_transition(target):
            raise InvalidTransitionError(
                f"Cannot move reconciliation of {self.workspace_id} from {self._state} to {target}"
            )
        log.debug("Workspace %s: %s -> %s", self.workspace_id, self._state, target)
        self._state = target
        self._history.append(target)
