"""Cooperative cancellation for suspension points of a reconciliation run."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

from hubsync.domain.errors import ReconciliationCancelledError

if TYPE_CHECKING:
    from collections.abc import Coroutine

log = getLogger(__name__)


async def run_cancellable[T](
    coro: Coroutine[object, object, T],
    cancel: asyncio.Event | None,
    *,
    stage: str,
) -> T:
    """Await ``coro`` unless ``cancel`` is set first.

    When the event wins, the work is cancelled, awaited to completion and
    ``ReconciliationCancelledError`` is raised; the work's partial results are
    never returned.
    """

    if cancel is None:
        return await coro
    if cancel.is_set():
        coro.close()
        raise ReconciliationCancelledError(f"Reconciliation cancelled before {stage}")

    work = asyncio.ensure_future(coro)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except BaseException:
        work.cancel()
        raise
    finally:
        waiter.cancel()

    if cancel.is_set():
        work.cancel()
        await asyncio.wait({work})
        if not work.cancelled() and work.exception() is not None:
            log.debug("Discarding failure of cancelled %s: %r", stage, work.exception())
        raise ReconciliationCancelledError(f"Reconciliation cancelled during {stage}")
    return work.result()
