"""Helpers for awaiting work while honouring a stop event."""
from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from loguru import logger

T = TypeVar("T")


class OperationAbandoned(Exception):
    """Raised when a stop request arrives before an awaited operation completes."""


async def cancellable_sleep(seconds: float, stop: asyncio.Event) -> bool:
    """Sleep up to `seconds`. Returns False if `stop` was set before the time elapsed."""
    if stop.is_set():
        return False
    if seconds <= 0:
        return True
    try:
        await asyncio.wait_for(stop.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return True
    return False


async def race_with_stop(operation: Awaitable[T], stop: asyncio.Event) -> T:
    """Await `operation` unless `stop` fires first.

    The losing operation is cancelled; any server-side effect it already
    triggered is not rolled back.
    """
    if stop.is_set():
        if asyncio.iscoroutine(operation):
            operation.close()
        raise OperationAbandoned("stop requested before operation started")

    op_task = asyncio.ensure_future(operation)
    stop_task = asyncio.ensure_future(stop.wait())
    try:
        done, _ = await asyncio.wait(
            {op_task, stop_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        op_task.cancel()
        stop_task.cancel()
        raise

    if op_task in done:
        stop_task.cancel()
        return op_task.result()

    op_task.cancel()
    try:
        await op_task
    except asyncio.CancelledError:
        pass
    except Exception as exc:
        logger.debug("abandoned operation failed: {}", exc)
    raise OperationAbandoned("stop requested while operation was in flight")
