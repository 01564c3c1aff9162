"""Backoff utilities.

`exponential_backoff` yields the attempt number; between attempts it waits an
exponentially growing delay capped at `max_delay`. When a `stop` event is
given the wait is cut short and iteration ends as soon as the event is set.
"""
from __future__ import annotations

import asyncio
from typing import AsyncIterator

from worker.app.core.cancellation import cancellable_sleep


def backoff_delays(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
) -> list[float]:
    """Delays slept after each failed attempt (one fewer than attempts)."""
    delays: list[float] = []
    delay = initial_delay
    for _ in range(max(max_attempts - 1, 0)):
        delays.append(min(delay, max_delay))
        delay *= multiplier
    return delays


async def exponential_backoff(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
    *,
    stop: asyncio.Event | None = None,
) -> AsyncIterator[int]:
    delays = backoff_delays(initial_delay, max_delay, multiplier, max_attempts)
    for attempt in range(1, max_attempts + 1):
        yield attempt
        if attempt >= max_attempts:
            return
        delay = delays[attempt - 1]
        if stop is None:
            await asyncio.sleep(delay)
        elif not await cancellable_sleep(delay, stop):
            return
