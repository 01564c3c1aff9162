"""Unit tests for backoff and stop-aware await helpers."""
from __future__ import annotations

import asyncio
import time

import pytest

from worker.app.core.backoff import backoff_delays, exponential_backoff
from worker.app.core.cancellation import OperationAbandoned, cancellable_sleep, race_with_stop


def test_backoff_delays_grow_and_cap():
    assert backoff_delays(1.0, 5.0, 2.0, 5) == [1.0, 2.0, 4.0, 5.0]
    assert backoff_delays(1.0, 5.0, 2.0, 1) == []


def test_exponential_backoff_yields_each_attempt():
    async def _collect() -> list[int]:
        return [attempt async for attempt in exponential_backoff(0.0, 0.0, 2.0, 3)]

    assert asyncio.run(_collect()) == [1, 2, 3]


def test_exponential_backoff_stops_when_stop_event_set():
    async def _collect() -> list[int]:
        stop = asyncio.Event()
        attempts = []
        async for attempt in exponential_backoff(30.0, 30.0, 2.0, 5, stop=stop):
            attempts.append(attempt)
            stop.set()
        return attempts

    started = time.monotonic()
    assert asyncio.run(_collect()) == [1]
    assert time.monotonic() - started < 5.0


def test_cancellable_sleep_returns_false_when_stopped():
    async def _run() -> bool:
        stop = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, stop.set)
        return await cancellable_sleep(30, stop)

    started = time.monotonic()
    assert asyncio.run(_run()) is False
    assert time.monotonic() - started < 5.0


def test_cancellable_sleep_completes_when_not_stopped():
    async def _run() -> bool:
        return await cancellable_sleep(0.01, asyncio.Event())

    assert asyncio.run(_run()) is True


def test_race_with_stop_returns_operation_result():
    async def _run() -> str:
        async def op() -> str:
            return "done"

        return await race_with_stop(op(), asyncio.Event())

    assert asyncio.run(_run()) == "done"


def test_race_with_stop_abandons_and_cancels_operation():
    cancelled = []

    async def _run() -> None:
        stop = asyncio.Event()

        async def op() -> None:
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        asyncio.get_running_loop().call_later(0.05, stop.set)
        await race_with_stop(op(), stop)

    with pytest.raises(OperationAbandoned):
        asyncio.run(_run())
    assert cancelled == [True]


def test_race_with_stop_does_not_start_when_already_stopped():
    started = []

    async def _run() -> None:
        stop = asyncio.Event()
        stop.set()

        async def op() -> None:
            started.append(True)

        await race_with_stop(op(), stop)

    with pytest.raises(OperationAbandoned):
        asyncio.run(_run())
    assert started == []
