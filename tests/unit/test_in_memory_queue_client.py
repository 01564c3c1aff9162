"""Unit tests for the in-memory queue: visibility timeout, receive counts, dead letters."""
from __future__ import annotations

import asyncio

from worker.app.infrastructure.messaging.inmemory.in_memory_queue_client import InMemoryQueueClient

QUEUE = "local-queue"


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_received_message_is_invisible_until_timeout_then_redelivered():
    clock = FakeClock()
    queue = InMemoryQueueClient(visibility_timeout_seconds=30, clock=clock)
    queue.send_message(QUEUE, {"myField": "a"})

    first = asyncio.run(queue.receive(QUEUE, 10, 0))
    hidden = asyncio.run(queue.receive(QUEUE, 10, 0))
    clock.now += 31
    again = asyncio.run(queue.receive(QUEUE, 10, 0))

    assert len(first) == 1
    assert first[0].receive_count == 1
    assert first[0].body == b'{"myField": "a"}'
    assert hidden == []
    assert again[0].receive_count == 2
    assert again[0].receipt_handle != first[0].receipt_handle


def test_delete_removes_message_and_rejects_stale_handle():
    clock = FakeClock()
    queue = InMemoryQueueClient(visibility_timeout_seconds=30, clock=clock)
    queue.send_message(QUEUE, "hello")

    first = asyncio.run(queue.receive(QUEUE, 10, 0))
    clock.now += 31
    second = asyncio.run(queue.receive(QUEUE, 10, 0))
    result = asyncio.run(queue.delete_batch(QUEUE, [first[0].receipt_handle, second[0].receipt_handle]))

    assert result.deleted == (second[0].receipt_handle,)
    assert result.failed == {first[0].receipt_handle: "ReceiptHandleIsInvalid"}
    assert queue.pending_count(QUEUE) == 0


def test_message_moves_to_dead_letters_after_max_receive_count():
    clock = FakeClock()
    queue = InMemoryQueueClient(visibility_timeout_seconds=1, max_receive_count=3, clock=clock)
    queue.send_message(QUEUE, b"poison")

    counts = []
    for _ in range(3):
        batch = asyncio.run(queue.receive(QUEUE, 10, 0))
        counts.append(batch[0].receive_count)
        clock.now += 2
    final = asyncio.run(queue.receive(QUEUE, 10, 0))

    assert counts == [1, 2, 3]
    assert final == []
    assert queue.dead_letters(QUEUE) == [b"poison"]
    assert queue.pending_count(QUEUE) == 0


def test_receive_respects_max_messages_and_order():
    queue = InMemoryQueueClient()
    for i in range(5):
        queue.send_message(QUEUE, {"myField": str(i)})

    batch = asyncio.run(queue.receive(QUEUE, 3, 0))

    assert [m.body for m in batch] == [f'{{"myField": "{i}"}}'.encode() for i in range(3)]


def test_receive_waits_for_a_message_sent_during_long_poll():
    queue = InMemoryQueueClient()

    async def _run():
        async def _send_later():
            await asyncio.sleep(0.1)
            queue.send_message(QUEUE, "late")

        sender = asyncio.create_task(_send_later())
        batch = await queue.receive(QUEUE, 10, 2)
        await sender
        return batch

    batch = asyncio.run(_run())

    assert [m.body for m in batch] == [b"late"]
