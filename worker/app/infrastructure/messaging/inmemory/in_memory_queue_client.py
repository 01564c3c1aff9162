"""In-memory queue for tests and embedding.

Not a deployable backend: the factory never builds it, callers construct it and
inject it into WorkerDependencies directly.

Mimics the parts of a managed queue the consumer loop relies on: long-poll
receive, a visibility timeout per received message, receive counting and
dead-letter routing once a message has been received `max_receive_count` times
without being deleted.
"""
from __future__ import annotations

import asyncio
import json
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from worker.app.domain.models import Batch, DeleteResult, QueueMessage

POLL_INTERVAL_SECONDS = 0.05


@dataclass
class _StoredMessage:
    message_id: str
    body: bytes
    receive_count: int = 0
    invisible_until: float = 0.0
    receipt_handle: str | None = None


class InMemoryQueueClient:
    def __init__(
        self,
        *,
        visibility_timeout_seconds: float = 30.0,
        max_receive_count: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._visibility_timeout = visibility_timeout_seconds
        self._max_receive_count = max_receive_count
        self._clock = clock
        self._queues: dict[str, dict[str, _StoredMessage]] = {}
        self._dead_letters: dict[str, list[bytes]] = {}

    def send_message(self, queue_url: str, body: str | bytes | dict[str, Any]) -> str:
        if isinstance(body, dict):
            body = json.dumps(body)
        if isinstance(body, str):
            body = body.encode("utf-8")
        message_id = str(uuid.uuid4())
        self._queues.setdefault(queue_url, {})[message_id] = _StoredMessage(message_id, body)
        return message_id

    def pending_count(self, queue_url: str) -> int:
        return len(self._queues.get(queue_url, {}))

    def dead_letters(self, queue_url: str) -> list[bytes]:
        return list(self._dead_letters.get(queue_url, []))

    async def connect(self) -> None:
        return

    def _take(self, queue_url: str, max_messages: int) -> Batch:
        now = self._clock()
        queue = self._queues.get(queue_url, {})
        batch: Batch = []
        for message_id, stored in list(queue.items()):
            if len(batch) >= max_messages:
                break
            if stored.invisible_until > now:
                continue
            if stored.receive_count >= self._max_receive_count:
                del queue[message_id]
                self._dead_letters.setdefault(queue_url, []).append(stored.body)
                continue
            stored.receive_count += 1
            stored.receipt_handle = uuid.uuid4().hex
            stored.invisible_until = now + self._visibility_timeout
            batch.append(
                QueueMessage(
                    body=stored.body,
                    receipt_handle=stored.receipt_handle,
                    receive_count=stored.receive_count,
                    message_id=stored.message_id,
                )
            )
        return batch

    async def receive(self, queue_url: str, max_messages: int, wait_seconds: int) -> Batch:
        deadline = self._clock() + wait_seconds
        while True:
            batch = self._take(queue_url, max_messages)
            remaining = deadline - self._clock()
            if batch or remaining <= 0:
                return batch
            await asyncio.sleep(min(POLL_INTERVAL_SECONDS, remaining))

    async def delete_batch(self, queue_url: str, receipt_handles: Sequence[str]) -> DeleteResult:
        queue = self._queues.get(queue_url, {})
        by_handle = {stored.receipt_handle: message_id for message_id, stored in queue.items()}
        deleted: list[str] = []
        failed: dict[str, str] = {}
        for handle in receipt_handles:
            message_id = by_handle.get(handle)
            if message_id is None:
                failed[handle] = "ReceiptHandleIsInvalid"
                continue
            del queue[message_id]
            deleted.append(handle)
        return DeleteResult(deleted=tuple(deleted), failed=failed)

    async def close(self) -> None:
        return
