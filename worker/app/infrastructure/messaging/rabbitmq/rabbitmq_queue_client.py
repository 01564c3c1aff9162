"""
RabbitMQ QueueClient: connection lifecycle, lazy queue declaration, pull-based receive.

Lifecycle:
  DISCONNECTED -> CONNECTING (backoff) -> READY -> CLOSING -> CLOSED.
  aio_pika's robust connection restores the channel after a broker disconnect;
  deliveries outstanding at that point are redelivered by the broker, so their
  receipt handles are dropped and deleting them reports a failure.

Semantics:
  The queue address is the queue name. RabbitMQ has no long-poll get, so receive
  polls basic.get until the first message or the wait elapses, then drains up to
  max_messages without waiting. Deleting a message acks its delivery. A delivery
  that is not deleted before its visibility deadline is nacked with requeue on
  the next receive, so the broker redelivers it (redelivered flag set, and
  x-delivery-count on quorum queues). Dead-lettering after repeated failures is
  left to the broker's delivery-limit policy.
"""
from __future__ import annotations

import asyncio
import uuid
from typing import Any, Sequence

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractIncomingMessage, AbstractQueue, AbstractRobustConnection
from aio_pika.exceptions import AMQPError, ChannelInvalidStateError
from loguru import logger

from worker.app.config.settings import Settings
from worker.app.core import SERVICE_NAME
from worker.app.core.backoff import exponential_backoff
from worker.app.domain.models import Batch, DeleteResult
from worker.app.infrastructure.messaging.rabbitmq.aio_pika_message_adapter import to_queue_message
from worker.app.infrastructure.messaging.rabbitmq.constants import ClientState
from worker.app.ports.queue_client import QueueClientError, QueueTransientError

POLL_INTERVAL_SECONDS = 0.2
GET_TIMEOUT_SECONDS = 5
DEFAULT_VISIBILITY_TIMEOUT_SECONDS = 30


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class RabbitMQQueueClient:
    """QueueClient implementation"""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._state = ClientState.DISCONNECTED
        self._connection: AbstractRobustConnection | None = None
        self._channel: AbstractChannel | None = None
        self._queues: dict[str, AbstractQueue] = {}
        # receipt handle -> (delivery, loop time after which it is requeued)
        self._unacked: dict[str, tuple[AbstractIncomingMessage, float]] = {}

    @property
    def state(self) -> ClientState:
        return self._state

    def _build_amqp_url(self) -> str:
        return (
            f"amqp://{self._settings.broker_user}:{self._settings.broker_password}"
            f"@{self._settings.broker_host}:{self._settings.broker_port}/"
        )

    def _on_reconnect(self, *args: Any, **kwargs: Any) -> None:
        if self._unacked:
            _log("rmq_unacked_dropped", message_count=len(self._unacked))
        self._unacked.clear()

    async def connect(self) -> None:
        self._state = ClientState.CONNECTING
        _log("rmq_connecting")
        async for attempt in exponential_backoff(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
        ):
            _log("rmq_connect_attempt", attempt=attempt)
            try:
                self._connection = await aio_pika.connect_robust(self._build_amqp_url())
                break
            except Exception as e:
                logger.warning("rmq connect failed: {}", e)
                if attempt >= self._settings.max_connection_attempts:
                    _log("rmq_connect_failed", attempt=attempt)
                    self._state = ClientState.DISCONNECTED
                    raise QueueTransientError(f"rabbitmq connect failed: {e}") from e

        reconnect_callbacks = getattr(self._connection, "reconnect_callbacks", None)
        if reconnect_callbacks is not None:
            reconnect_callbacks.add(self._on_reconnect)
        self._channel = await self._connection.channel()
        await self._channel.set_qos(prefetch_count=self._settings.prefetch_count)
        self._state = ClientState.READY
        _log("rmq_connected")

    async def _get_queue(self, queue_name: str) -> AbstractQueue:
        if self._channel is None or self._state != ClientState.READY:
            raise QueueClientError("rabbitmq client not connected")
        queue = self._queues.get(queue_name)
        if queue is None:
            queue = await self._channel.declare_queue(queue_name, durable=True)
            self._queues[queue_name] = queue
        return queue

    async def _get_one(self, queue: AbstractQueue) -> AbstractIncomingMessage | None:
        try:
            return await queue.get(no_ack=False, fail=False, timeout=GET_TIMEOUT_SECONDS)
        except (AMQPError, ChannelInvalidStateError, ConnectionError, asyncio.TimeoutError) as exc:
            raise QueueTransientError(f"rabbitmq get failed: {exc}") from exc

    def _visibility_timeout(self) -> float:
        timeout = self._settings.visibility_timeout_seconds
        return DEFAULT_VISIBILITY_TIMEOUT_SECONDS if timeout is None else timeout

    async def _requeue_expired(self, now: float) -> None:
        expired = [handle for handle, (_, deadline) in self._unacked.items() if deadline <= now]
        for handle in expired:
            message, _ = self._unacked.pop(handle)
            try:
                await message.nack(requeue=True)
            except Exception as e:
                logger.warning("rmq nack failed (broker requeues on channel close): {}", e)
        if expired:
            _log("rmq_visibility_expired", message_count=len(expired))

    async def receive(self, queue_url: str, max_messages: int, wait_seconds: int) -> Batch:
        queue = await self._get_queue(queue_url)
        loop = asyncio.get_running_loop()
        await self._requeue_expired(loop.time())
        deadline = loop.time() + wait_seconds

        first = await self._get_one(queue)
        while first is None:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return []
            await asyncio.sleep(min(POLL_INTERVAL_SECONDS, remaining))
            first = await self._get_one(queue)

        raw_messages = [first]
        while len(raw_messages) < max_messages:
            message = await self._get_one(queue)
            if message is None:
                break
            raw_messages.append(message)

        batch: Batch = []
        visible_again_at = loop.time() + self._visibility_timeout()
        for raw in raw_messages:
            receipt_handle = uuid.uuid4().hex
            self._unacked[receipt_handle] = (raw, visible_again_at)
            batch.append(to_queue_message(raw, receipt_handle))
        return batch

    async def delete_batch(self, queue_url: str, receipt_handles: Sequence[str]) -> DeleteResult:
        deleted: list[str] = []
        failed: dict[str, str] = {}
        for handle in receipt_handles:
            entry = self._unacked.pop(handle, None)
            if entry is None:
                failed[handle] = "unknown or expired receipt handle"
                continue
            message, _ = entry
            try:
                await message.ack()
            except Exception as e:
                logger.warning("rmq ack failed: {}", e)
                failed[handle] = str(e)
                continue
            deleted.append(handle)
        return DeleteResult(deleted=tuple(deleted), failed=failed)

    async def close(self) -> None:
        self._state = ClientState.CLOSING
        _log("rmq_closing", unacked=len(self._unacked))
        self._unacked.clear()
        self._queues.clear()
        if self._channel is not None:
            try:
                await self._channel.close()
            except Exception as e:
                logger.warning("channel close failed (continuing to close connection): {}", e)
            self._channel = None
        if self._connection is not None:
            try:
                await self._connection.close()
            except Exception as e:
                logger.warning("connection close failed: {}", e)
            self._connection = None
        self._state = ClientState.CLOSED
