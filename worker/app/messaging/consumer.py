"""
Queue consumer loop: receive a batch, process each message, delete acknowledged ones.

Lifecycle:
  IDLE -> RUNNING (run() called) -> STOPPING (stop event observed) -> STOPPED.
  The stop event is checked before every receive. A receive in flight is abandoned
  when the event fires; the message being processed is allowed to finish, later
  messages of the batch are left for redelivery; the delete for already processed
  messages is still issued, bounded by delete_timeout_seconds; the idle sleep
  returns early.

Errors:
  QueueTransientError from receive/delete is logged and the loop carries on after
  error_backoff_seconds. Any other QueueClientError propagates out of run().
  Exceptions raised by the processor count as a failed result for that message.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from worker.app.constants import DELETE_POLICY
from worker.app.core import SERVICE_NAME
from worker.app.core.cancellation import OperationAbandoned, cancellable_sleep, race_with_stop
from worker.app.domain.models import Batch, ProcessingResult, QueueMessage, WorkerConfig
from worker.app.messaging.constants import LoopState
from worker.app.ports.message_processor import MessageProcessor
from worker.app.ports.queue_client import QueueClient, QueueTransientError


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class ConsumerLoop:
    """Single-task poll/process/delete loop over one queue."""

    def __init__(
        self,
        queue_client: QueueClient,
        processor: MessageProcessor,
        config: WorkerConfig,
        *,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self._client = queue_client
        self._processor = processor
        self._config = config
        self._stop = stop_event or asyncio.Event()
        self._state = LoopState.IDLE

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def stop_event(self) -> asyncio.Event:
        return self._stop

    def request_stop(self) -> None:
        self._stop.set()

    def _mark_stopping(self) -> None:
        if self._state == LoopState.RUNNING:
            self._state = LoopState.STOPPING
            _log("worker_stopping")

    async def run(self) -> None:
        if self._state != LoopState.IDLE:
            raise RuntimeError(f"consumer loop cannot start from state {self._state.value}")
        self._state = LoopState.RUNNING
        _log(
            "worker_started",
            queue_url=self._config.queue_url,
            delete_policy=self._config.delete_policy,
        )
        try:
            while not self._stop.is_set():
                await self._run_iteration()
        finally:
            self._mark_stopping()
            self._state = LoopState.STOPPED
            _log("worker_stopped")

    async def _run_iteration(self) -> None:
        _log("worker_running", time=datetime.now(timezone.utc).isoformat())
        try:
            batch = await race_with_stop(
                self._client.receive(
                    self._config.queue_url,
                    self._config.max_messages,
                    self._config.wait_time_seconds,
                ),
                self._stop,
            )
        except OperationAbandoned:
            self._mark_stopping()
            return
        except QueueTransientError as exc:
            await self._on_transient_error("receive", exc)
            return

        _log("batch_received", message_count=len(batch))
        if batch:
            processed = await self._process_batch(batch)
            await self._delete_processed(processed)

        if not await cancellable_sleep(self._config.idle_delay_seconds, self._stop):
            self._mark_stopping()

    async def _process_batch(self, batch: Batch) -> list[tuple[QueueMessage, ProcessingResult]]:
        processed: list[tuple[QueueMessage, ProcessingResult]] = []
        for index, message in enumerate(batch):
            if self._stop.is_set():
                self._mark_stopping()
                _log("batch_interrupted", processed=index, remaining=len(batch) - index)
                break
            processed.append((message, await self._process_one(message)))
        return processed

    async def _process_one(self, message: QueueMessage) -> ProcessingResult:
        try:
            return await self._processor.process(message)
        except Exception as exc:
            logger.bind(
                service_name=SERVICE_NAME,
                event="message_failed",
                message_id=message.message_id,
                receive_count=message.receive_count,
            ).exception("message processing raised: {}", exc)
            return ProcessingResult.failure(str(exc))

    def _receipt_handles_to_delete(
        self,
        processed: list[tuple[QueueMessage, ProcessingResult]],
    ) -> list[str]:
        if self._config.delete_policy == DELETE_POLICY.ALL:
            return [message.receipt_handle for message, _ in processed]
        return [message.receipt_handle for message, result in processed if result.ok]

    async def _delete_processed(self, processed: list[tuple[QueueMessage, ProcessingResult]]) -> None:
        handles = self._receipt_handles_to_delete(processed)
        if not handles:
            _log("delete_skipped", processed=len(processed))
            return
        try:
            result = await asyncio.wait_for(
                self._client.delete_batch(self._config.queue_url, handles),
                timeout=self._config.delete_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.bind(
                service_name=SERVICE_NAME,
                event="queue_error",
                operation="delete",
                error="timed out",
                message_count=len(handles),
            ).warning("")
            return
        except QueueTransientError as exc:
            await self._on_transient_error("delete", exc)
            return

        _log("messages_deleted", message_count=len(result.deleted))
        if result.failed:
            logger.bind(
                service_name=SERVICE_NAME,
                event="delete_failed",
                message_count=len(result.failed),
                errors=sorted(set(result.failed.values())),
            ).warning("")

    async def _on_transient_error(self, operation: str, exc: Exception) -> None:
        logger.bind(
            service_name=SERVICE_NAME,
            event="queue_error",
            operation=operation,
            error=str(exc),
        ).warning("")
        if not await cancellable_sleep(self._config.error_backoff_seconds, self._stop):
            self._mark_stopping()
