"""Worker composition root: build and lifecycle-manage concrete dependencies.

Composition may: import concrete classes, call factories, store interface types,
manage high-level lifecycle.
"""
from __future__ import annotations

import asyncio

from loguru import logger

from worker.app.application.processing_service import ProcessingService
from worker.app.config.settings import Settings
from worker.app.domain.models import WorkerConfig
from worker.app.infrastructure.messaging.factory import create_queue_client
from worker.app.messaging.consumer import ConsumerLoop
from worker.app.ports.message_processor import MessageProcessor
from worker.app.ports.queue_client import QueueClient


class WorkerDependencies:
    """Holds wired worker dependencies and their lifecycle."""

    def __init__(
        self,
        *,
        settings: Settings,
        queue_client: QueueClient | None = None,
        processor: MessageProcessor | None = None,
    ) -> None:
        self._settings = settings
        self._config: WorkerConfig = settings.to_worker_config()
        self._queue_client = queue_client
        self._processor = processor
        self._consumer: ConsumerLoop | None = None
        self._connected = False

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def config(self) -> WorkerConfig:
        return self._config

    @property
    def queue_client(self) -> QueueClient:
        if self._queue_client is None:
            raise RuntimeError("queue_client is not initialized")
        return self._queue_client

    @property
    def consumer(self) -> ConsumerLoop:
        if self._consumer is None:
            raise RuntimeError("consumer is not initialized")
        return self._consumer

    async def connect(self, stop_event: asyncio.Event | None = None) -> None:
        if self._queue_client is None:
            self._queue_client = create_queue_client(self._settings)
        await self._queue_client.connect()

        if self._processor is None:
            self._processor = ProcessingService()
        self._consumer = ConsumerLoop(
            self._queue_client,
            self._processor,
            self._config,
            stop_event=stop_event,
        )
        self._connected = True

    async def close(self) -> None:
        if self._queue_client is not None and self._connected:
            try:
                await self._queue_client.close()
            except Exception as exc:
                logger.warning("queue client close failed: {}", exc)
        self._consumer = None
        self._connected = False


def create_worker_dependencies(settings: Settings | None = None) -> WorkerDependencies:
    return WorkerDependencies(settings=settings or Settings())
