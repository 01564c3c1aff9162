"""Port: per-message processing hook invoked by the consumer loop."""
from __future__ import annotations

from typing import Protocol

from worker.app.domain.models import ProcessingResult, QueueMessage


class MessageProcessor(Protocol):
    async def process(self, message: QueueMessage) -> ProcessingResult: ...
