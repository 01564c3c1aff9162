"""Port: queue client used by the consumer loop. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from worker.app.domain.models import Batch, DeleteResult


class QueueClientError(Exception):
    """Base for queue client failures. Not retried by the consumer loop."""


class QueueTransientError(QueueClientError):
    """Throttling, timeouts, network or server-side errors worth retrying."""


@runtime_checkable
class QueueClient(Protocol):
    """Receive-with-wait and batch delete against an at-least-once queue.

    Calls are made sequentially; implementations need not be thread-safe.
    """

    async def connect(self) -> None: ...

    async def receive(self, queue_url: str, max_messages: int, wait_seconds: int) -> Batch:
        """Return up to `max_messages`, waiting up to `wait_seconds` for the first one."""
        ...

    async def delete_batch(self, queue_url: str, receipt_handles: Sequence[str]) -> DeleteResult:
        """Delete the given messages. Partial failures are reported, not raised."""
        ...

    async def close(self) -> None:
        """Release resources. No-op allowed if nothing to close."""
        ...
