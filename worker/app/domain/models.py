"""Domain models."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from worker.app.constants import DELETE_POLICY


@dataclass(frozen=True)
class QueueMessage:
    """A received message: raw payload plus the handle needed to delete it.

    The receipt handle is only valid while the message is invisible to other
    consumers; once the visibility timeout elapses the message is redelivered
    with a new handle and a higher receive count.
    """

    body: bytes
    receipt_handle: str
    receive_count: int = 1
    message_id: str = ""


Batch = list[QueueMessage]


@dataclass(frozen=True)
class ProcessingResult:
    """Outcome of processing one message. Only successes are safe to delete."""

    ok: bool
    error: str | None = None

    @classmethod
    def success(cls) -> "ProcessingResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, error: str) -> "ProcessingResult":
        return cls(ok=False, error=error)


@dataclass(frozen=True)
class DeleteResult:
    """Result of a batch delete; `failed` maps receipt handle to failure reason."""

    deleted: tuple[str, ...] = ()
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def all_deleted(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class WorkerConfig:
    """Immutable loop configuration, built once from settings at startup."""

    queue_url: str
    max_messages: int = 10
    wait_time_seconds: int = 20
    idle_delay_seconds: float = 1.0
    delete_policy: str = DELETE_POLICY.SUCCESSFUL
    error_backoff_seconds: float = 5.0
    delete_timeout_seconds: float = 10.0

    def __post_init__(self) -> None:
        if not self.queue_url:
            raise ValueError("queue_url must be a non-empty string")
        if self.max_messages < 1:
            raise ValueError("max_messages must be >= 1")
        if self.wait_time_seconds < 0:
            raise ValueError("wait_time_seconds must be >= 0")
        if self.idle_delay_seconds < 0:
            raise ValueError("idle_delay_seconds must be >= 0")
        if self.delete_policy not in DELETE_POLICY.ALL_POLICIES:
            raise ValueError(f"unsupported delete policy: {self.delete_policy}")


@dataclass(frozen=True)
class InboundMessage:
    """Parsed payload of a queued request. Unknown JSON fields are dropped."""

    my_field: str

    @staticmethod
    def from_json(payload: Any) -> "InboundMessage":
        if not isinstance(payload, dict):
            raise ValueError("message body must be a JSON object")
        value = payload.get("myField")
        if value is None:
            raise ValueError("message missing required field: myField")
        if not isinstance(value, str):
            raise ValueError("message field myField must be a string")
        return InboundMessage(my_field=value)

    def to_dict(self) -> dict[str, Any]:
        return {"myField": self.my_field}
