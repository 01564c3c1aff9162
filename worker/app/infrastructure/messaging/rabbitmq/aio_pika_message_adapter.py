"""Adapter: map aio_pika.IncomingMessage onto the domain QueueMessage."""
from __future__ import annotations

from aio_pika.abc import AbstractIncomingMessage

from worker.app.domain.models import QueueMessage


def _receive_count(message: AbstractIncomingMessage) -> int:
    # quorum queues report deliveries so far; classic queues only flag redelivery
    headers = message.headers or {}
    delivery_count = headers.get("x-delivery-count")
    if isinstance(delivery_count, int):
        return delivery_count + 1
    return 2 if message.redelivered else 1


def to_queue_message(message: AbstractIncomingMessage, receipt_handle: str) -> QueueMessage:
    return QueueMessage(
        body=message.body,
        receipt_handle=receipt_handle,
        receive_count=_receive_count(message),
        message_id=message.message_id or "",
    )
