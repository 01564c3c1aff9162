from __future__ import annotations

import json
from typing import Any

from loguru import logger

from worker.app.core import SERVICE_NAME
from worker.app.domain.models import InboundMessage, ProcessingResult, QueueMessage


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class ProcessingService:
    """
    Reference processing step: decode the payload into an InboundMessage and log it.

    A body that is not UTF-8 JSON with a string `myField` is a permanent failure
    for that message; it is reported as a failure (never raised) so the rest of
    the batch carries on and the queue routes it to the dead-letter queue after
    its max receive count.
    """

    async def process(self, message: QueueMessage) -> ProcessingResult:
        try:
            payload = self._deserialize_message(message.body)
        except ValueError as exc:
            error_text = str(exc)
            logger.bind(
                service_name=SERVICE_NAME,
                event="message_failed",
                message_id=message.message_id,
                receive_count=message.receive_count,
                error=error_text,
            ).warning("")
            return ProcessingResult.failure(error_text)

        _log(
            "message_processed",
            message_id=message.message_id,
            receive_count=message.receive_count,
            payload=payload.to_dict(),
        )
        return ProcessingResult.success()

    def _deserialize_message(self, raw_body: bytes) -> InboundMessage:
        try:
            body = json.loads(raw_body.decode("utf-8"))
        except UnicodeDecodeError as exc:
            raise ValueError(f"message body is not valid UTF-8: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ValueError(f"message body is not valid JSON: {exc}") from exc
        return InboundMessage.from_json(body)
