"""Concrete QueueClient for Amazon SQS using boto3 (injected where QueueClient is needed).

boto3 is blocking; every call runs on a single-thread executor owned by this
client so the event loop keeps observing the stop event. A call abandoned on
shutdown still finishes in its thread (at most one long poll); close() waits
for it, bounded, before closing the boto3 client underneath it.
"""
from __future__ import annotations

import asyncio
import functools
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Sequence

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)
from loguru import logger

from worker.app.constants import SQS_MAX_BATCH_SIZE, SQS_MAX_WAIT_SECONDS
from worker.app.core import SERVICE_NAME
from worker.app.domain.models import Batch, DeleteResult, QueueMessage
from worker.app.ports.queue_client import QueueClientError, QueueTransientError

TRANSIENT_ERROR_CODES = frozenset(
    {
        "ThrottlingException",
        "Throttling",
        "RequestThrottled",
        "RequestTimeout",
        "ServiceUnavailable",
        "InternalError",
        "InternalFailure",
        "KMS.ThrottlingException",
    }
)

_NETWORK_ERRORS = (
    EndpointConnectionError,
    ConnectionClosedError,
    ConnectTimeoutError,
    ReadTimeoutError,
)


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _map_client_error(exc: ClientError, operation: str) -> QueueClientError:
    error = exc.response.get("Error", {})
    code = str(error.get("Code", ""))
    status = int(exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0) or 0)
    text = f"sqs {operation} failed ({code or status}): {error.get('Message', '')}".rstrip(": ")
    if code in TRANSIENT_ERROR_CODES or status >= 500:
        return QueueTransientError(text)
    return QueueClientError(text)


def _to_queue_message(raw: dict[str, Any]) -> QueueMessage:
    attributes = raw.get("Attributes") or {}
    return QueueMessage(
        body=str(raw.get("Body", "")).encode("utf-8"),
        receipt_handle=raw["ReceiptHandle"],
        receive_count=int(attributes.get("ApproximateReceiveCount", 1)),
        message_id=str(raw.get("MessageId", "")),
    )


class SqsQueueClient:
    """QueueClient implementation over a boto3 SQS client."""

    def __init__(
        self,
        sqs_client: Any,
        *,
        visibility_timeout_seconds: int | None = None,
        close_timeout_seconds: float = SQS_MAX_WAIT_SECONDS + 5,
    ) -> None:
        self._client = sqs_client
        self._visibility_timeout = visibility_timeout_seconds
        self._close_timeout = close_timeout_seconds
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sqs")
        self._in_flight: Future | None = None

    async def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        loop = asyncio.get_running_loop()
        method = getattr(self._client, operation)
        future = self._executor.submit(functools.partial(method, **kwargs))
        self._in_flight = future
        try:
            return await asyncio.wrap_future(future, loop=loop)
        except ClientError as exc:
            raise _map_client_error(exc, operation) from exc
        except _NETWORK_ERRORS as exc:
            raise QueueTransientError(f"sqs {operation} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise QueueClientError(f"sqs {operation} failed: {exc}") from exc

    async def connect(self) -> None:
        _log("sqs_client_ready")

    async def receive(self, queue_url: str, max_messages: int, wait_seconds: int) -> Batch:
        params: dict[str, Any] = {
            "QueueUrl": queue_url,
            "MaxNumberOfMessages": max(1, min(max_messages, SQS_MAX_BATCH_SIZE)),
            "WaitTimeSeconds": max(0, min(wait_seconds, SQS_MAX_WAIT_SECONDS)),
            "MessageSystemAttributeNames": ["ApproximateReceiveCount"],
        }
        if self._visibility_timeout is not None:
            params["VisibilityTimeout"] = self._visibility_timeout
        response = await self._call("receive_message", **params)
        return [_to_queue_message(raw) for raw in response.get("Messages", [])]

    async def delete_batch(self, queue_url: str, receipt_handles: Sequence[str]) -> DeleteResult:
        deleted: list[str] = []
        failed: dict[str, str] = {}
        handles = list(receipt_handles)
        for start in range(0, len(handles), SQS_MAX_BATCH_SIZE):
            chunk = handles[start:start + SQS_MAX_BATCH_SIZE]
            by_id = {f"{i:02d}": handle for i, handle in enumerate(chunk)}
            response = await self._call(
                "delete_message_batch",
                QueueUrl=queue_url,
                Entries=[{"Id": entry_id, "ReceiptHandle": handle} for entry_id, handle in by_id.items()],
            )
            for entry in response.get("Successful", []):
                deleted.append(by_id[entry["Id"]])
            for entry in response.get("Failed", []):
                failed[by_id[entry["Id"]]] = f"{entry.get('Code', 'Unknown')}: {entry.get('Message', '')}".rstrip(": ")
        return DeleteResult(deleted=tuple(deleted), failed=failed)

    async def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        in_flight = self._in_flight
        if in_flight is not None and not in_flight.done():
            _log("sqs_close_waiting", timeout_seconds=self._close_timeout)
            waiter = asyncio.wrap_future(in_flight)
            await asyncio.wait({waiter}, timeout=self._close_timeout)
            if waiter.done() and not waiter.cancelled():
                waiter.exception()
            if not in_flight.done():
                logger.bind(service_name=SERVICE_NAME, event="sqs_client_close_skipped").warning(
                    "sqs call still running after {}s; leaving the boto3 client open", self._close_timeout
                )
                return
        close = getattr(self._client, "close", None)
        if callable(close):
            close()
        _log("sqs_client_closed")
