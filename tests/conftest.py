from __future__ import annotations

import pytest

from tests.fakes import QUEUE_URL
from worker.app.domain.models import WorkerConfig


@pytest.fixture()
def fast_config() -> WorkerConfig:
    return WorkerConfig(
        queue_url=QUEUE_URL,
        idle_delay_seconds=0,
        error_backoff_seconds=0,
        delete_timeout_seconds=1.0,
    )


@pytest.fixture()
def captured_events():
    """Collect level, message and bound fields of every loguru record emitted during the test."""
    from loguru import logger

    events: list[dict] = []

    def sink(message) -> None:
        record = message.record
        events.append({"level": record["level"].name, "message": record["message"], **record["extra"]})

    handler_id = logger.add(sink, level="DEBUG")
    yield events
    logger.remove(handler_id)
