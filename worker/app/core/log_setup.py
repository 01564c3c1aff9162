"""Loguru sink configuration for the worker process."""
from __future__ import annotations

import sys

from loguru import logger

from worker.app.core import APPLICATION_NAME, SERVICE_NAME


def configure_logging(level: str = "INFO", *, serialize: bool = True) -> None:
    """Replace the default sink with a single stderr sink.

    With `serialize=True` every record is written as one JSON object, bound
    fields (event, counts, ids) included under `record.extra`.
    """
    logger.remove()
    logger.configure(extra={"application": APPLICATION_NAME, "service_name": SERVICE_NAME})
    logger.add(
        sys.stderr,
        level=level.upper(),
        serialize=serialize,
        backtrace=False,
        diagnose=False,
        enqueue=False,
    )
