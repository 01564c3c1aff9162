"""Queue client factory: selects implementation from config. Only place that imports concrete clients."""
from __future__ import annotations

import boto3
from botocore.config import Config

from worker.app.config.settings import Settings
from worker.app.infrastructure.messaging.rabbitmq.rabbitmq_queue_client import RabbitMQQueueClient
from worker.app.infrastructure.messaging.sqs.sqs_queue_client import SqsQueueClient
from worker.app.ports.queue_client import QueueClient


def create_sqs_client(settings: Settings):
    """Build a boto3 SQS client whose read timeout outlasts the long poll."""
    config = Config(
        read_timeout=settings.wait_time_seconds + 10,
        retries={"max_attempts": 3, "mode": "standard"},
    )
    return boto3.client(
        "sqs",
        region_name=settings.aws_region,
        endpoint_url=settings.aws_endpoint_url,
        config=config,
    )


def create_queue_client(settings: Settings) -> QueueClient:
    backend = settings.consumer_backend.strip().lower()

    if backend == "sqs":
        return SqsQueueClient(
            create_sqs_client(settings),
            visibility_timeout_seconds=settings.visibility_timeout_seconds,
        )

    if backend == "rabbitmq":
        return RabbitMQQueueClient(settings)

    raise ValueError(f"Unsupported consumer backend: {backend}")
