"""Unit tests for environment-driven Settings and the WorkerConfig they build."""
from __future__ import annotations

import dataclasses

import pytest
from pydantic import ValidationError

from worker.app.config.settings import Settings
from worker.app.constants import DELETE_POLICY
from worker.app.domain.models import WorkerConfig

QUEUE_URL = "https://sqs.eu-west-1.amazonaws.com/123456789012/poc-queue"


def test_defaults_match_reference_worker(monkeypatch):
    monkeypatch.setenv("QUEUE_URL", QUEUE_URL)

    settings = Settings(_env_file=None)
    config = settings.to_worker_config()

    assert settings.consumer_backend == "sqs"
    assert config == WorkerConfig(
        queue_url=QUEUE_URL,
        max_messages=10,
        wait_time_seconds=20,
        idle_delay_seconds=1.0,
        delete_policy=DELETE_POLICY.SUCCESSFUL,
        error_backoff_seconds=5.0,
        delete_timeout_seconds=10.0,
    )


def test_env_overrides_are_parsed_and_normalised(monkeypatch):
    monkeypatch.setenv("QUEUE_URL", QUEUE_URL)
    monkeypatch.setenv("CONSUMER_BACKEND", " RabbitMQ ")
    monkeypatch.setenv("DELETE_POLICY", "ALL")
    monkeypatch.setenv("IDLE_DELAY_SECONDS", "0")
    monkeypatch.setenv("MAX_MESSAGES", "5")
    monkeypatch.setenv("LOG_JSON", "false")

    settings = Settings(_env_file=None)

    assert settings.consumer_backend == "rabbitmq"
    assert settings.delete_policy == DELETE_POLICY.ALL
    assert settings.idle_delay_seconds == 0
    assert settings.max_messages == 5
    assert settings.log_json is False


def test_queue_url_is_required(monkeypatch):
    monkeypatch.delenv("QUEUE_URL", raising=False)

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


@pytest.mark.parametrize(
    "name, value",
    [
        ("MAX_MESSAGES", "11"),
        ("MAX_MESSAGES", "0"),
        ("WAIT_TIME_SECONDS", "21"),
        ("IDLE_DELAY_SECONDS", "-1"),
        ("DELETE_POLICY", "sometimes"),
    ],
)
def test_out_of_range_values_are_rejected(monkeypatch, name, value):
    monkeypatch.setenv("QUEUE_URL", QUEUE_URL)
    monkeypatch.setenv(name, value)

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_worker_config_is_immutable():
    config = WorkerConfig(queue_url=QUEUE_URL)

    with pytest.raises(dataclasses.FrozenInstanceError):
        config.queue_url = "other"  # type: ignore[misc]


def test_worker_config_rejects_empty_queue_url():
    with pytest.raises(ValueError, match="queue_url"):
        WorkerConfig(queue_url="")
