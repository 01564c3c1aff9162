from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from worker.app.constants import DELETE_POLICY
from worker.app.domain.models import WorkerConfig


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    queue_url: str = Field(..., min_length=1, validation_alias="QUEUE_URL")
    consumer_backend: str = Field("sqs", validation_alias="CONSUMER_BACKEND")

    # SQS caps a single receive at 10 messages and a long poll at 20 seconds.
    max_messages: int = Field(10, ge=1, le=10, validation_alias="MAX_MESSAGES")
    wait_time_seconds: int = Field(20, ge=0, le=20, validation_alias="WAIT_TIME_SECONDS")
    idle_delay_seconds: float = Field(1.0, ge=0, validation_alias="IDLE_DELAY_SECONDS")
    delete_policy: str = Field(DELETE_POLICY.SUCCESSFUL, validation_alias="DELETE_POLICY")
    error_backoff_seconds: float = Field(5.0, ge=0, validation_alias="ERROR_BACKOFF_SECONDS")
    delete_timeout_seconds: float = Field(10.0, gt=0, validation_alias="DELETE_TIMEOUT_SECONDS")

    aws_region: str | None = Field(None, validation_alias="AWS_REGION")
    aws_endpoint_url: str | None = Field(None, validation_alias="AWS_ENDPOINT_URL")
    # SQS: per-receive override of the queue default. RabbitMQ: seconds before an
    # undeleted delivery is requeued (30 when unset).
    visibility_timeout_seconds: int | None = Field(
        None,
        ge=0,
        le=43200,
        validation_alias="VISIBILITY_TIMEOUT_SECONDS",
    )

    broker_host: str = Field("localhost", validation_alias="BROKER_HOST")
    broker_port: int = Field(5672, validation_alias="BROKER_PORT")
    broker_user: str = Field("guest", validation_alias="BROKER_USER")
    broker_password: str = Field("guest", validation_alias="BROKER_PASSWORD")
    prefetch_count: int = Field(10, ge=1, validation_alias="PREFETCH_COUNT")

    initial_backoff_seconds: float = Field(1.0, ge=0, validation_alias="INITIAL_BACKOFF_SECONDS")
    max_backoff_seconds: float = Field(30.0, ge=0, validation_alias="MAX_BACKOFF_SECONDS")
    backoff_multiplier: float = Field(2.0, ge=1, validation_alias="BACKOFF_MULTIPLIER")
    max_connection_attempts: int = Field(5, ge=1, validation_alias="MAX_CONNECTION_ATTEMPTS")

    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    log_json: bool = Field(True, validation_alias="LOG_JSON")

    @field_validator("consumer_backend")
    @classmethod
    def _normalise_backend(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("delete_policy")
    @classmethod
    def _known_delete_policy(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in DELETE_POLICY.ALL_POLICIES:
            raise ValueError(f"unsupported delete policy: {value}")
        return value

    def to_worker_config(self) -> WorkerConfig:
        return WorkerConfig(
            queue_url=self.queue_url,
            max_messages=self.max_messages,
            wait_time_seconds=self.wait_time_seconds,
            idle_delay_seconds=self.idle_delay_seconds,
            delete_policy=self.delete_policy,
            error_backoff_seconds=self.error_backoff_seconds,
            delete_timeout_seconds=self.delete_timeout_seconds,
        )
