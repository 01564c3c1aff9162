"""Unit tests for the reference ProcessingService (decode + log)."""
from __future__ import annotations

import asyncio

import pytest

from tests.fakes import make_message
from worker.app.application.processing_service import ProcessingService
from worker.app.domain.models import QueueMessage


def test_valid_payload_succeeds_and_logs_parsed_fields(captured_events):
    svc = ProcessingService()
    result = asyncio.run(svc.process(make_message({"myField": "a"}, "rh-1", receive_count=2)))

    assert result.ok is True
    assert result.error is None
    processed = [e for e in captured_events if e.get("event") == "message_processed"]
    assert processed[0]["payload"] == {"myField": "a"}
    assert processed[0]["receive_count"] == 2
    assert processed[0]["message_id"] == "id-rh-1"


def test_unknown_fields_are_ignored(captured_events):
    svc = ProcessingService()
    result = asyncio.run(svc.process(make_message({"myField": "x", "other": 1, "nested": {}}, "rh-1")))

    assert result.ok is True
    processed = [e for e in captured_events if e.get("event") == "message_processed"]
    assert processed[0]["payload"] == {"myField": "x"}


@pytest.mark.parametrize(
    "body, error_fragment",
    [
        ("not json", "not valid JSON"),
        ('["a", "b"]', "must be a JSON object"),
        ('{"other": "a"}', "missing required field: myField"),
        ('{"myField": 3}', "myField must be a string"),
    ],
)
def test_malformed_payload_is_a_failure_not_an_exception(body, error_fragment, captured_events):
    svc = ProcessingService()
    result = asyncio.run(svc.process(make_message(body, "rh-1")))

    assert result.ok is False
    assert error_fragment in result.error
    failed = [e for e in captured_events if e.get("event") == "message_failed"]
    assert len(failed) == 1
    assert failed[0]["level"] == "WARNING"


def test_non_utf8_body_is_a_failure():
    svc = ProcessingService()
    message = QueueMessage(body=b"\xff\xfe\x00", receipt_handle="rh-1")

    result = asyncio.run(svc.process(message))

    assert result.ok is False
    assert "not valid UTF-8" in result.error
