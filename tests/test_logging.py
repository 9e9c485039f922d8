import json
import logging

from core.logging import (
    JsonFormatter,
    clear_trace_context,
    parse_cloud_trace_header,
    set_trace_context,
    token_hint,
)


def _format(**extra):
    record = logging.LogRecord("services.test", logging.INFO, __file__, 1, "Session created", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(JsonFormatter().format(record))


def test_secrets_are_reduced_to_hints():
    payload = _format(session_token="AbCdEf1234567890", code="123456", channel="sms")

    assert payload["session_token"] == "AbCdEf***"
    assert payload["code"] == "***"
    assert payload["channel"] == "sms"
    assert payload["message"] == "Session created"


def test_trace_context_is_attached():
    set_trace_context("trace-1", "span-1", True)
    try:
        payload = _format()
    finally:
        clear_trace_context()

    assert payload["traceId"] == "trace-1"
    assert payload["spanId"] == "span-1"
    assert payload["trace_sampled"] is True


def test_token_hint_handles_empty_values():
    assert token_hint(None) is None
    assert token_hint("short") == "***"


def test_parse_cloud_trace_header():
    assert parse_cloud_trace_header("abc123/456;o=1") == ("abc123", "456", True)
    assert parse_cloud_trace_header("abc123/456;o=0") == ("abc123", "456", False)
    assert parse_cloud_trace_header("abc123") == ("abc123", None, None)
    assert parse_cloud_trace_header(None) == (None, None, None)
