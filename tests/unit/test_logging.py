"""Unit tests for JSON log formatting."""

from __future__ import annotations

import json
import logging

from nodeprobe.logging_config import JsonFormatter
from nodeprobe.middleware.request_id import current_request_id


def _record(message: str, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="nodeprobe.test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_required_fields(self) -> None:
        entry = json.loads(JsonFormatter().format(_record("hello")))

        assert entry["message"] == "hello"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "nodeprobe.test"
        assert "timestamp" in entry
        assert entry["request_id"] is None

    def test_probe_context_fields(self) -> None:
        record = _record("probe", node="HK 01", target="gpt", status=403, latency_ms=12.5)
        entry = json.loads(JsonFormatter().format(record))

        assert entry["node"] == "HK 01"
        assert entry["target"] == "gpt"
        assert entry["status"] == 403
        assert entry["latency_ms"] == 12.5

    def test_request_id_from_context(self) -> None:
        token = current_request_id.set("req-42")
        try:
            entry = json.loads(JsonFormatter().format(_record("x")))
        finally:
            current_request_id.reset(token)

        assert entry["request_id"] == "req-42"

    def test_secrets_are_redacted(self) -> None:
        record = _record("calling core with authorization: Bearer abc123", error_reason="token=xyz789")
        line = JsonFormatter().format(record)

        assert "abc123" not in line
        assert "xyz789" not in line
        assert "[REDACTED]" in line
