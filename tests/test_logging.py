"""Tests for structured logging configuration."""

import json
import logging
import sys
from unittest.mock import patch

from eventgate.app.core.logging import (
    ContextFilter,
    JSONFormatter,
    get_log_context,
    get_logger,
    get_logging_config,
    setup_logging,
)


def make_record(msg="Test message", **attrs):
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Test JSON formatter for structured logging."""

    def test_basic_json_format(self):
        data = json.loads(JSONFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "Test message"
        assert "timestamp" in data
        assert data["source"]["file"] == "test.py"
        assert data["source"]["line"] == 1

    def test_context_fields(self):
        record = make_record("Rate limit exceeded", client_ip="203.0.113.7", limiter="get-events")
        data = json.loads(JSONFormatter().format(record))

        assert data["client_ip"] == "203.0.113.7"
        assert data["limiter"] == "get-events"
        assert "request_id" not in data

    def test_extra_fields_grouped(self):
        record = make_record("Brute force protection triggered", attempts=5, lockout_ms=900000)
        data = json.loads(JSONFormatter().format(record))

        assert data["extra"] == {"attempts": 5, "lockout_ms": 900000}

    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record))
        assert any("ValueError: boom" in line for line in data["exception"])


class TestContextFilter:
    """Context defaults."""

    def test_adds_missing_fields(self):
        record = make_record()
        assert ContextFilter().filter(record) is True

        assert record.request_id is None
        assert record.client_ip is None
        assert record.limiter is None

    def test_keeps_existing_fields(self):
        record = make_record(client_ip="203.0.113.7")
        ContextFilter().filter(record)
        assert record.client_ip == "203.0.113.7"


class TestLoggingConfig:
    """dictConfig generation."""

    def test_text_format(self):
        with patch("eventgate.app.core.logging.settings") as settings:
            settings.log_format = "text"
            settings.log_level = "info"
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "standard"
        assert config["loggers"]["eventgate"]["level"] == "INFO"

    def test_json_format(self):
        with patch("eventgate.app.core.logging.settings") as settings:
            settings.log_format = "json"
            settings.log_level = "DEBUG"
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["formatters"]["json"]["()"].endswith("JSONFormatter")

    def test_setup_logging(self):
        setup_logging()
        assert logging.getLogger("eventgate").handlers


class TestHelpers:

    def test_get_logger(self):
        assert get_logger().name == "eventgate"
        assert get_logger("eventgate.test").name == "eventgate.test"

    def test_get_log_context_drops_none(self):
        context = get_log_context(client_ip="203.0.113.7", limiter=None, attempts=3)
        assert context == {"client_ip": "203.0.113.7", "attempts": 3}
