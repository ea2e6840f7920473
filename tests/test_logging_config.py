"""Tests for logging configuration and formatters."""

import json
import logging

import pytest

from liftout.logging.config import (
    SERVICE_NAME,
    ContextualFilter,
    JSONFormatter,
    KeyValueFormatter,
    configure_logging,
)
from liftout.logging.context import clear_log_context, log_context


@pytest.fixture(autouse=True)
def clean_context():
    """Clear logging context before and after each test."""
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def logger():
    """Create a test logger with handler for capturing output."""
    test_logger = logging.getLogger("test_logger")
    test_logger.setLevel(logging.DEBUG)
    test_logger.handlers.clear()

    yield test_logger

    test_logger.handlers.clear()


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way pytest left it."""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield root_logger
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)


def make_record(logger, message="Test message", extra=None):
    return logger.makeRecord("test", logging.INFO, "test.py", 1, message, (), None, extra=extra)


def test_json_formatter_basic(logger):
    """Test JSONFormatter produces valid JSON with mandatory fields."""
    log_obj = json.loads(JSONFormatter().format(make_record(logger)))

    assert log_obj["level"] == "INFO"
    assert log_obj["logger"] == "test"
    assert log_obj["message"] == "Test message"
    assert "timestamp" in log_obj


def test_json_formatter_with_extra_fields(logger):
    """Test JSONFormatter includes extra fields."""
    record = make_record(logger, extra={"event": "eoi.created", "count": 42, "flag": True})

    log_obj = json.loads(JSONFormatter().format(record))

    assert log_obj["event"] == "eoi.created"
    assert log_obj["count"] == 42
    assert log_obj["flag"] is True


def test_json_formatter_stringifies_unknown_types(logger):
    record = make_record(logger, extra={"team_ids": {"t-1"}})

    log_obj = json.loads(JSONFormatter().format(record))

    assert log_obj["team_ids"] == "{'t-1'}"


def test_contextual_filter_adds_static_fields(logger):
    """Test ContextualFilter adds static service and environment fields."""
    record = make_record(logger)

    ContextualFilter(service="test-service", environment="test").filter(record)

    assert record.service == "test-service"
    assert record.environment == "test"


def test_contextual_filter_default_service(logger):
    record = make_record(logger)

    ContextualFilter().filter(record)

    assert record.service == SERVICE_NAME
    assert record.environment == "local"


def test_contextual_filter_adds_context_fields(logger):
    """Test ContextualFilter adds fields from log context."""
    with log_context(actor_id="u-1", team_id="t-9"):
        record = make_record(logger)
        ContextualFilter().filter(record)

    assert record.actor_id == "u-1"
    assert record.team_id == "t-9"


def test_explicit_extra_wins_over_context(logger):
    with log_context(team_id="t-9"):
        record = make_record(logger, extra={"team_id": "t-explicit"})
        ContextualFilter().filter(record)

    assert record.team_id == "t-explicit"


def test_json_formatter_with_context(logger):
    """Test full pipeline: context + filter + JSON formatter."""
    with log_context(actor_id="u-1", eoi_id="e-3"):
        record = make_record(logger, "Responding to interest", extra={"event": "eoi.responded"})
        ContextualFilter(environment="test").filter(record)
        log_obj = json.loads(JSONFormatter().format(record))

    assert log_obj["message"] == "Responding to interest"
    assert log_obj["event"] == "eoi.responded"
    assert log_obj["service"] == SERVICE_NAME
    assert log_obj["environment"] == "test"
    assert log_obj["actor_id"] == "u-1"
    assert log_obj["eoi_id"] == "e-3"


def test_key_value_formatter_with_extras(logger):
    """Test KeyValueFormatter includes extra fields as key=value pairs."""
    formatter = KeyValueFormatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    record = make_record(
        logger,
        extra={"event": "search.completed", "count": 42, "reason": "not verified", "masked": True},
    )

    output = formatter.format(record)

    assert "[INFO] test: Test message" in output
    assert "event=search.completed" in output
    assert "count=42" in output
    assert 'reason="not verified"' in output
    assert "masked=true" in output


def test_key_value_formatter_skips_service_fields(logger):
    formatter = KeyValueFormatter("%(message)s")
    record = make_record(logger)
    ContextualFilter().filter(record)

    assert formatter.format(record) == "Test message"


def test_configure_logging_invalid_level():
    with pytest.raises(ValueError, match="Invalid log level"):
        configure_logging(level="INVALID")


def test_configure_logging_invalid_format():
    with pytest.raises(ValueError, match="Invalid log format"):
        configure_logging(format_type="invalid")


def test_configure_logging_json_format(restore_root_logger):
    """Test configure_logging with JSON format."""
    configure_logging(level="WARNING", format_type="json", environment="test")

    assert len(restore_root_logger.handlers) == 1
    handler = restore_root_logger.handlers[0]
    assert isinstance(handler.formatter, JSONFormatter)
    assert restore_root_logger.level == logging.WARNING


def test_configure_logging_key_value_format(restore_root_logger):
    """Test configure_logging with key-value format."""
    configure_logging(level="debug", format_type="key-value", environment="test")

    handler = restore_root_logger.handlers[0]
    assert isinstance(handler.formatter, KeyValueFormatter)
    assert any(isinstance(f, ContextualFilter) for f in handler.filters)


def test_timestamp_format_in_json(logger):
    """Test that JSON formatter produces correct ISO-8601 timestamp format."""
    timestamp = json.loads(JSONFormatter().format(make_record(logger)))["timestamp"]

    assert timestamp.endswith("Z")
    assert "T" in timestamp
    assert len(timestamp) == 24  # 2025-11-04T10:30:00.123Z


def test_json_formatter_no_duplicate_fields(logger):
    """Test that JSON formatter doesn't duplicate standard fields in extras."""
    log_obj = json.loads(JSONFormatter().format(make_record(logger, extra={"event": "x"})))

    assert "name" not in log_obj
    assert "levelname" not in log_obj
    assert "event" in log_obj
