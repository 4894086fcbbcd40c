"""Tests for logger module with log capture functionality."""

import json
import logging
import sys

from toolmend.utils.logger import (
    JsonLogFormatter,
    clear_log_buffer,
    get_captured_logs,
    get_logger,
    setup_logging,
    tool_log_context,
)


class TestLogCapture:
    """Test in-memory log capture."""

    def setup_method(self):
        """Reset the log buffer before each test."""
        clear_log_buffer()

    def test_capture_disabled(self):
        """Without capture, no buffer is kept."""
        setup_logging(level="INFO", capture=False)
        assert get_captured_logs() is None

    def test_captured_logs_contain_messages(self):
        setup_logging(level="INFO")

        logging.getLogger("test_module").info("Test log message for capture")

        assert "Test log message for capture" in get_captured_logs()

    def test_clear_log_buffer(self):
        """Test that clear_log_buffer clears captured logs."""
        setup_logging(level="INFO")
        test_logger = logging.getLogger("test_clear")
        test_logger.info("Message before clear")

        clear_log_buffer()
        test_logger.info("Message after clear")

        captured = get_captured_logs()
        assert "Message before clear" not in captured
        assert "Message after clear" in captured

    def test_setup_logging_respects_level(self):
        setup_logging(level="WARNING")
        test_logger = logging.getLogger("level_test")
        clear_log_buffer()

        test_logger.info("Info message should not appear")
        test_logger.warning("Warning message should appear")

        captured = get_captured_logs()
        assert "Info message should not appear" not in captured
        assert "Warning message should appear" in captured

    def test_json_capture(self):
        setup_logging(level="DEBUG", json_logs=True)
        clear_log_buffer()

        logging.getLogger("json_test").error("JSON formatted log")

        line = get_captured_logs().strip().splitlines()[-1]
        data = json.loads(line)
        assert data["level"] == "error"
        assert data["logger"] == "json_test"
        assert data["message"] == "JSON formatted log"


class TestStructlog:
    def test_get_logger_returns_structlog_logger(self):
        """Test that get_logger returns a structlog bound logger."""
        logger = get_logger("test_module")
        assert hasattr(logger, "info")
        assert hasattr(logger, "debug")
        assert hasattr(logger, "error")

    def test_structlog_json_output(self, capsys):
        setup_logging(level="DEBUG", json_logs=True, capture=False)
        get_logger("json_test").info("engine ready")

        out = capsys.readouterr().out.strip().splitlines()[-1]
        data = json.loads(out)
        assert data["event"] == "engine ready"
        assert data["level"] == "info"
        assert "timestamp" in data

    def test_tool_log_context_binds_tool_id(self, capsys):
        setup_logging(level="DEBUG", json_logs=True, capture=False)
        logger = get_logger("context_test")

        with tool_log_context("readFile", attempt=2):
            logger.warning("attempt failed")
        logger.info("outside")

        lines = capsys.readouterr().out.strip().splitlines()
        inside, outside = json.loads(lines[-2]), json.loads(lines[-1])
        assert inside["tool_id"] == "readFile"
        assert inside["attempt"] == 2
        assert "tool_id" not in outside


def test_json_formatter_includes_exception():
    try:
        raise ValueError("bad value")
    except ValueError:
        record = logging.LogRecord(
            "fmt", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
        )
    data = json.loads(JsonLogFormatter().format(record))
    assert data["message"] == "failed"
    assert "ValueError: bad value" in data["exception"]
