"""Logging utilities for toolmend."""

import io
import json
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

import structlog


class JsonLogFormatter(logging.Formatter):
    """JSON formatter for stdlib log records, matching structlog JSON output."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


# In-memory capture of stdlib log output, used by embedding applications and tests
_log_buffer: Optional[io.StringIO] = None
_buffer_handler: Optional[logging.StreamHandler] = None


def setup_logging(level: str = "INFO", json_logs: bool = False, capture: bool = True):
    """Configure structlog and the root stdlib logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render structlog events as JSON instead of console text
        capture: Keep a copy of stdlib log output in memory (see get_captured_logs)
    """
    global _log_buffer, _buffer_handler

    numeric_level = getattr(logging, level.upper())

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=False,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    console_handler.setLevel(numeric_level)
    root_logger.addHandler(console_handler)

    if not capture:
        _log_buffer = None
        _buffer_handler = None
        return

    if _log_buffer is None:
        _log_buffer = io.StringIO()

    _buffer_handler = logging.StreamHandler(_log_buffer)
    if json_logs:
        _buffer_handler.setFormatter(JsonLogFormatter())
    else:
        _buffer_handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        )
    _buffer_handler.setLevel(numeric_level)
    root_logger.addHandler(_buffer_handler)


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


@contextmanager
def tool_log_context(tool_id: str, **extra) -> Iterator[None]:
    """Bind ``tool_id`` (and any extra keys) to structlog events in this context.

    Bindings live in contextvars, so concurrent retry sequences running in
    separate asyncio tasks do not see each other's values.
    """
    with structlog.contextvars.bound_contextvars(tool_id=tool_id, **extra):
        yield


def get_captured_logs() -> Optional[str]:
    """
    Get captured stdlib log content.

    Returns:
        The captured log content, or None when capture is disabled.
    """
    if _log_buffer is not None:
        return _log_buffer.getvalue()
    return None


def clear_log_buffer():
    """Clear the log buffer (useful for tests)."""
    if _log_buffer is not None:
        _log_buffer.truncate(0)
        _log_buffer.seek(0)
