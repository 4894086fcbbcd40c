"""Utility modules for toolmend."""

from toolmend.utils.logger import get_logger, setup_logging, tool_log_context
from toolmend.utils.retry import (
    BackoffConfig,
    BackoffStrategy,
    ExponentialBackoff,
    ImmediateBackoff,
    build_backoff,
    calculate_delay,
)

__all__ = [
    "BackoffConfig",
    "BackoffStrategy",
    "ExponentialBackoff",
    "ImmediateBackoff",
    "build_backoff",
    "calculate_delay",
    "get_logger",
    "setup_logging",
    "tool_log_context",
]
