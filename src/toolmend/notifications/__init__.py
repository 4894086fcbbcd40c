"""Notification sinks and formatting for exhausted tool calls."""

from .base import LoggingNotificationSink, MemoryNotificationSink, NotificationSink
from .formatters import NotificationSectionBuilder, format_error_notification

__all__ = [
    "NotificationSink",
    "LoggingNotificationSink",
    "MemoryNotificationSink",
    "NotificationSectionBuilder",
    "format_error_notification",
]
