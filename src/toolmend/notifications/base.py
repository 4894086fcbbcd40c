"""Sinks that receive error notifications from the retry engine."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from toolmend.execution.models import ErrorNotification
from toolmend.notifications.formatters import format_error_notification
from toolmend.utils.logger import get_logger

logger = get_logger(__name__)


class NotificationSink(ABC):
    """Abstract destination for ErrorNotifications.

    Presentation layers (chat UIs, webhooks, dashboards) implement this to
    receive notifications as soon as a tool call exhausts its retries.
    """

    @abstractmethod
    async def send_notification(
        self, notification: ErrorNotification, **kwargs
    ) -> Dict[str, Any]:
        """Deliver a notification. Must be implemented by subclasses."""
        pass


class LoggingNotificationSink(NotificationSink):
    """Writes the formatted notification to the log."""

    async def send_notification(
        self, notification: ErrorNotification, **kwargs
    ) -> Dict[str, Any]:
        text = format_error_notification(notification)
        logger.error(text)
        return {"status": "sent", "message_length": len(text)}


class MemoryNotificationSink(NotificationSink):
    """Keeps every notification in memory, in delivery order."""

    def __init__(self):
        self.notifications: List[ErrorNotification] = []

    async def send_notification(
        self, notification: ErrorNotification, **kwargs
    ) -> Dict[str, Any]:
        self.notifications.append(notification)
        return {"status": "sent", "stored": len(self.notifications)}

    def clear(self) -> None:
        self.notifications.clear()
