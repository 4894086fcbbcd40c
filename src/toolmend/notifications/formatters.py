"""Text formatting for error notifications."""

from typing import List

from toolmend.execution.error_classifier import ErrorCategory
from toolmend.execution.models import ErrorNotification, Suggestion

CATEGORY_EMOJI = {
    ErrorCategory.TIMEOUT: "⏱️",
    ErrorCategory.INVALID_PARAMETER: "⚠️",
    ErrorCategory.UNKNOWN: "❌",
}


class NotificationSectionBuilder:
    """Builder for the sections of a formatted notification."""

    @staticmethod
    def build_header(notification: ErrorNotification) -> str:
        emoji = CATEGORY_EMOJI.get(notification.category, "❌")
        title = notification.category.value.replace("_", " ").upper()
        return f"{emoji} **{title}** in `{notification.context.tool_name}`\n\n"

    @staticmethod
    def build_context(notification: ErrorNotification) -> str:
        context = notification.context
        attempts = "attempt" if context.retry_count == 1 else "attempts"
        message = f"**Failed after:** {context.retry_count} {attempts}\n"
        message += f"**At:** {context.timestamp.isoformat()}\n"
        if context.parameters:
            params = ", ".join(f"{k}={v!r}" for k, v in context.parameters.items())
            message += f"**Parameters:** {params}\n"
        return message

    @staticmethod
    def build_suggestion(index: int, suggestion: Suggestion) -> str:
        params = ", ".join(
            f"{k}={v!r}" for k, v in suggestion.suggested_parameters.items()
        )
        return (
            f"{index}. `{params or '(no parameters)'}` "
            f"(confidence {suggestion.confidence:.0%})\n"
            f"   {suggestion.reasoning}\n"
        )


def format_error_notification(notification: ErrorNotification) -> str:
    """Render an ErrorNotification as markdown text for a presentation layer."""
    sections: List[str] = [
        NotificationSectionBuilder.build_header(notification),
        notification.message.strip() + "\n\n",
        NotificationSectionBuilder.build_context(notification),
    ]

    if notification.suggestions:
        sections.append("\n**Suggestions:**\n")
        for i, suggestion in enumerate(notification.suggestions, 1):
            sections.append(NotificationSectionBuilder.build_suggestion(i, suggestion))
    else:
        sections.append("\nNo suggestions: this tool has no successful history yet.\n")

    return "".join(sections)
