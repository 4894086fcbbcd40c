"""Tool-call retry, classification, history and suggestion engine."""

from .engine import (
    ConfigurationError,
    RetryEngine,
    ToolPolicy,
    format_error_message,
    validate_max_retries,
)
from .error_classifier import (
    ClassifiedError,
    ErrorCategory,
    classify,
    classify_tool_error,
)
from .history_channel import ChannelClosedError, HistoryChannel, Subscription
from .models import (
    ErrorContext,
    ErrorNotification,
    ExecuteToolCallResponse,
    Suggestion,
)
from .pattern_store import (
    InvocationOutcome,
    PatternAnalysis,
    PatternStore,
    ToolInvocationRecord,
)
from .suggestions import SuggestionEngine

__all__ = [
    # Retry engine
    "RetryEngine",
    "ToolPolicy",
    "ConfigurationError",
    "format_error_message",
    "validate_max_retries",
    # Error classification
    "ErrorCategory",
    "ClassifiedError",
    "classify",
    "classify_tool_error",
    # History
    "PatternStore",
    "ToolInvocationRecord",
    "InvocationOutcome",
    "PatternAnalysis",
    "HistoryChannel",
    "Subscription",
    "ChannelClosedError",
    # Suggestions and results
    "SuggestionEngine",
    "Suggestion",
    "ErrorContext",
    "ErrorNotification",
    "ExecuteToolCallResponse",
]
