"""toolmend: adaptive retry and recovery for fallible tool calls."""

__version__ = "0.1.0"

from toolmend.execution import (
    ConfigurationError,
    ErrorCategory,
    ErrorNotification,
    ExecuteToolCallResponse,
    PatternStore,
    RetryEngine,
    Suggestion,
    SuggestionEngine,
    ToolInvocationRecord,
    classify,
)

__all__ = [
    "ConfigurationError",
    "ErrorCategory",
    "ErrorNotification",
    "ExecuteToolCallResponse",
    "PatternStore",
    "RetryEngine",
    "Suggestion",
    "SuggestionEngine",
    "ToolInvocationRecord",
    "classify",
]
