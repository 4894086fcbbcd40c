"""Result types returned by the retry engine."""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Generic, Mapping, Optional, Tuple, TypeVar

from toolmend.execution.error_classifier import ErrorCategory

T = TypeVar("T")


def snapshot_parameters(parameters: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Deep copy of a parameter mapping, detached from the caller's objects.

    Values that cannot be deep-copied (locks, open handles) are kept by
    reference.
    """
    snapshot: Dict[str, Any] = {}
    for key, value in dict(parameters or {}).items():
        try:
            snapshot[key] = copy.deepcopy(value)
        except (copy.Error, TypeError, ValueError):
            snapshot[key] = value
    return snapshot


@dataclass(frozen=True)
class Suggestion:
    """A corrected parameter set proposed from a previously successful call."""

    tool_name: str
    suggested_parameters: Mapping[str, str]
    confidence: float
    reasoning: str

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")
        object.__setattr__(
            self,
            "suggested_parameters",
            MappingProxyType(dict(self.suggested_parameters)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "suggested_parameters": dict(self.suggested_parameters),
            "confidence": self.confidence,
            "reasoning": self.reasoning,
        }


@dataclass(frozen=True)
class ErrorContext:
    """Where and how often a tool call failed."""

    tool_name: str
    parameters: Mapping[str, Any]
    timestamp: datetime
    retry_count: int

    def __post_init__(self):
        object.__setattr__(
            self, "parameters", MappingProxyType(snapshot_parameters(self.parameters))
        )


@dataclass(frozen=True)
class ErrorNotification:
    """Final, user-facing description of a tool call that exhausted its retries."""

    category: ErrorCategory
    message: str
    context: ErrorContext
    suggestions: Tuple[Suggestion, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "suggestions", tuple(self.suggestions))

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict form for notification sinks and JSON serialization."""
        return {
            "category": self.category.value,
            "message": self.message,
            "context": {
                "tool_name": self.context.tool_name,
                "parameters": dict(self.context.parameters),
                "timestamp": self.context.timestamp.isoformat(),
                "retry_count": self.context.retry_count,
            },
            "suggestions": [s.to_dict() for s in self.suggestions],
        }


@dataclass(frozen=True)
class ExecuteToolCallResponse(Generic[T]):
    """Terminal outcome of ``RetryEngine.execute_with_retry``.

    Exactly one of ``result`` (on success) or ``error`` (on failure) is set.
    """

    success: bool
    result: Optional[T] = None
    error: Optional[ErrorNotification] = None

    def __post_init__(self):
        if self.success and self.error is not None:
            raise ValueError("successful response cannot carry an error")
        if not self.success and self.error is None:
            raise ValueError("failed response requires an error notification")
        if not self.success and self.result is not None:
            raise ValueError("failed response cannot carry a result")

    @classmethod
    def ok(cls, result: T) -> "ExecuteToolCallResponse[T]":
        return cls(success=True, result=result)

    @classmethod
    def failed(cls, error: ErrorNotification) -> "ExecuteToolCallResponse[T]":
        return cls(success=False, error=error)
