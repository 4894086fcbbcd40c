"""Error classification for failed tool calls.

Maps whatever a tool operation raised into a closed set of categories so the
retry engine can decide how to recover and the suggestion engine knows which
parameter to focus on. Classification is total: any value, including None or
an object whose ``__str__`` blows up, yields a category.
"""

import asyncio
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

import httpx


class ErrorCategory(Enum):
    """Terminal classification of a failed tool call."""

    # Operation exceeded its expected time bound
    TIMEOUT = "timeout"

    # A specific parameter was rejected (missing, wrong shape, out of range)
    INVALID_PARAMETER = "invalid_parameter"

    # No specific rule matched
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ClassifiedError:
    """Category tag plus the diagnostic payload that justified it."""

    category: ErrorCategory
    message: str
    exception_type: Optional[str] = None
    parameter: Optional[str] = None  # INVALID_PARAMETER only
    elapsed_ms: Optional[int] = None  # TIMEOUT only

    def get_error_key(self, tool_id: str) -> str:
        """Key identifying this failure pattern for a tool."""
        if self.category == ErrorCategory.INVALID_PARAMETER and self.parameter:
            return f"{self.category.value}:{tool_id}:{self.parameter}"
        return f"{self.category.value}:{tool_id}"


TIMEOUT_KEYWORDS = ("timeout", "timed out", "deadline exceeded")

TIMEOUT_EXCEPTION_TYPES = (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)

# Request Timeout, Gateway Timeout
TIMEOUT_STATUS_CODES = (408, 504)

REJECTION_KEYWORDS = (
    "invalid",
    "missing",
    "required",
    "malformed",
    "out of range",
    "must be",
    "unexpected",
    "not allowed",
    "unsupported",
)

# Quoted identifiers such as 'path' or "recursive" in messages like
# "missing required parameter 'path'"
_QUOTED_NAME = re.compile(r"""['"`]([A-Za-z_][A-Za-z0-9_.\-]*)['"`]""")


def error_message(raw_error: Any) -> str:
    """Best-effort message text for any raised value; never raises."""
    if raw_error is None:
        return ""
    try:
        if isinstance(raw_error, KeyError) and raw_error.args:
            return str(raw_error.args[0])
        return str(raw_error)
    except Exception:
        return ""


def _exception_type(raw_error: Any) -> Optional[str]:
    if raw_error is None:
        return None
    return type(raw_error).__name__


def _safe_attr(raw_error: Any, name: str) -> Any:
    try:
        return getattr(raw_error, name, None)
    except Exception:
        return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def _mentions_timeout(text: str) -> bool:
    return any(keyword in text for keyword in TIMEOUT_KEYWORDS)


def _timeout_word_names_parameter(
    raw_error: Any, message: str, parameters: Mapping[str, Any]
) -> bool:
    """True when the timeout keyword only appears inside a rejected parameter name."""
    parameter = _implicated_parameter(raw_error, message, parameters)
    if not parameter:
        return False
    remainder = message.lower().replace(parameter.lower(), " ")
    return not _mentions_timeout(remainder)


def _timeout_payload(
    raw_error: Any,
    message: str,
    parameters: Mapping[str, Any],
    elapsed_ms: Optional[int],
    timeout_threshold_ms: Optional[int],
) -> Optional[int]:
    """Return elapsed ms (or -1 when unknown) if the failure is a timeout."""
    error_elapsed = _as_int(_safe_attr(raw_error, "elapsed_ms"))
    observed = elapsed_ms if elapsed_ms is not None else error_elapsed

    if isinstance(raw_error, TIMEOUT_EXCEPTION_TYPES):
        return observed if observed is not None else -1

    if isinstance(raw_error, httpx.HTTPStatusError):
        if raw_error.response.status_code in TIMEOUT_STATUS_CODES:
            return observed if observed is not None else -1

    for marker in ("timeout", "timed_out"):
        value = _safe_attr(raw_error, marker)
        if value is True:
            return observed if observed is not None else -1

    if _mentions_timeout(message.lower()) and not _timeout_word_names_parameter(
        raw_error, message, parameters
    ):
        return observed if observed is not None else -1

    if (
        timeout_threshold_ms is not None
        and observed is not None
        and observed > timeout_threshold_ms
    ):
        return observed

    return None


def _implicated_parameter(
    raw_error: Any, message: str, parameters: Mapping[str, Any]
) -> Optional[str]:
    """Find the parameter the error rejects, if any."""
    for attr in ("parameter", "param"):
        value = _safe_attr(raw_error, attr)
        if isinstance(value, str) and value:
            return value

    if isinstance(raw_error, KeyError) and raw_error.args:
        key = raw_error.args[0]
        if isinstance(key, str) and key:
            return key

    message_lower = message.lower()
    if not any(keyword in message_lower for keyword in REJECTION_KEYWORDS):
        return None

    # Prefer a key of the failing call that the message names
    for key in sorted(parameters, key=len, reverse=True):
        if not isinstance(key, str) or not key:
            continue
        pattern = rf"(?<![A-Za-z0-9_]){re.escape(key.lower())}(?![A-Za-z0-9_])"
        if re.search(pattern, message_lower):
            return key

    # Missing keys are not in the mapping, so fall back to a quoted name
    quoted = _QUOTED_NAME.search(message)
    if quoted:
        return quoted.group(1)

    return None


def classify_tool_error(
    tool_id: str,
    parameters: Optional[Mapping[str, Any]],
    raw_error: Any,
    elapsed_ms: Optional[int] = None,
    timeout_threshold_ms: Optional[int] = None,
) -> ClassifiedError:
    """
    Classify a tool failure, keeping the evidence used for the decision.

    Rules in priority order: TIMEOUT, INVALID_PARAMETER, UNKNOWN.

    Args:
        tool_id: Tool that failed (kept for symmetry with the engine, not consulted)
        parameters: Parameters of the failing call
        raw_error: Whatever the operation raised
        elapsed_ms: Observed duration of the failing attempt
        timeout_threshold_ms: Durations beyond this count as timeouts

    Returns:
        ClassifiedError with exactly one category
    """
    message = error_message(raw_error)
    exception_type = _exception_type(raw_error)
    params = parameters if isinstance(parameters, Mapping) else {}

    try:
        timed_out = _timeout_payload(
            raw_error, message, params, elapsed_ms, timeout_threshold_ms
        )
        if timed_out is not None:
            return ClassifiedError(
                category=ErrorCategory.TIMEOUT,
                message=message,
                exception_type=exception_type,
                elapsed_ms=timed_out if timed_out >= 0 else None,
            )

        parameter = _implicated_parameter(raw_error, message, params)
        if parameter is not None:
            return ClassifiedError(
                category=ErrorCategory.INVALID_PARAMETER,
                message=message,
                exception_type=exception_type,
                parameter=parameter,
            )
    except Exception:
        # Hostile error objects (raising __eq__, __getattr__ and so on) end up UNKNOWN
        pass

    return ClassifiedError(
        category=ErrorCategory.UNKNOWN,
        message=message,
        exception_type=exception_type,
    )


def classify(
    tool_id: str,
    parameters: Optional[Mapping[str, Any]],
    raw_error: Any,
    elapsed_ms: Optional[int] = None,
    timeout_threshold_ms: Optional[int] = None,
) -> ErrorCategory:
    """Classify a tool failure into an ErrorCategory."""
    return classify_tool_error(
        tool_id, parameters, raw_error, elapsed_ms, timeout_threshold_ms
    ).category
