"""Bounded retry of tool calls with classification and recovery suggestions.

The engine runs a caller-supplied async operation up to ``max_retries``
times, one attempt after another. Every attempt is recorded in the pattern
store. Attempt failures stay inside the engine; once retries are exhausted the
last failure is classified, suggestions are derived from the tool's success
history, and the caller gets a resolved response carrying an
ErrorNotification instead of an exception.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Deque,
    Dict,
    List,
    Mapping,
    Optional,
    TypeVar,
)

from toolmend.execution.error_classifier import (
    ClassifiedError,
    ErrorCategory,
    classify_tool_error,
)
from toolmend.execution.models import (
    ErrorContext,
    ErrorNotification,
    ExecuteToolCallResponse,
    snapshot_parameters,
)
from toolmend.execution.pattern_store import (
    PatternAnalysis,
    PatternStore,
    ToolInvocationRecord,
)
from toolmend.execution.suggestions import SuggestionEngine
from toolmend.utils.logger import get_logger, tool_log_context
from toolmend.utils.retry import BackoffStrategy, ImmediateBackoff, build_backoff

if TYPE_CHECKING:
    from toolmend.config.settings import RecoverySettings
    from toolmend.notifications.base import NotificationSink

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_MAX_SUGGESTIONS = 3

# Guidance appended to the raw error text, per category
CATEGORY_GUIDANCE: Dict[ErrorCategory, str] = {
    ErrorCategory.TIMEOUT: (
        "The operation timed out. This might be temporary; consider retrying "
        "later or with a smaller workload."
    ),
    ErrorCategory.INVALID_PARAMETER: (
        "The tool rejected parameter '{parameter}'. Please check the parameter "
        "requirements."
    ),
    ErrorCategory.UNKNOWN: "An unexpected error occurred.",
}


class ConfigurationError(ValueError):
    """Invalid engine configuration (for example a non-positive max_retries)."""


@dataclass
class ToolPolicy:
    """Per-tool retry overrides.

    Attributes:
        max_retries: Attempts for this tool when the caller does not pass one
        should_retry: Called with each classified failure; returning False
            stops retrying early
    """

    max_retries: Optional[int] = None
    should_retry: Optional[Callable[[ClassifiedError], bool]] = None


def validate_max_retries(max_retries: Any) -> int:
    """Return ``max_retries`` if it is a positive integer, else raise."""
    if isinstance(max_retries, bool) or not isinstance(max_retries, int):
        raise ConfigurationError(
            f"max_retries must be a positive integer, got {max_retries!r}"
        )
    if max_retries < 1:
        raise ConfigurationError(f"max_retries must be >= 1, got {max_retries}")
    return max_retries


def format_error_message(classified: ClassifiedError) -> str:
    """Error text followed by category-specific guidance."""
    guidance = CATEGORY_GUIDANCE[classified.category].format(
        parameter=classified.parameter or "unknown"
    )
    if classified.message:
        return f"{classified.message}\n\n{guidance}"
    if classified.exception_type:
        return f"{classified.exception_type} raised without a message.\n\n{guidance}"
    return guidance


class RetryEngine:
    """
    Executes tool calls with bounded retries and recovery suggestions.

    Args:
        store: Pattern store shared by every call this engine runs
        max_retries: Default attempts per call
        max_suggestions: Suggestions attached to each ErrorNotification
        backoff: Delay policy between attempts (immediate by default)
        timeout_threshold_ms: Failed attempts slower than this classify as TIMEOUT
        notification_sink: Optional sink receiving each ErrorNotification
    """

    def __init__(
        self,
        store: Optional[PatternStore] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_suggestions: int = DEFAULT_MAX_SUGGESTIONS,
        backoff: Optional[BackoffStrategy] = None,
        timeout_threshold_ms: Optional[int] = None,
        notification_sink: Optional["NotificationSink"] = None,
    ):
        if max_suggestions < 0:
            raise ConfigurationError(
                f"max_suggestions must be >= 0, got {max_suggestions}"
            )
        self.store = store if store is not None else PatternStore()
        self.max_retries = validate_max_retries(max_retries)
        self.max_suggestions = max_suggestions
        self.backoff = backoff or ImmediateBackoff()
        self.timeout_threshold_ms = timeout_threshold_ms
        self.notification_sink = notification_sink
        self.suggestion_engine = SuggestionEngine(self.store)
        self._tool_policies: Dict[str, ToolPolicy] = {}
        # Bounded like the store; the oldest notification is dropped first
        self._notifications: Deque[ErrorNotification] = deque(
            maxlen=self.store.max_records
        )

    @classmethod
    def from_settings(
        cls,
        settings: "RecoverySettings",
        store: Optional[PatternStore] = None,
        notification_sink: Optional["NotificationSink"] = None,
    ) -> "RetryEngine":
        """Build an engine (and, unless given, its store) from settings."""
        if store is None:
            store = PatternStore(
                max_records=settings.history_capacity,
                retention_seconds=settings.retention_seconds,
            )
        engine = cls(
            store=store,
            max_retries=settings.max_retries,
            max_suggestions=settings.max_suggestions,
            backoff=build_backoff(settings.retry_backoff, settings.get_backoff_config()),
            timeout_threshold_ms=settings.timeout_threshold_ms,
            notification_sink=notification_sink,
        )
        for tool_id, policy in settings.get_tool_policies().items():
            engine.set_tool_policy(tool_id, ToolPolicy(max_retries=policy.max_retries))
        return engine

    def set_tool_policy(self, tool_id: str, policy: ToolPolicy) -> None:
        if policy.max_retries is not None:
            validate_max_retries(policy.max_retries)
        self._tool_policies[tool_id] = policy

    def get_tool_policy(self, tool_id: str) -> ToolPolicy:
        return self._tool_policies.get(tool_id) or ToolPolicy(
            max_retries=self.max_retries
        )

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: Optional[int],
        tool_id: str,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> ExecuteToolCallResponse[T]:
        """
        Run ``operation`` until it succeeds or ``max_retries`` attempts fail.

        Args:
            operation: Zero-argument callable returning an awaitable
            max_retries: Maximum attempts; None uses the tool policy or engine default
            tool_id: Tool identifier used for history and suggestions
            parameters: Parameters the operation was built with

        Returns:
            ExecuteToolCallResponse with ``result`` on success or ``error`` once
            retries are exhausted

        Raises:
            ConfigurationError: If max_retries is not a positive integer
                (raised before any attempt)
        """
        policy = self._tool_policies.get(tool_id)
        if max_retries is None:
            if policy is not None and policy.max_retries is not None:
                max_retries = policy.max_retries
            else:
                max_retries = self.max_retries
        max_retries = validate_max_retries(max_retries)
        params = snapshot_parameters(parameters)
        should_retry = policy.should_retry if policy is not None else None

        with tool_log_context(tool_id, max_retries=max_retries):
            return await self._run_attempts(
                operation, max_retries, tool_id, params, should_retry
            )

    async def _run_attempts(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: int,
        tool_id: str,
        params: Dict[str, Any],
        should_retry: Optional[Callable[[ClassifiedError], bool]],
    ) -> ExecuteToolCallResponse[T]:
        attempts = 0
        classified: Optional[ClassifiedError] = None
        sequence_start = time.monotonic()

        while attempts < max_retries:
            if attempts > 0:
                delay = self.backoff.delay_for(attempts)
                if delay > 0:
                    logger.info(
                        f"Retrying {tool_id} (attempt {attempts + 1}/{max_retries}) "
                        f"after {delay:.2f}s delay"
                    )
                    await asyncio.sleep(delay)

            attempts += 1
            attempt_start = time.monotonic()
            try:
                result = await operation()
            except Exception as e:
                duration = _elapsed_ms(attempt_start)
                classified = classify_tool_error(
                    tool_id,
                    params,
                    e,
                    elapsed_ms=duration,
                    timeout_threshold_ms=self.timeout_threshold_ms,
                )
                self.store.record(
                    ToolInvocationRecord.create(
                        tool_id,
                        params,
                        success=False,
                        duration=duration,
                        error_category=classified.category,
                        error_message=classified.message,
                        attempt=attempts,
                    )
                )

                if attempts >= max_retries:
                    break

                if should_retry is not None and not self._allows_retry(
                    should_retry, tool_id, classified
                ):
                    logger.info(
                        f"Retry policy stopped {tool_id} after attempt {attempts} "
                        f"({classified.category.value})"
                    )
                    break

                logger.warning(
                    f"Attempt {attempts}/{max_retries} for {tool_id} failed "
                    f"(took {duration} ms, {classified.category.value}), will retry: "
                    f"{classified.message or classified.exception_type}"
                )
                continue

            duration = _elapsed_ms(attempt_start)
            self.store.record(
                ToolInvocationRecord.create(
                    tool_id, params, success=True, duration=duration, attempt=attempts
                )
            )
            if attempts > 1:
                logger.info(
                    f"Successfully retried {tool_id} after {attempts} attempts "
                    f"(attempt took {duration} ms, total {_elapsed_ms(sequence_start)} ms)"
                )
            else:
                logger.debug(f"Tool call {tool_id} succeeded in {duration} ms")
            return ExecuteToolCallResponse.ok(result)

        notification = self._build_notification(tool_id, params, classified, attempts)
        logger.error(
            f"Tool call {tool_id} failed after {attempts} attempt(s) "
            f"({notification.category.value}); "
            f"{len(notification.suggestions)} suggestion(s) available"
        )
        await self._dispatch(notification)
        return ExecuteToolCallResponse.failed(notification)

    def _build_notification(
        self,
        tool_id: str,
        params: Dict[str, Any],
        classified: ClassifiedError,
        attempts: int,
    ) -> ErrorNotification:
        suggestions = self.suggestion_engine.suggest(
            tool_id, params, self.max_suggestions, classified
        )
        notification = ErrorNotification(
            category=classified.category,
            message=format_error_message(classified),
            context=ErrorContext(
                tool_name=tool_id,
                parameters=params,
                timestamp=datetime.now(timezone.utc),
                retry_count=attempts,
            ),
            suggestions=tuple(suggestions),
        )
        self._notifications.append(notification)
        return notification

    async def _dispatch(self, notification: ErrorNotification) -> None:
        if self.notification_sink is None:
            return
        try:
            await self.notification_sink.send_notification(notification)
        except Exception as e:
            logger.error(
                f"Notification sink failed for {notification.context.tool_name}: {e}"
            )

    @staticmethod
    def _allows_retry(
        should_retry: Callable[[ClassifiedError], bool],
        tool_id: str,
        classified: ClassifiedError,
    ) -> bool:
        try:
            return bool(should_retry(classified))
        except Exception as e:
            logger.error(
                f"should_retry callback for {tool_id} raised {type(e).__name__}: {e}; "
                "not retrying"
            )
            return False

    def clear_history(self, tool_id: Optional[str] = None) -> None:
        """Forget recorded attempts and produced notifications.

        Args:
            tool_id: Only clear this tool's history (all tools when None)
        """
        if tool_id is None:
            self.store.clear()
            self._notifications.clear()
            return
        self.store.clear_tool(tool_id)
        kept = [n for n in self._notifications if n.context.tool_name != tool_id]
        self._notifications.clear()
        self._notifications.extend(kept)

    def error_history(self) -> List[ErrorNotification]:
        """Notifications produced so far, oldest first."""
        return list(self._notifications)

    def get_pattern_analysis(self, tool_id: str) -> PatternAnalysis:
        return self.store.analyze(tool_id)


def _elapsed_ms(start: float) -> int:
    return max(0, int((time.monotonic() - start) * 1000))
