"""Append-only history of tool invocations.

Every attempt the retry engine makes lands here, successful or not. The
suggestion engine reads it back to find parameter sets that worked before.
Records are immutable; retention is bounded by a capacity cap and an
optional time window.
"""

from collections import Counter, deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Tuple

from toolmend.execution.error_classifier import ErrorCategory
from toolmend.execution.history_channel import HistoryChannel
from toolmend.execution.models import snapshot_parameters
from toolmend.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_HISTORY_CAPACITY = 1000
DEFAULT_RETENTION_SECONDS = 24 * 60 * 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class InvocationOutcome:
    """Outcome of a single attempt. Duration is in milliseconds."""

    success: bool
    duration: int = 0
    error_category: Optional[ErrorCategory] = None
    error_message: Optional[str] = None

    def __post_init__(self):
        if self.duration < 0:
            raise ValueError(f"duration must be >= 0, got {self.duration}")


@dataclass(frozen=True)
class ToolInvocationRecord:
    """One attempt of one tool call, as stored in the pattern store."""

    tool_id: str
    parameters: Mapping[str, Any]
    outcome: InvocationOutcome
    timestamp: datetime = field(default_factory=_utcnow)
    attempt: int = 1
    sequence: int = 0  # assigned by the store on append

    def __post_init__(self):
        # Detach from the caller's objects, nested values included
        object.__setattr__(
            self, "parameters", MappingProxyType(snapshot_parameters(self.parameters))
        )
        if self.timestamp.tzinfo is None:
            object.__setattr__(
                self, "timestamp", self.timestamp.replace(tzinfo=timezone.utc)
            )

    @classmethod
    def create(
        cls,
        tool_id: str,
        parameters: Optional[Mapping[str, Any]],
        success: bool,
        duration: int = 0,
        error_category: Optional[ErrorCategory] = None,
        error_message: Optional[str] = None,
        attempt: int = 1,
        timestamp: Optional[datetime] = None,
    ) -> "ToolInvocationRecord":
        """Convenience constructor used by the retry engine and tests."""
        return cls(
            tool_id=tool_id,
            parameters=parameters or {},
            outcome=InvocationOutcome(
                success=success,
                duration=duration,
                error_category=error_category,
                error_message=error_message,
            ),
            timestamp=timestamp or _utcnow(),
            attempt=attempt,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool_id": self.tool_id,
            "parameters": dict(self.parameters),
            "outcome": {
                "success": self.outcome.success,
                "duration": self.outcome.duration,
                "error_category": (
                    self.outcome.error_category.value
                    if self.outcome.error_category
                    else None
                ),
                "error_message": self.outcome.error_message,
            },
            "timestamp": self.timestamp.isoformat(),
            "attempt": self.attempt,
            "sequence": self.sequence,
        }


@dataclass
class PatternAnalysis:
    """Aggregate view of a tool's history."""

    tool_id: str
    total: int = 0
    successes: int = 0
    success_rate: float = 0.0
    average_duration: float = 0.0
    common_errors: List[Tuple[ErrorCategory, int]] = field(default_factory=list)


class PatternStore:
    """
    In-memory, append-only store of ToolInvocationRecords.

    Args:
        max_records: Capacity cap; the oldest record is dropped when exceeded
            (None disables the cap)
        retention_seconds: Records older than this are pruned on append and
            query (None or 0 disables the window)
        channel: Optional HistoryChannel receiving a snapshot tuple of all
            records after every append or clear
        clock: Source of "now" for the retention window
    """

    def __init__(
        self,
        max_records: Optional[int] = DEFAULT_HISTORY_CAPACITY,
        retention_seconds: Optional[float] = DEFAULT_RETENTION_SECONDS,
        channel: Optional[HistoryChannel] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if max_records is not None and max_records < 1:
            raise ValueError(f"max_records must be >= 1 or None, got {max_records}")
        self.max_records = max_records
        self.retention_seconds = retention_seconds or None
        self.channel = channel
        self._clock = clock
        self._records: Deque[ToolInvocationRecord] = deque(maxlen=max_records)
        self._next_sequence = 1

    def record(self, entry: ToolInvocationRecord) -> ToolInvocationRecord:
        """Append a record and return the stored (sequenced) copy."""
        stored = replace(entry, sequence=self._next_sequence)
        self._next_sequence += 1

        if self.max_records is not None and len(self._records) == self.max_records:
            evicted = self._records[0]
            logger.debug(
                f"Pattern store at capacity ({self.max_records}), "
                f"evicting record #{evicted.sequence} for {evicted.tool_id}"
            )
        self._records.append(stored)
        self._prune_expired()
        self._publish()
        return stored

    def query(self, tool_id: str) -> List[ToolInvocationRecord]:
        """Records for ``tool_id`` in insertion order."""
        self._prune_expired()
        return [r for r in self._records if r.tool_id == tool_id]

    def query_successful(self, tool_id: str) -> List[ToolInvocationRecord]:
        """Successful records for ``tool_id`` in insertion order."""
        return [r for r in self.query(tool_id) if r.outcome.success]

    def all_records(self) -> List[ToolInvocationRecord]:
        self._prune_expired()
        return list(self._records)

    def clear(self) -> None:
        """Discard every record."""
        count = len(self._records)
        self._records.clear()
        logger.debug(f"Pattern store cleared ({count} records discarded)")
        self._publish()

    def clear_tool(self, tool_id: str) -> int:
        """Discard every record of ``tool_id``; returns how many were removed."""
        kept = [r for r in self._records if r.tool_id != tool_id]
        removed = len(self._records) - len(kept)
        self._records = deque(kept, maxlen=self.max_records)
        logger.debug(f"Cleared {removed} records for {tool_id} from pattern store")
        self._publish()
        return removed

    def analyze(self, tool_id: str) -> PatternAnalysis:
        """Success rate, average duration and most common failure categories."""
        records = self.query(tool_id)
        if not records:
            return PatternAnalysis(tool_id=tool_id)

        successes = sum(1 for r in records if r.outcome.success)
        error_counts = Counter(
            r.outcome.error_category
            for r in records
            if not r.outcome.success and r.outcome.error_category is not None
        )
        return PatternAnalysis(
            tool_id=tool_id,
            total=len(records),
            successes=successes,
            success_rate=successes / len(records),
            average_duration=sum(r.outcome.duration for r in records) / len(records),
            common_errors=error_counts.most_common(),
        )

    def tool_ids(self) -> List[str]:
        """Distinct tool ids in order of first appearance."""
        seen: Dict[str, None] = {}
        for r in self.all_records():
            seen.setdefault(r.tool_id, None)
        return list(seen)

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return (
            f"PatternStore(records={len(self._records)}, "
            f"max_records={self.max_records}, "
            f"retention_seconds={self.retention_seconds})"
        )

    def _prune_expired(self) -> None:
        if not self.retention_seconds:
            return
        cutoff = self._clock() - timedelta(seconds=self.retention_seconds)
        if not any(r.timestamp < cutoff for r in self._records):
            return
        kept = [r for r in self._records if r.timestamp >= cutoff]
        logger.debug(
            f"Pruned {len(self._records) - len(kept)} records older than "
            f"{self.retention_seconds}s from pattern store"
        )
        self._records = deque(kept, maxlen=self.max_records)

    def _publish(self) -> None:
        if self.channel is not None and not self.channel.closed:
            self.channel.publish(tuple(self._records))
