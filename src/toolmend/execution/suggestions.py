"""Parameter-correction suggestions derived from a tool's success history.

When a call keeps failing, the parameter sets that previously worked for the
same tool are the best hint at what to change. Candidates are scored by how
closely they resemble the failing call, with a boost for candidates that
change exactly the parameter the error rejected.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from toolmend.execution.error_classifier import ClassifiedError, ErrorCategory
from toolmend.execution.models import Suggestion
from toolmend.execution.pattern_store import PatternStore, ToolInvocationRecord
from toolmend.utils.logger import get_logger

logger = get_logger(__name__)

# Share of the remaining distance to 1.0 granted to candidates that fix the
# rejected parameter
IMPLICATED_PARAMETER_BOOST = 0.5

# Multiplier for candidates that keep the rejected parameter unchanged
UNCHANGED_PARAMETER_PENALTY = 0.5

_MISSING = object()


@dataclass
class _Candidate:
    record: ToolInvocationRecord
    success_count: int
    confidence: float = 0.0


def stringify_value(value: Any) -> str:
    """Render a parameter value as the string form used in suggestions."""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return str(value)


def values_compatible(left: Any, right: Any) -> bool:
    """Equal values, or values whose trimmed string forms match."""
    if left is _MISSING or right is _MISSING:
        return False
    try:
        if left == right:
            return True
    except (TypeError, ValueError):
        # Ambiguous comparisons fall through to the string form
        pass
    return stringify_value(left).strip() == stringify_value(right).strip()


def parameter_similarity(
    failing: Mapping[str, Any], candidate: Mapping[str, Any]
) -> float:
    """Share of keys (union of both sides) present in both with compatible values."""
    keys = set(failing) | set(candidate)
    if not keys:
        return 1.0
    matched = sum(
        1
        for key in keys
        if values_compatible(failing.get(key, _MISSING), candidate.get(key, _MISSING))
    )
    return matched / len(keys)


def differing_keys(failing: Mapping[str, Any], candidate: Mapping[str, Any]) -> List[str]:
    """Keys whose value differs or that only one side has, sorted."""
    return sorted(
        key
        for key in set(failing) | set(candidate)
        if not values_compatible(failing.get(key, _MISSING), candidate.get(key, _MISSING))
    )


def _parameters_key(parameters: Mapping[str, Any]) -> str:
    """Identity of a parameter set; 1 and "1" are different values."""
    try:
        return json.dumps(dict(parameters), sort_keys=True)
    except (TypeError, ValueError):
        return json.dumps(
            {
                str(k): [type(v).__name__, stringify_value(v)]
                for k, v in parameters.items()
            },
            sort_keys=True,
        )


class SuggestionEngine:
    """Ranks previously successful parameter sets against a failing call."""

    def __init__(self, store: PatternStore):
        self.store = store

    def suggest(
        self,
        tool_id: str,
        failing_parameters: Optional[Mapping[str, Any]],
        max_suggestions: int,
        classified_error: Optional[ClassifiedError] = None,
    ) -> List[Suggestion]:
        """
        Propose corrected parameter sets for a failing call.

        Args:
            tool_id: Tool whose history is searched
            failing_parameters: Parameters of the failing call
            max_suggestions: Upper bound on returned suggestions (0 returns none)
            classified_error: Classification of the failure; an INVALID_PARAMETER
                classification steers ranking toward the rejected key

        Returns:
            Suggestions sorted by descending confidence, most recent first on ties

        Raises:
            ValueError: If max_suggestions is negative
        """
        if max_suggestions < 0:
            raise ValueError(f"max_suggestions must be >= 0, got {max_suggestions}")
        if max_suggestions == 0:
            return []

        failing = dict(failing_parameters or {})
        candidates = self._collect_candidates(tool_id)
        if not candidates:
            logger.debug(f"No successful history for {tool_id}, no suggestions")
            return []

        implicated = None
        if (
            classified_error is not None
            and classified_error.category == ErrorCategory.INVALID_PARAMETER
        ):
            implicated = classified_error.parameter

        for candidate in candidates:
            candidate.confidence = self._score(
                failing, candidate.record.parameters, implicated
            )

        candidates.sort(key=lambda c: (-c.confidence, -c.record.sequence))
        top = candidates[:max_suggestions]

        suggestions = [
            Suggestion(
                tool_name=tool_id,
                suggested_parameters={
                    k: stringify_value(v) for k, v in c.record.parameters.items()
                },
                confidence=c.confidence,
                reasoning=self._reasoning(tool_id, failing, c, implicated),
            )
            for c in top
        ]
        logger.debug(
            f"Built {len(suggestions)} suggestion(s) for {tool_id} "
            f"from {len(candidates)} distinct successful parameter set(s)"
        )
        return suggestions

    def _collect_candidates(self, tool_id: str) -> List[_Candidate]:
        """One candidate per distinct parameter set, keeping the latest record."""
        by_key: Dict[str, _Candidate] = {}
        for record in self.store.query_successful(tool_id):
            key = _parameters_key(record.parameters)
            existing = by_key.get(key)
            if existing is None:
                by_key[key] = _Candidate(record=record, success_count=1)
            else:
                existing.record = record
                existing.success_count += 1
        return list(by_key.values())

    @staticmethod
    def _score(
        failing: Mapping[str, Any],
        candidate: Mapping[str, Any],
        implicated: Optional[str],
    ) -> float:
        confidence = parameter_similarity(failing, candidate)
        if implicated is not None:
            if values_compatible(
                failing.get(implicated, _MISSING), candidate.get(implicated, _MISSING)
            ):
                confidence *= UNCHANGED_PARAMETER_PENALTY
            elif implicated in candidate:
                confidence += (1.0 - confidence) * IMPLICATED_PARAMETER_BOOST
        return max(0.0, min(1.0, confidence))

    @staticmethod
    def _reasoning(
        tool_id: str,
        failing: Mapping[str, Any],
        candidate: _Candidate,
        implicated: Optional[str],
    ) -> str:
        params = candidate.record.parameters
        diffs = differing_keys(failing, params)
        parts = []

        if not diffs:
            parts.append(
                "Identical parameters succeeded before; the failure may be transient."
            )
        else:
            changes = []
            for key in diffs:
                if key not in params:
                    changes.append(f"'{key}' omitted (was {stringify_value(failing[key])!r})")
                elif key not in failing:
                    changes.append(f"'{key}' added as {stringify_value(params[key])!r}")
                else:
                    changes.append(
                        f"'{key}' changed from {stringify_value(failing[key])!r} "
                        f"to {stringify_value(params[key])!r}"
                    )
            parts.append("Differs from the failing call: " + "; ".join(changes) + ".")

        if implicated is not None:
            if implicated in diffs:
                parts.append(
                    f"The tool rejected parameter '{implicated}', which this "
                    "parameter set supplies differently."
                )
            else:
                parts.append(
                    f"The tool rejected parameter '{implicated}', which this "
                    "parameter set leaves unchanged."
                )

        times = "time" if candidate.success_count == 1 else "times"
        parts.append(
            f"These parameters succeeded for {tool_id} {candidate.success_count} "
            f"{times}, most recently at {candidate.record.timestamp.isoformat()} "
            f"in {candidate.record.outcome.duration} ms."
        )
        return " ".join(parts)
