"""Backoff strategies applied between tool-call attempts.

The retry engine retries immediately unless a strategy says otherwise. The
exponential strategy follows the usual backoff-with-jitter shape and is the
one selected by ``RETRY_BACKOFF=exponential``.
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass

from toolmend.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class BackoffConfig:
    """Configuration for exponential backoff.

    Attributes:
        initial_delay: Delay before the first retry in seconds (default: 1.0)
        max_delay: Maximum delay between individual retries in seconds (default: 60.0)
        backoff_factor: Exponential backoff multiplier (default: 2.0)
        jitter: Add up to 25% random jitter to each delay (default: True)
    """

    initial_delay: float = 1.0
    max_delay: float = 60.0
    backoff_factor: float = 2.0
    jitter: bool = True


def calculate_delay(attempt: int, config: BackoffConfig) -> float:
    """
    Calculate the delay for a retry using exponential backoff with optional jitter.

    Args:
        attempt: Number of failed attempts so far (1 = first retry)
        config: Backoff configuration

    Returns:
        Delay in seconds
    """
    if attempt <= 0:
        return 0

    delay = config.initial_delay * (config.backoff_factor ** (attempt - 1))
    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_amount = delay * 0.25 * random.random()  # nosec B311 - jitter, not crypto
        delay += jitter_amount

    return delay


class BackoffStrategy(ABC):
    """Decides how long to wait before the next attempt."""

    @abstractmethod
    def delay_for(self, attempt: int) -> float:
        """Return the delay in seconds after ``attempt`` failed attempts."""


class ImmediateBackoff(BackoffStrategy):
    """Retry right away."""

    def delay_for(self, attempt: int) -> float:
        return 0.0

    def __repr__(self) -> str:
        return "ImmediateBackoff()"


class ExponentialBackoff(BackoffStrategy):
    """Exponential backoff with optional jitter, capped at ``max_delay``."""

    def __init__(self, config: BackoffConfig = None):
        self.config = config or BackoffConfig()

    def delay_for(self, attempt: int) -> float:
        return calculate_delay(attempt, self.config)

    def __repr__(self) -> str:
        return f"ExponentialBackoff({self.config!r})"


BACKOFF_STRATEGIES = ("none", "exponential")


def build_backoff(name: str, config: BackoffConfig = None) -> BackoffStrategy:
    """
    Build a backoff strategy by name.

    Args:
        name: "none" for immediate retry, "exponential" for backoff with jitter
        config: Tuning for the exponential strategy

    Raises:
        ValueError: If the name is not a known strategy
    """
    normalized = (name or "none").strip().lower()
    if normalized == "none":
        return ImmediateBackoff()
    if normalized == "exponential":
        return ExponentialBackoff(config)
    raise ValueError(
        f"Unknown backoff strategy '{name}'. Allowed: {', '.join(BACKOFF_STRATEGIES)}"
    )
