"""Broadcast channel with a retained last value.

Subscribers get the current value as soon as they subscribe, then every
later update in publish order. Each subscriber owns an asyncio.Queue, so a
slow consumer never blocks the publisher or other consumers. Closing the
channel ends every subscription's iteration.
"""

import asyncio
from typing import Any, AsyncIterator, Generic, List, Optional, TypeVar

from toolmend.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Marks the end of a subscription stream
_CLOSED = object()


class ChannelClosedError(RuntimeError):
    """Raised when publishing to or subscribing on a closed channel."""


class Subscription(Generic[T]):
    """A single consumer's view of a HistoryChannel.

    Iterate with ``async for``; iteration stops when the subscription is
    disposed or the channel is closed.
    """

    def __init__(self, channel: "HistoryChannel[T]"):
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _deliver(self, value: Any) -> None:
        if not self._closed:
            self._queue.put_nowait(value)

    def _end(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def pending(self) -> int:
        """Number of values waiting to be consumed."""
        # At most one end-of-stream sentinel is ever queued
        return self._queue.qsize() - (1 if self._closed else 0)

    async def get(self) -> T:
        """Wait for the next value.

        Raises:
            ChannelClosedError: If the stream has ended
        """
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the sentinel so later calls also see the end of stream
            self._queue.put_nowait(_CLOSED)
            raise ChannelClosedError("subscription closed")
        return item

    def dispose(self) -> None:
        """Stop receiving values and detach from the channel."""
        self._channel._detach(self)
        self._end()

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    async def __anext__(self) -> T:
        try:
            return await self.get()
        except ChannelClosedError:
            raise StopAsyncIteration

    async def __aenter__(self) -> "Subscription[T]":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose()


class HistoryChannel(Generic[T]):
    """Replay-last-value broadcast channel."""

    def __init__(self, initial: Optional[T] = None):
        self._value: Optional[T] = initial
        self._subscribers: List[Subscription[T]] = []
        self._closed = False

    @property
    def value(self) -> Optional[T]:
        """The most recently published value."""
        return self._value

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, value: T) -> None:
        """Retain ``value`` and deliver it to every subscriber."""
        if self._closed:
            raise ChannelClosedError("cannot publish to a closed channel")
        self._value = value
        for subscription in list(self._subscribers):
            subscription._deliver(value)

    def subscribe(self) -> Subscription[T]:
        """Create a subscription primed with the current value."""
        if self._closed:
            raise ChannelClosedError("cannot subscribe to a closed channel")
        subscription: Subscription[T] = Subscription(self)
        subscription._deliver(self._value)
        self._subscribers.append(subscription)
        logger.debug(f"History channel subscriber added ({len(self._subscribers)} active)")
        return subscription

    def close(self) -> None:
        """End every subscription; further publishes are rejected."""
        if self._closed:
            return
        self._closed = True
        for subscription in list(self._subscribers):
            subscription._end()
        self._subscribers.clear()

    def _detach(self, subscription: Subscription[T]) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
