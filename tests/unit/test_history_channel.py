"""Unit tests for the replay-last-value broadcast channel."""

import asyncio

import pytest

from toolmend.execution.history_channel import ChannelClosedError, HistoryChannel


class TestHistoryChannel:
    @pytest.mark.asyncio
    async def test_subscribe_delivers_current_value_first(self):
        channel = HistoryChannel(initial={"messages": []})
        channel.publish({"messages": ["hello"]})

        subscription = channel.subscribe()
        assert await subscription.get() == {"messages": ["hello"]}

    @pytest.mark.asyncio
    async def test_updates_delivered_in_order(self):
        channel = HistoryChannel(initial=0)
        subscription = channel.subscribe()
        for value in (1, 2, 3):
            channel.publish(value)

        received = [await subscription.get() for _ in range(4)]
        assert received == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_each_subscriber_gets_every_update(self):
        channel = HistoryChannel(initial="a")
        first = channel.subscribe()
        channel.publish("b")
        second = channel.subscribe()
        channel.publish("c")

        assert [await first.get() for _ in range(3)] == ["a", "b", "c"]
        assert [await second.get() for _ in range(2)] == ["b", "c"]

    @pytest.mark.asyncio
    async def test_close_ends_iteration(self):
        channel = HistoryChannel(initial=1)
        subscription = channel.subscribe()
        channel.publish(2)
        channel.close()

        received = [value async for value in subscription]
        assert received == [1, 2]
        assert subscription.closed

    @pytest.mark.asyncio
    async def test_close_wakes_waiting_consumer(self):
        channel = HistoryChannel(initial=None)
        subscription = channel.subscribe()
        await subscription.get()

        waiter = asyncio.create_task(subscription.get())
        await asyncio.sleep(0)
        channel.close()

        with pytest.raises(ChannelClosedError):
            await waiter

    @pytest.mark.asyncio
    async def test_dispose_detaches_subscriber(self):
        channel = HistoryChannel(initial=0)
        async with channel.subscribe() as subscription:
            assert channel.subscriber_count == 1
            assert await subscription.get() == 0
        assert channel.subscriber_count == 0

        channel.publish(1)
        assert subscription.pending() == 0

    def test_publish_after_close_rejected(self):
        channel = HistoryChannel()
        channel.close()
        with pytest.raises(ChannelClosedError):
            channel.publish(1)
        with pytest.raises(ChannelClosedError):
            channel.subscribe()

    def test_value_retained(self):
        channel = HistoryChannel(initial=1)
        channel.publish(5)
        assert channel.value == 5
