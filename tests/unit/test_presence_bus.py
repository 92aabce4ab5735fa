"""Unit tests for the in-process presence bus."""

import asyncio
from uuid import uuid4

import pytest

from gatehouse.models.presence import PresenceEvent
from gatehouse.models.user import UserStatus
from gatehouse.services.presence_bus import DEFAULT_CAPACITY, PresenceBus


def _event(user_id=None, status=UserStatus.ONLINE):
    return PresenceEvent(user_id=user_id or uuid4(), new_status=status)


class TestPublish:
    def test_no_subscribers_is_a_no_op(self):
        bus = PresenceBus()
        assert bus.publish(_event()) == 0

    async def test_every_subscriber_gets_every_event_in_order(self):
        bus = PresenceBus()
        first = bus.subscribe()
        second = bus.subscribe()
        events = [_event(status=s) for s in (UserStatus.ONLINE, UserStatus.AWAY)]

        for event in events:
            assert bus.publish(event) == 2

        assert [await first.receive(), await first.receive()] == events
        assert [await second.receive(), await second.receive()] == events

    async def test_late_subscriber_misses_earlier_events(self):
        bus = PresenceBus()
        bus.publish(_event())
        late = bus.subscribe()

        assert late.pending() == 0

    def test_default_capacity(self):
        assert PresenceBus().capacity == DEFAULT_CAPACITY == 100


class TestLag:
    async def test_full_buffer_drops_oldest(self):
        bus = PresenceBus(capacity=2)
        subscription = bus.subscribe()
        events = [_event() for _ in range(3)]

        for event in events:
            bus.publish(event)

        assert subscription.lagged == 1
        assert await subscription.receive() == events[1]
        assert await subscription.receive() == events[2]

    async def test_slow_subscriber_does_not_affect_others(self):
        bus = PresenceBus(capacity=1)
        slow = bus.subscribe()
        fast = bus.subscribe()

        bus.publish(_event())
        await fast.receive()
        bus.publish(_event())

        assert slow.lagged == 1
        assert fast.lagged == 0


class TestSubscription:
    async def test_context_manager_unsubscribes(self):
        bus = PresenceBus()
        async with bus.subscribe() as subscription:
            assert bus.subscriber_count == 1
        assert bus.subscriber_count == 0
        assert subscription.closed is True

    async def test_close_is_idempotent(self):
        bus = PresenceBus()
        subscription = bus.subscribe()
        subscription.close()
        subscription.close()
        assert bus.publish(_event()) == 0

    async def test_receive_waits_for_publish(self):
        bus = PresenceBus()
        subscription = bus.subscribe()
        event = _event()

        waiter = asyncio.create_task(subscription.receive())
        await asyncio.sleep(0)
        assert not waiter.done()

        bus.publish(event)
        assert await asyncio.wait_for(waiter, timeout=1) == event

    async def test_async_iteration(self):
        bus = PresenceBus()
        subscription = bus.subscribe()
        events = [_event() for _ in range(2)]
        for event in events:
            bus.publish(event)

        received = []
        async for event in subscription:
            received.append(event)
            if len(received) == 2:
                break

        assert received == events

    async def test_receive_is_cancellable(self):
        bus = PresenceBus()
        subscription = bus.subscribe()
        waiter = asyncio.create_task(subscription.receive())
        await asyncio.sleep(0)

        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
