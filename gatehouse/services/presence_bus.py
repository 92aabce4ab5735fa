"""In-process fan-out of presence events.

One ``PresenceBus`` is created per process in the app lifespan and shared
through ``app.state``. Each WebSocket session subscribes for its lifetime and
receives every event published after it subscribed, in publish order.
Subscribers that fall behind lose their oldest buffered events rather than
slowing publishers down.
"""

import asyncio
from typing import Optional

import structlog

from gatehouse.models.presence import PresenceEvent

logger = structlog.get_logger(__name__)

DEFAULT_CAPACITY = 100


class PresenceSubscription:
    """A receive handle on a PresenceBus.

    Use as an async context manager (or call ``close``) to unsubscribe.
    Iterating yields events until the task is cancelled.

    Attributes:
        lagged: Total events dropped because this subscriber's buffer was full
    """

    def __init__(self, bus: "PresenceBus", capacity: int):
        self._bus = bus
        self._queue: asyncio.Queue[PresenceEvent] = asyncio.Queue(maxsize=capacity)
        self._unreported_lag = 0
        self.lagged = 0
        self.closed = False

    def _offer(self, event: PresenceEvent) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.lagged += 1
            self._unreported_lag += 1
        self._queue.put_nowait(event)

    def pending(self) -> int:
        """Number of buffered events not yet received."""
        return self._queue.qsize()

    async def receive(self) -> PresenceEvent:
        """Wait for the next event."""
        if self._unreported_lag:
            logger.warning(
                "presence_subscriber_lagged",
                skipped=self._unreported_lag,
                total_lagged=self.lagged,
            )
            self._unreported_lag = 0
        return await self._queue.get()

    def close(self) -> None:
        """Unsubscribe. Buffered events are discarded."""
        if not self.closed:
            self.closed = True
            self._bus._unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> PresenceEvent:
        return await self.receive()

    async def __aenter__(self) -> "PresenceSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class PresenceBus:
    """Broadcast channel of PresenceEvents for one process.

    ``publish`` never awaits, so it is safe to call from any coroutine on the
    loop, including cleanup code running during cancellation.
    """

    def __init__(self, capacity: Optional[int] = None):
        self.capacity = capacity or DEFAULT_CAPACITY
        self._subscribers: set[PresenceSubscription] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> PresenceSubscription:
        """Create a new independent subscription."""
        subscription = PresenceSubscription(self, self.capacity)
        self._subscribers.add(subscription)
        logger.debug("presence_subscribed", subscribers=len(self._subscribers))
        return subscription

    def _unsubscribe(self, subscription: PresenceSubscription) -> None:
        self._subscribers.discard(subscription)
        logger.debug("presence_unsubscribed", subscribers=len(self._subscribers))

    def publish(self, event: PresenceEvent) -> int:
        """Fan an event out to every current subscriber.

        Returns:
            Number of subscribers the event was delivered to (0 is not an error)
        """
        receivers = list(self._subscribers)
        for subscription in receivers:
            subscription._offer(event)

        logger.debug(
            "presence_event_published",
            user_id=str(event.user_id),
            status=event.new_status.value,
            receivers=len(receivers),
        )
        return len(receivers)
