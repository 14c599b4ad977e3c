"""
In-process change notifications.

Each subscriber gets its own bounded queue. Publishing never blocks: when a
subscriber's queue is full the event is dropped for that subscriber only.
Consumers react to an event by re-fetching the full subscription list.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    """Zero-payload signal that the subscription set changed."""

    name: str = "update"


_CLOSED = object()


class Subscriber:
    """A live event stream registered with a ChangeNotifier."""

    def __init__(self, notifier: "ChangeNotifier", buffer_size: int):
        self._notifier = notifier
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=buffer_size)
        self.closed = False
        self.dropped = 0

    def offer(self, event: ChangeEvent) -> bool:
        """Queue an event without blocking. Returns False if it was dropped."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    async def get(self) -> ChangeEvent | None:
        """Wait for the next event. Returns None once the subscriber is closed."""
        if self.closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def close(self) -> None:
        """Unregister and end iteration."""
        if self.closed:
            return
        self.closed = True
        self._notifier._remove(self)
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # Drop one pending event so the end marker fits
            self._queue.get_nowait()
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "Subscriber":
        return self

    async def __anext__(self) -> ChangeEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> "Subscriber":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class ChangeNotifier:
    """Broadcasts change events to every live subscriber."""

    def __init__(self, buffer_size: int = 100):
        if buffer_size < 1:
            raise ValueError("buffer_size must be at least 1")
        self.buffer_size = buffer_size
        self._subscribers: set[Subscriber] = set()
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> Subscriber:
        """Register a subscriber that receives every event published after now."""
        subscriber = Subscriber(self, self.buffer_size)
        with self._lock:
            self._subscribers.add(subscriber)
        logger.debug(f"Subscriber added ({self.subscriber_count} active)")
        return subscriber

    def publish(self, event: ChangeEvent | None = None) -> int:
        """
        Deliver an event to all subscribers without blocking.

        Returns the number of subscribers that received it.
        """
        event = event or ChangeEvent()
        with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        for subscriber in subscribers:
            if subscriber.offer(event):
                delivered += 1
            else:
                logger.debug("Dropped change event for a slow subscriber")
        return delivered

    def _remove(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.discard(subscriber)
        logger.debug(f"Subscriber removed ({self.subscriber_count} active)")
