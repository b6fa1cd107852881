"""In-memory broadcast channel: one producer, many independent readers.

Each ``Subscription`` owns its own ``asyncio.Queue``; ``publish`` puts
the item on every queue registered at that moment.  A subscriber that
falls behind only grows its own backlog; the producer and the other
subscribers never wait on it.

All queue operations must happen on the event loop thread.  Producers
running on other threads (e.g. the paho network thread) hand items over
with ``loop.call_soon_threadsafe(channel.publish, item)``.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Generic, List, Optional, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class Subscription(Generic[T]):
    """Read cursor into a ``BroadcastChannel``, positioned at creation time."""

    def __init__(self, channel: BroadcastChannel[T], max_backlog: Optional[int]) -> None:
        self._channel = channel
        self._queue: asyncio.Queue[T] = asyncio.Queue()
        self._max_backlog = max_backlog
        self._dropped = 0
        self._closed = False

    # -- consumer API -------------------------------------------------------

    async def receive(self) -> T:
        """Wait for and return the next item published after subscribing."""
        return await self._queue.get()

    def receive_nowait(self) -> T:
        """Return the next item, or raise ``asyncio.QueueEmpty``."""
        return self._queue.get_nowait()

    def close(self) -> None:
        """Stop receiving new items; already queued items stay readable."""
        if not self._closed:
            self._closed = True
            self._channel._unsubscribe(self)

    @property
    def backlog(self) -> int:
        """Number of delivered but not yet received items."""
        return self._queue.qsize()

    @property
    def dropped(self) -> int:
        """Items discarded because the backlog bound was reached."""
        return self._dropped

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> Subscription[T]:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- producer side ------------------------------------------------------

    def _deliver(self, item: T) -> None:
        if self._max_backlog is not None and self._queue.qsize() >= self._max_backlog:
            self._queue.get_nowait()
            self._dropped += 1
            logger.warning(
                "subscription_backlog_full",
                max_backlog=self._max_backlog,
                dropped=self._dropped,
            )
        self._queue.put_nowait(item)


class BroadcastChannel(Generic[T]):
    """Fan-out primitive delivering every published item to every subscriber.

    Parameters
    ----------
    max_backlog:
        Optional per-subscription bound.  ``None`` (the default) keeps
        every undelivered item; with a bound the oldest item is dropped
        when a new one arrives at a full subscription.
    """

    def __init__(self, max_backlog: Optional[int] = None) -> None:
        if max_backlog is not None and max_backlog < 1:
            raise ValueError(f"max_backlog must be >= 1, got {max_backlog}")
        self._max_backlog = max_backlog
        self._lock = threading.Lock()
        self._subscribers: List[Subscription[T]] = []

    def subscribe(self) -> Subscription[T]:
        """Create a subscription that sees only items published from now on."""
        sub: Subscription[T] = Subscription(self, self._max_backlog)
        with self._lock:
            self._subscribers.append(sub)
        return sub

    def publish(self, item: T) -> int:
        """Deliver *item* to all open subscriptions without blocking.

        Returns the number of subscriptions the item was delivered to.
        """
        with self._lock:
            targets = list(self._subscribers)
        for sub in targets:
            sub._deliver(item)
        return len(targets)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def _unsubscribe(self, sub: Subscription[T]) -> None:
        with self._lock:
            try:
                self._subscribers.remove(sub)
            except ValueError:
                pass
