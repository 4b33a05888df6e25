"""
Multi-subscriber broadcast of finalized updates with a bounded lag buffer
"""

import asyncio
import logging
from collections import deque
from typing import Deque, Generic, Set, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_EMPTY = object()


class SubscriberLagged(Exception):
    """Raised once by Subscription.recv when updates were overwritten before delivery"""
    def __init__(self, skipped: int):
        super().__init__(f"subscriber lagged, skipped {skipped} updates")
        self.skipped = skipped


class SubscriptionClosed(Exception):
    """The broadcaster was closed and the subscription has drained"""


class Subscription(Generic[T]):
    def __init__(self, broadcaster: "UpdateBroadcaster[T]", cursor: int):
        self._broadcaster = broadcaster
        self._cursor = cursor
        self._wakeup = asyncio.Event()

    def _notify(self):
        self._wakeup.set()

    @property
    def pending(self) -> int:
        return self._broadcaster.next_seq - self._cursor

    def try_recv(self, default=None):
        """
        Return the next update without waiting.

        Returns ``default`` when nothing is pending. Raises SubscriberLagged if
        the cursor fell behind the buffer; the cursor then points at the
        oldest buffered update.
        """
        b = self._broadcaster
        oldest = b.next_seq - len(b.buffer)
        if self._cursor < oldest:
            skipped = oldest - self._cursor
            self._cursor = oldest
            raise SubscriberLagged(skipped)
        if self._cursor >= b.next_seq:
            return default
        seq, item = b.buffer[self._cursor - oldest]
        self._cursor = seq + 1
        return item

    async def recv(self) -> T:
        while True:
            self._wakeup.clear()
            item = self.try_recv(_EMPTY)
            if item is not _EMPTY:
                return item
            if self._broadcaster.closed:
                raise SubscriptionClosed()
            await self._wakeup.wait()

    def close(self):
        self._broadcaster.unsubscribe(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


class UpdateBroadcaster(Generic[T]):
    """
    Fan-out of updates to any number of subscribers.

    ``publish`` never waits on subscribers: the last ``capacity`` updates are
    kept in a ring buffer and each subscriber reads from its own cursor. A
    subscriber that falls further behind sees SubscriberLagged and resumes at
    the oldest buffered update.
    """

    def __init__(self, capacity: int = 32):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.buffer: Deque[Tuple[int, T]] = deque(maxlen=capacity)
        self.next_seq = 0
        self.subscribers: Set[Subscription[T]] = set()
        self.closed = False
        logger.info(f"UpdateBroadcaster initialized with capacity {capacity}")

    def subscribe(self) -> Subscription[T]:
        """New subscribers receive only updates published after this call"""
        subscription = Subscription(self, self.next_seq)
        self.subscribers.add(subscription)
        logger.debug(f"Subscriber added, {len(self.subscribers)} active")
        return subscription

    def unsubscribe(self, subscription: Subscription[T]):
        if subscription in self.subscribers:
            self.subscribers.discard(subscription)
            logger.debug(f"Subscriber removed, {len(self.subscribers)} active")

    def publish(self, item: T) -> int:
        """Buffer ``item`` and wake subscribers; returns the subscriber count"""
        self.buffer.append((self.next_seq, item))
        self.next_seq += 1
        if not self.subscribers:
            logger.debug("No subscribers to receive the update")
        for subscription in list(self.subscribers):
            subscription._notify()
        return len(self.subscribers)

    def close(self):
        self.closed = True
        for subscription in list(self.subscribers):
            subscription._notify()
