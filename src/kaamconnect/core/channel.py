"""In-process broadcast channel with closeable, ordered subscriptions."""

import asyncio
from collections.abc import AsyncIterator
from typing import Generic, TypeVar

T = TypeVar("T")

_CLOSED = object()


class Subscription(Generic[T]):
    """Ordered stream of items published after subscribing.

    Iterating ends once the subscription or its channel is closed.
    Items already queued before the close are still delivered. With a
    ``maxsize``, a reader that falls behind loses the oldest items first;
    without one, readers must keep draining or close.
    """

    def __init__(self, channel: "Channel[T]", maxsize: int = 0) -> None:
        self._channel = channel
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize)
        self._closed = False
        self._dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def dropped(self) -> int:
        """Items discarded because this reader fell behind."""
        return self._dropped

    def _deliver(self, item: T) -> None:
        if not self._closed:
            self._put(item)

    def close(self) -> None:
        """Stop receiving items. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._channel._discard(self)
        self._put(_CLOSED)

    def _put(self, item: object) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self._dropped += 1
        self._queue.put_nowait(item)

    async def get(self) -> T:
        """Wait for the next item, raising StopAsyncIteration when closed."""
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the marker so repeated reads also stop
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    async def __anext__(self) -> T:
        return await self.get()


class Channel(Generic[T]):
    """Fan-out publisher: every subscriber sees every item in publish order.

    ``maxsize`` bounds each subscription's buffer (0 means unbounded).
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._maxsize = maxsize
        self._subscribers: list[Subscription[T]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription[T]:
        if self._closed:
            raise RuntimeError("Channel is closed")
        subscription: Subscription[T] = Subscription(self, self._maxsize)
        self._subscribers.append(subscription)
        return subscription

    def publish(self, item: T) -> None:
        for subscription in list(self._subscribers):
            subscription._deliver(item)

    def close(self) -> None:
        """Close the channel and every open subscription exactly once."""
        if self._closed:
            return
        self._closed = True
        for subscription in list(self._subscribers):
            subscription.close()

    def _discard(self, subscription: Subscription[T]) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
