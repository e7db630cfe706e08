"""In-memory fan-out bus that republishes feed snapshots and simulation reports."""

from __future__ import annotations

import asyncio
import logging
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class EventBus(Generic[T]):
    """Fan-out publisher that feeds each item to all subscribers.

    The most recent item is retained so late subscribers can read the current
    state. Bounded subscriber queues drop their oldest item rather than stall
    the publisher.
    """

    def __init__(self) -> None:
        self._subscribers: set[asyncio.Queue[T]] = set()
        self._latest: Optional[T] = None

    @property
    def latest(self) -> Optional[T]:
        return self._latest

    async def publish(self, item: T) -> None:
        """Record ``item`` as latest and broadcast it to every subscriber queue."""

        self._latest = item
        for queue in tuple(self._subscribers):
            if queue.full():
                try:
                    queue.get_nowait()
                    queue.task_done()
                except asyncio.QueueEmpty:  # pragma: no cover - maxsize race
                    pass
                logger.debug("Subscriber queue full; dropped oldest item")
            queue.put_nowait(item)

    def subscribe(self, maxsize: int = 0) -> asyncio.Queue[T]:
        """Create and register a new subscriber queue."""

        queue: asyncio.Queue[T] = asyncio.Queue(maxsize=maxsize)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[T]) -> None:
        """Remove a subscriber queue."""

        self._subscribers.discard(queue)

    async def close(self) -> None:
        """Remove all subscribers and drain any pending items."""

        queues = tuple(self._subscribers)
        self._subscribers.clear()

        for queue in queues:
            while not queue.empty():
                queue.get_nowait()
                queue.task_done()


__all__ = ["EventBus"]
