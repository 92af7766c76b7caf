"""In-process fan-out of new readings to live viewers."""

from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from threading import Lock
from typing import Dict, Optional
from uuid import uuid4

from app.schemas import Reading
from settings import get_settings

logger = logging.getLogger(__name__)


class Subscription:
    """Bounded per-viewer queue bound to the event loop that created it.

    When the queue is full the oldest pending reading is dropped, so a stalled
    viewer only ever holds the newest ``maxsize`` readings.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, maxsize: int) -> None:
        self.id = str(uuid4())
        self.dropped = 0
        self.closed = False
        self._loop = loop
        self._queue: asyncio.Queue[Reading] = asyncio.Queue(maxsize=maxsize)

    def offer(self, reading: Reading) -> None:
        # Every offer goes through the loop FIFO: publish order is delivery order.
        self._loop.call_soon_threadsafe(self._enqueue, reading)

    async def get(self) -> Reading:
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        self.closed = True

    def _enqueue(self, reading: Reading) -> None:
        if self.closed:
            return
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            logger.warning(
                "Subscriber queue full; dropped oldest reading",
                extra={"subscriber_id": self.id, "dropped": self.dropped},
            )
        self._queue.put_nowait(reading)


class BroadcastHub:
    """Tracks live subscriptions and offers each published reading to all of them."""

    def __init__(self, queue_size: int = 100) -> None:
        self.queue_size = queue_size
        self._subscriptions: Dict[str, Subscription] = {}
        self._lock = Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def subscribe(self) -> Subscription:
        """Register a subscription on the running loop; it sees only later publishes."""
        subscription = Subscription(asyncio.get_running_loop(), self.queue_size)
        with self._lock:
            self._subscriptions[subscription.id] = subscription
            count = len(self._subscriptions)
        logger.info(
            "Subscriber joined",
            extra={"subscriber_id": subscription.id, "subscriber_count": count},
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.close()
        with self._lock:
            removed = self._subscriptions.pop(subscription.id, None)
            count = len(self._subscriptions)
        if removed is not None:
            logger.info(
                "Subscriber left",
                extra={"subscriber_id": subscription.id, "subscriber_count": count},
            )

    def publish(self, reading: Reading) -> int:
        """Offer ``reading`` to every active subscription without blocking."""
        with self._lock:
            targets = list(self._subscriptions.values())

        delivered = 0
        for subscription in targets:
            try:
                subscription.offer(reading)
            except RuntimeError as exc:
                # The subscriber's loop has been closed underneath it.
                logger.warning(
                    "Dropping unreachable subscriber",
                    extra={"subscriber_id": subscription.id, "reason": str(exc)},
                )
                self.unsubscribe(subscription)
                continue
            delivered += 1
        return delivered


@lru_cache
def build_default_hub(queue_size: Optional[int] = None) -> BroadcastHub:
    settings = get_settings()
    size = queue_size or settings.subscriber_queue_size
    return BroadcastHub(queue_size=size)
