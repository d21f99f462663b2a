"""
In-process fan-out of export events to asyncio consumers.

Export workers call :meth:`AsyncEventHub.publish` from their own threads.
Each :class:`Subscription` owns a bounded queue bound to the event loop that
created it; delivery hops onto that loop with ``call_soon_threadsafe``.  A
slow consumer loses its oldest events rather than blocking a worker.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
import time
from typing import Any, Dict, FrozenSet, Optional, Sequence

LOGGER = logging.getLogger(__name__)


class Subscription:
    def __init__(
        self,
        hub: "AsyncEventHub",
        sub_id: int,
        topics: Optional[FrozenSet[str]],
        loop: asyncio.AbstractEventLoop,
        maxsize: int,
    ) -> None:
        self.id = sub_id
        self.topics = topics
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self._hub = hub

    def wants(self, topic: str) -> bool:
        return self.topics is None or topic in self.topics

    def _deliver(self, event: Dict[str, Any]) -> None:
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
            LOGGER.debug("Subscriber %s lagging; dropped oldest event", self.id)
        self.queue.put_nowait(event)

    async def get(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Wait for the next event; raises ``asyncio.TimeoutError`` on timeout."""
        if timeout is None:
            return await self.queue.get()
        return await asyncio.wait_for(self.queue.get(), timeout)

    def close(self) -> None:
        self._hub.unsubscribe(self)


class AsyncEventHub:
    """Thread-safe publish/subscribe hub for ``export:*`` topics."""

    def __init__(self, *, queue_size: int = 256) -> None:
        self._queue_size = max(1, int(queue_size))
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._subscriptions: Dict[int, Subscription] = {}

    async def subscribe(self, topics: Optional[Sequence[str]] = None) -> Subscription:
        """Register a consumer on the running loop.

        ``None``, an empty list or ``"*"`` subscribes to every topic.
        """
        wanted = {str(t).strip() for t in topics or () if str(t).strip()}
        selected = None if not wanted or "*" in wanted else frozenset(wanted)
        with self._lock:
            sub = Subscription(
                self, next(self._ids), selected, asyncio.get_running_loop(), self._queue_size
            )
            self._subscriptions[sub.id] = sub
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.pop(subscription.id, None)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, topic: str, payload: Any) -> int:
        """Schedule delivery to matching subscribers and return how many."""
        topic = str(topic or "").strip()
        if not topic:
            return 0
        event = {"topic": topic, "timestamp": time.time(), "payload": payload}
        with self._lock:
            targets = [sub for sub in self._subscriptions.values() if sub.wants(topic)]

        delivered = 0
        for sub in targets:
            try:
                sub.loop.call_soon_threadsafe(sub._deliver, event)
            except RuntimeError:
                # Loop already closed; the consumer is gone.
                self.unsubscribe(sub)
                continue
            delivered += 1
        return delivered


__all__ = ["AsyncEventHub", "Subscription"]
