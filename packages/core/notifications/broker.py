"""In-process fan-out of notification events to live SSE subscribers.

Subscribers are asyncio queues owned by the event loop serving the stream.
`publish` may be called from any thread (the scheduler runs in a background
thread); events are handed to the loop with `call_soon_threadsafe`.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Dict, List, Optional, Set, Tuple


logger = logging.getLogger("crm_reminders.notifications.broker")

DEFAULT_QUEUE_SIZE = 100


class NotificationBroker:
    def __init__(self, max_queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._max_queue_size = max_queue_size
        self._lock = threading.Lock()
        self._subscribers: Dict[int, Set[Tuple[asyncio.AbstractEventLoop, asyncio.Queue]]] = {}

    def subscribe(self, owner_id: int) -> asyncio.Queue:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        with self._lock:
            self._subscribers.setdefault(owner_id, set()).add((loop, queue))
        logger.info("sse_subscribed owner=%s", owner_id)
        return queue

    def unsubscribe(self, owner_id: int, queue: asyncio.Queue) -> None:
        with self._lock:
            entries = self._subscribers.get(owner_id, set())
            for entry in [entry for entry in entries if entry[1] is queue]:
                entries.discard(entry)
            if not entries:
                self._subscribers.pop(owner_id, None)
        logger.info("sse_unsubscribed owner=%s", owner_id)

    def subscriber_count(self, owner_id: Optional[int] = None) -> int:
        with self._lock:
            if owner_id is not None:
                return len(self._subscribers.get(owner_id, ()))
            return sum(len(entries) for entries in self._subscribers.values())

    def publish(self, owner_id: int, event: Dict[str, Any]) -> int:
        """Queue an event for every live subscriber of the owner. Returns how many were reached."""
        with self._lock:
            entries: List[Tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = list(
                self._subscribers.get(owner_id, ())
            )
        reached = 0
        for loop, queue in entries:
            if loop.is_closed():
                self.unsubscribe(owner_id, queue)
                continue
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is loop:
                self._put(owner_id, queue, event)
            else:
                try:
                    loop.call_soon_threadsafe(self._put, owner_id, queue, event)
                except RuntimeError:
                    # Loop closed after the is_closed check.
                    self.unsubscribe(owner_id, queue)
                    continue
            reached += 1
        return reached

    def _put(self, owner_id: int, queue: asyncio.Queue, event: Dict[str, Any]) -> None:
        try:
            queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "sse_queue_full; dropped owner=%s type=%s", owner_id, event.get("type")
            )
