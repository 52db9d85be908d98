"""In-memory notification transport for testing and single-process use."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import AsyncIterator, Deque, Dict, List, Optional, Tuple

from ..constants import DEFAULT_NOTIFICATION_TOPIC
from ..models import Notification
from .base import NotificationTransport


class InMemoryNotifier(NotificationTransport[Tuple[str, Notification]]):
    """Simple in-process queue of notifications."""

    def __init__(self, topic: str = DEFAULT_NOTIFICATION_TOPIC) -> None:
        self.topic = topic
        self._queues: Dict[str, Deque[Tuple[str, Notification]]] = defaultdict(deque)
        self.sent: List[Notification] = []
        self._lock = asyncio.Lock()

    async def publish(self, topic: str, notification: Notification) -> None:
        """Publish notification to in-memory queue."""
        raw = (notification.to_json(), notification)
        async with self._lock:
            self._queues[topic].append(raw)
            self.sent.append(notification)

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[Tuple[str, Notification], Notification]]:
        """Subscribe to notifications from topic.

        Args:
            topic: The topic to subscribe to
            lifespan: Maximum time in seconds to keep listening. If None, runs indefinitely.
        """
        loop = asyncio.get_running_loop()
        start_time = loop.time() if lifespan else None

        while True:
            if lifespan and start_time:
                if loop.time() - start_time >= lifespan:
                    break

            async with self._lock:
                if self._queues[topic]:
                    raw_message = self._queues[topic].popleft()
                    yield raw_message, raw_message[1]
                    continue

            await asyncio.sleep(0.05)

    async def ack(self, raw_message: Tuple[str, Notification]) -> None:
        """No-op acknowledgment for in-memory transport."""
        pass
