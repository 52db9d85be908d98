"""Redis notification transport for cross-process delivery."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Optional, Tuple

try:
    import redis.asyncio as redis
except ImportError:
    redis = None

from ..constants import DEFAULT_NOTIFICATION_TOPIC, REDIS_KEY_PREFIX
from ..models import Notification
from .base import NotificationTransport

logger = logging.getLogger(__name__)


class RedisNotifier(NotificationTransport[str]):
    """Redis list used as a notification queue."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        topic: str = DEFAULT_NOTIFICATION_TOPIC,
    ) -> None:
        if redis is None:
            raise ImportError("redis package is required for RedisNotifier")

        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.topic = topic
        self._redis: Optional[Any] = None

    def _queue_name(self, topic: str) -> str:
        return f"{REDIS_KEY_PREFIX}:{topic}"

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, topic: str, notification: Notification) -> None:
        """Push notification onto the Redis list for ``topic``."""
        if not self._redis:
            await self.connect()
        await self._redis.lpush(self._queue_name(topic), notification.to_json())

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[str, Notification]]:
        """Pop notifications from the Redis list for ``topic``."""
        if not self._redis:
            await self.connect()

        loop = asyncio.get_running_loop()
        start_time = loop.time() if lifespan else None

        while True:
            if lifespan and start_time:
                if loop.time() - start_time >= lifespan:
                    break

            result = await self._redis.brpop(self._queue_name(topic), timeout=1)

            if result:
                _, message_json = result
                try:
                    notification = Notification.model_validate(json.loads(message_json))
                    yield message_json, notification
                except (json.JSONDecodeError, ValueError) as e:
                    logger.warning(f"Failed to parse notification: {e}")
                    continue

            await asyncio.sleep(0.01)

    async def ack(self, raw_message: str) -> None:
        """No-op acknowledgment for Redis transport (message already consumed)."""
        pass
