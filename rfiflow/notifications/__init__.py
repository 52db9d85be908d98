"""Notification transport factory."""

from __future__ import annotations

from typing import Optional

from ..config import RfiFlowConfig, load_config
from .base import NotificationTransport
from .inmemory import InMemoryNotifier


def get_notifier(
    backend: Optional[str] = None, config: Optional[RfiFlowConfig] = None
) -> NotificationTransport:
    """Factory function to get the configured notification transport."""

    config = config or load_config()
    notifications = config.notifications
    backend = (backend or notifications.backend).lower()

    if backend == "inmemory":
        return InMemoryNotifier(topic=notifications.topic)
    elif backend == "redis":
        from .redis import RedisNotifier

        redis_conf = notifications.redis
        return RedisNotifier(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
            topic=notifications.topic,
        )
    else:
        raise ValueError(f"Unsupported notification backend: {backend}")


__all__ = ["NotificationTransport", "InMemoryNotifier", "get_notifier"]
