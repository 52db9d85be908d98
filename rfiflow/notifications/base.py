"""Base transport interface for RFI notifications."""

from __future__ import annotations

import abc
from typing import AsyncIterator, Generic, Optional, Tuple, TypeVar

from ..constants import DEFAULT_NOTIFICATION_TOPIC
from ..models import Notification
from ..states import NotificationKind

RawMessageT = TypeVar("RawMessageT")


class NotificationTransport(Generic[RawMessageT], metaclass=abc.ABCMeta):
    """Abstract notification dispatcher backed by a message channel."""

    topic: str = DEFAULT_NOTIFICATION_TOPIC

    async def connect(self) -> None:
        """Open connection to broker (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to broker (no-op by default)."""
        pass

    async def notify(
        self,
        kind: NotificationKind,
        rfi_id: str,
        from_status: Optional[str],
        to_status: Optional[str],
        actor_id: str,
        reason: Optional[str] = None,
        message: str = "",
    ) -> Notification:
        """Build a notification and publish it to ``self.topic``."""
        notification = Notification(
            kind=kind,
            rfi_id=rfi_id,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor_id,
            reason=reason,
            message=message,
        )
        await self.publish(self.topic, notification)
        return notification

    @abc.abstractmethod
    async def publish(self, topic: str, notification: Notification) -> None:
        """Send a notification to a topic/queue."""
        raise NotImplementedError

    @abc.abstractmethod
    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawMessageT, Notification]]:
        """Yield raw transport message and Notification pairs.

        Args:
            topic: The topic to subscribe to
            lifespan: Maximum time in seconds to keep listening. If None, runs indefinitely.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def ack(self, raw_message: RawMessageT) -> None:
        """Acknowledge successful processing."""
        raise NotImplementedError
