"""
Notification Gateway

Broadcast-only fan-out of lifecycle events to every connected observer.

Design:
- Fire-and-forget: no acknowledgment, at-most-once delivery
- No replay: observers that subscribe later miss earlier events
- Per-identifier order is the order of emit() calls
"""

import asyncio
import logging
import uuid
from typing import Any, AsyncIterator, Dict, Optional, Protocol, Union

from .models import Notification, NotificationType

logger = logging.getLogger(__name__)


class Subscription(Protocol):
    """A single observer's view of the notification stream."""

    subscription_id: str

    @property
    def is_closed(self) -> bool:
        ...

    async def get(self, timeout: Optional[float] = None) -> Optional[Notification]:
        ...

    def __aiter__(self) -> AsyncIterator[Notification]:
        ...

    async def close(self) -> None:
        ...


class NotificationGateway(Protocol):
    """Protocol for notification backends."""

    async def emit(
        self, event: Union[NotificationType, str], payload: Dict[str, Any]
    ) -> int:
        """Broadcast an event; returns the number of local observers reached."""
        ...

    async def subscribe(self) -> Subscription:
        ...

    async def unsubscribe(self, subscription: Subscription) -> None:
        ...

    @property
    def subscriber_count(self) -> int:
        ...

    async def close(self) -> None:
        ...


class QueueSubscription:
    """
    Subscription backed by a bounded asyncio queue.

    Supports async iteration for consuming events.
    """

    def __init__(self, subscription_id: Optional[str] = None, max_queue_size: int = 100):
        self.subscription_id = subscription_id or str(uuid.uuid4())
        self._queue: asyncio.Queue[Optional[Notification]] = asyncio.Queue(maxsize=max_queue_size)
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    def deliver(self, notification: Notification) -> bool:
        """
        Deliver an event to this subscription.

        Returns:
            True if queued, False if dropped (queue full or closed)
        """
        if self._closed:
            return False
        try:
            self._queue.put_nowait(notification)
            return True
        except asyncio.QueueFull:
            logger.warning(
                f"Notification dropped for subscription {self.subscription_id}: queue full"
            )
            return False

    async def get(self, timeout: Optional[float] = None) -> Optional[Notification]:
        """
        Get the next event.

        Returns:
            Next event, or None if the subscription closed or the wait timed out
        """
        if self._closed and self._queue.empty():
            return None
        try:
            if timeout is not None:
                return await asyncio.wait_for(self._queue.get(), timeout=timeout)
            return await self._queue.get()
        except asyncio.TimeoutError:
            return None

    async def __aiter__(self) -> AsyncIterator[Notification]:
        while True:
            notification = await self.get()
            if notification is None:
                break
            yield notification

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Signal end of stream
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass


class BroadcastGateway:
    """In-process gateway fanning events out to per-observer queues."""

    def __init__(self, max_subscribers: int = 1000, max_queue_size: int = 100):
        """
        Args:
            max_subscribers: Maximum concurrent observers
            max_queue_size: Events buffered per observer before dropping
        """
        self._max_subscribers = max_subscribers
        self._max_queue_size = max_queue_size
        self._subscriptions: Dict[str, QueueSubscription] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def emit(
        self, event: Union[NotificationType, str], payload: Dict[str, Any]
    ) -> int:
        notification = Notification(event=NotificationType(event), data=dict(payload))
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if subscription.deliver(notification):
                delivered += 1

        logger.debug(
            f"Emitted {notification.event.value} for {notification.identifier or '-'} "
            f"to {delivered} observer(s)"
        )
        return delivered

    async def subscribe(self) -> QueueSubscription:
        """
        Register a new observer.

        Raises:
            ValueError: If the maximum number of observers is reached
        """
        if len(self._subscriptions) >= self._max_subscribers:
            raise ValueError(f"Maximum subscribers ({self._max_subscribers}) reached")
        subscription = QueueSubscription(max_queue_size=self._max_queue_size)
        self._subscriptions[subscription.subscription_id] = subscription
        logger.debug(f"New subscription: {subscription.subscription_id}")
        return subscription

    async def unsubscribe(self, subscription: Subscription) -> None:
        removed = self._subscriptions.pop(subscription.subscription_id, None)
        if removed is not None:
            await removed.close()
            logger.debug(f"Subscription removed: {subscription.subscription_id}")

    async def close(self) -> None:
        """Close all subscriptions."""
        for subscription in list(self._subscriptions.values()):
            await subscription.close()
        self._subscriptions.clear()
