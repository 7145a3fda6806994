"""
Redis pub/sub notification backend.

Pub/sub has exactly the gateway's delivery semantics: every listener that is
subscribed at publish time receives the event once, later listeners get no
replay.
"""

import asyncio
import logging
import uuid
from typing import Any, AsyncIterator, Dict, Optional, Union

from .models import Notification, NotificationType

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "events:session"


class RedisSubscription:
    """One observer backed by its own Redis pubsub connection."""

    def __init__(self, pubsub, channel: str):
        self.subscription_id = str(uuid.uuid4())
        self._pubsub = pubsub
        self._channel = channel
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def start(self) -> "RedisSubscription":
        await self._pubsub.subscribe(self._channel)
        logger.info(f"Subscribed to channel: {self._channel}")
        return self

    async def get(self, timeout: Optional[float] = None) -> Optional[Notification]:
        """Wait for the next published event (None on timeout or close)."""
        if self._closed:
            return None
        message = await self._pubsub.get_message(
            ignore_subscribe_messages=True, timeout=timeout
        )
        if not message or message.get("type") != "message":
            return None
        return self._decode(message["data"])

    async def __aiter__(self) -> AsyncIterator[Notification]:
        try:
            async for message in self._pubsub.listen():
                if self._closed:
                    break
                if message["type"] != "message":
                    continue
                notification = self._decode(message["data"])
                if notification is not None:
                    yield notification
        except asyncio.CancelledError:
            logger.info(f"Subscription {self.subscription_id} cancelled")
            raise

    def _decode(self, data: Union[str, bytes]) -> Optional[Notification]:
        if isinstance(data, bytes):
            data = data.decode()
        try:
            return Notification.from_json(data)
        except (ValueError, KeyError) as e:
            logger.warning(f"Ignoring malformed notification on {self._channel}: {e}")
            return None

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._pubsub.unsubscribe(self._channel)
            await self._pubsub.close()
        except Exception as e:
            logger.warning(f"Error closing subscription {self.subscription_id}: {e}")


class RedisNotificationGateway:
    """Gateway publishing notifications to a Redis channel."""

    def __init__(self, redis_client, channel: str = DEFAULT_CHANNEL):
        """
        Args:
            redis_client: Async Redis client
            channel: Pub/sub channel carrying notifications
        """
        self.redis = redis_client
        self.channel = channel
        self._subscriptions: Dict[str, RedisSubscription] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def emit(
        self, event: Union[NotificationType, str], payload: Dict[str, Any]
    ) -> int:
        notification = Notification(event=NotificationType(event), data=dict(payload))
        try:
            receivers = await self.redis.publish(self.channel, notification.to_json())
        except Exception as e:
            logger.error(f"Failed to publish {notification.event.value} notification: {e}")
            return 0
        return receivers or 0

    async def subscribe(self) -> RedisSubscription:
        subscription = RedisSubscription(self.redis.pubsub(), self.channel)
        await subscription.start()
        self._subscriptions[subscription.subscription_id] = subscription
        return subscription

    async def unsubscribe(self, subscription) -> None:
        removed = self._subscriptions.pop(subscription.subscription_id, None)
        if removed is not None:
            await removed.close()

    async def close(self) -> None:
        for subscription in list(self._subscriptions.values()):
            await subscription.close()
        self._subscriptions.clear()
