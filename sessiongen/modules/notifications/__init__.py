"""
Notifications Module - Black Box Interface

Purpose: Broadcast session lifecycle events to every connected observer
Interface: emit(), subscribe(), unsubscribe(), close()
Hidden: Fan-out mechanism (in-process queues or Redis pub/sub)

Backends are interchangeable; pick one with create_gateway().
"""

import logging
from typing import Any, Optional

from .gateway import BroadcastGateway, NotificationGateway, QueueSubscription, Subscription
from .models import ConnectionStatus, Notification, NotificationType
from .redis_gateway import RedisNotificationGateway, RedisSubscription

logger = logging.getLogger(__name__)


def create_gateway(backend: str = "memory", redis_client: Optional[Any] = None) -> NotificationGateway:
    """
    Build a notification gateway.

    Args:
        backend: "memory" or "redis"
        redis_client: Async Redis client, required for the redis backend

    Raises:
        ValueError: On an unknown backend or a missing Redis client
    """
    if backend == "memory":
        logger.info("Using in-process notification gateway")
        return BroadcastGateway()
    if backend == "redis":
        if redis_client is None:
            raise ValueError("The redis notification backend requires a Redis client")
        logger.info("Using Redis pub/sub notification gateway")
        return RedisNotificationGateway(redis_client)
    raise ValueError(f"Unknown notification backend: {backend}")


__all__ = [
    "BroadcastGateway",
    "ConnectionStatus",
    "Notification",
    "NotificationGateway",
    "NotificationType",
    "QueueSubscription",
    "RedisNotificationGateway",
    "RedisSubscription",
    "Subscription",
    "create_gateway",
]
