import json

import pytest

from sessiongen.modules.notifications import (
    BroadcastGateway,
    Notification,
    NotificationType,
    RedisNotificationGateway,
    create_gateway,
)
from sessiongen.modules.notifications.redis_gateway import DEFAULT_CHANNEL


@pytest.mark.asyncio
async def test_broadcast_reaches_every_subscriber():
    gateway = BroadcastGateway()
    first = await gateway.subscribe()
    second = await gateway.subscribe()

    delivered = await gateway.emit(
        NotificationType.PAIRING_CODE, {"identifier": "15551234567", "code": "SESS-GEN1"}
    )

    assert delivered == 2
    for subscription in (first, second):
        notification = await subscription.get(timeout=1)
        assert notification.event == NotificationType.PAIRING_CODE
        assert notification.identifier == "15551234567"
        assert notification.data["code"] == "SESS-GEN1"


@pytest.mark.asyncio
async def test_late_subscriber_gets_no_replay():
    gateway = BroadcastGateway()
    await gateway.emit(NotificationType.ERROR, {"identifier": "1", "message": "boom"})

    late = await gateway.subscribe()

    assert await late.get(timeout=0.05) is None


@pytest.mark.asyncio
async def test_emit_without_subscribers():
    gateway = BroadcastGateway()
    assert await gateway.emit("sessionReady", {"identifier": "1"}) == 0


@pytest.mark.asyncio
async def test_per_identifier_order_preserved():
    gateway = BroadcastGateway()
    subscription = await gateway.subscribe()

    for status in ("initializing", "connecting", "connected"):
        await gateway.emit(
            NotificationType.CONNECTION_STATUS, {"identifier": "1", "status": status}
        )

    received = [(await subscription.get(timeout=1)).data["status"] for _ in range(3)]
    assert received == ["initializing", "connecting", "connected"]


@pytest.mark.asyncio
async def test_full_queue_drops_events():
    gateway = BroadcastGateway(max_queue_size=1)
    subscription = await gateway.subscribe()

    await gateway.emit(NotificationType.ERROR, {"identifier": "1", "message": "a"})
    delivered = await gateway.emit(NotificationType.ERROR, {"identifier": "1", "message": "b"})

    assert delivered == 0
    kept = await subscription.get(timeout=1)
    assert kept.data["message"] == "a"
    assert await subscription.get(timeout=0.05) is None


@pytest.mark.asyncio
async def test_unsubscribe_ends_iteration():
    gateway = BroadcastGateway()
    subscription = await gateway.subscribe()
    await gateway.emit(NotificationType.ERROR, {"identifier": "1", "message": "a"})

    await gateway.unsubscribe(subscription)

    received = [notification async for notification in subscription]
    assert len(received) == 1
    assert gateway.subscriber_count == 0


@pytest.mark.asyncio
async def test_max_subscribers():
    gateway = BroadcastGateway(max_subscribers=1)
    await gateway.subscribe()

    with pytest.raises(ValueError):
        await gateway.subscribe()


@pytest.mark.asyncio
async def test_redis_emit_publishes_json(mock_redis):
    gateway = RedisNotificationGateway(mock_redis)

    receivers = await gateway.emit(
        NotificationType.SESSION_READY, {"identifier": "15551234567", "sessionSent": True}
    )

    assert receivers == 1
    channel, raw = mock_redis.publish.call_args.args
    assert channel == DEFAULT_CHANNEL
    message = json.loads(raw)
    assert message["event"] == "sessionReady"
    assert message["data"] == {"identifier": "15551234567", "sessionSent": True}
    assert "timestamp" in message


@pytest.mark.asyncio
async def test_redis_emit_failure_is_swallowed(mock_redis):
    mock_redis.publish.side_effect = ConnectionError("redis down")
    gateway = RedisNotificationGateway(mock_redis)

    assert await gateway.emit(NotificationType.ERROR, {"identifier": "1", "message": "x"}) == 0


@pytest.mark.asyncio
async def test_redis_subscription_decodes_messages(mock_redis, mock_pubsub):
    published = Notification(
        event=NotificationType.PAIRING_CODE, data={"identifier": "1", "code": "ABCD-EFGH"}
    )
    mock_pubsub.get_message.return_value = {"type": "message", "data": published.to_json()}
    gateway = RedisNotificationGateway(mock_redis)

    subscription = await gateway.subscribe()
    notification = await subscription.get(timeout=1)

    mock_pubsub.subscribe.assert_awaited_once_with(DEFAULT_CHANNEL)
    assert notification.event == NotificationType.PAIRING_CODE
    assert notification.data["code"] == "ABCD-EFGH"
    assert gateway.subscriber_count == 1

    await gateway.unsubscribe(subscription)
    mock_pubsub.unsubscribe.assert_awaited_once_with(DEFAULT_CHANNEL)
    mock_pubsub.close.assert_awaited_once()
    assert gateway.subscriber_count == 0


@pytest.mark.asyncio
async def test_redis_subscription_ignores_malformed(mock_redis, mock_pubsub):
    mock_pubsub.get_message.return_value = {"type": "message", "data": b"not json"}
    gateway = RedisNotificationGateway(mock_redis)

    subscription = await gateway.subscribe()

    assert await subscription.get(timeout=1) is None


def test_create_gateway_backends(mock_redis):
    assert isinstance(create_gateway("memory"), BroadcastGateway)
    assert isinstance(create_gateway("redis", mock_redis), RedisNotificationGateway)

    with pytest.raises(ValueError):
        create_gateway("redis")
    with pytest.raises(ValueError):
        create_gateway("kafka")
