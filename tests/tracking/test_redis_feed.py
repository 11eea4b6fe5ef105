import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
import redis.asyncio as redis

from delivery_core.core.exceptions import NotFoundError
from delivery_core.delivery import DeliveryRecord, DeliveryStatus, DriverLocation
from delivery_core.settings import RedisSettings
from delivery_core.tracking import DeliveryTimelineTracker, TimelineFormatter
from delivery_core.tracking.redis_feed import RedisLiveFeed, SnapshotDecodeError

pytestmark = pytest.mark.unit


def create_pubsub_mock(messages, fail_with: Exception | None = None):
    """Pub/sub mock replaying ``messages`` then idling until cancelled."""
    pubsub = MagicMock()
    pubsub.subscribe = AsyncMock()
    pubsub.unsubscribe = AsyncMock()
    pubsub.aclose = AsyncMock()

    async def mock_listen():
        if fail_with is not None:
            raise fail_with
        for message in messages:
            yield message
        while True:
            await asyncio.sleep(1)

    pubsub.listen = mock_listen
    return pubsub


def message(channel: str, payload) -> dict:
    data = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    return {"type": "message", "channel": channel.encode(), "data": data}


@pytest.fixture
def redis_client():
    return MagicMock()


@pytest.fixture
def feed(redis_client) -> RedisLiveFeed:
    return RedisLiveFeed(redis_client, RedisSettings(), reconnect_delay=0)


async def test_delivery_snapshots_are_decoded(feed, redis_client):
    pubsub = create_pubsub_mock(
        [
            {"type": "subscribe", "channel": b"delivery-updates:d1", "data": 1},
            message(
                "delivery-updates:d1",
                {"id": "d1", "status": "searching", "timeline": {"searching": 1741942800000}},
            ),
        ]
    )
    redis_client.pubsub.return_value = pubsub
    received = []

    unsubscribe = feed.subscribe_delivery("d1", lambda record, error: received.append((record, error)))
    await asyncio.sleep(0.01)

    pubsub.subscribe.assert_awaited_once_with("delivery-updates:d1")
    assert len(received) == 1
    record, error = received[0]
    assert error is None
    assert isinstance(record, DeliveryRecord)
    assert record.status == DeliveryStatus.SEARCHING
    unsubscribe()


async def test_undecodable_payload_reported_as_error(feed, redis_client):
    redis_client.pubsub.return_value = create_pubsub_mock(
        [
            message("delivery-updates:d1", b"{not json"),
            message("delivery-updates:d1", {"id": "d1", "status": "teleported"}),
        ]
    )
    received = []

    unsubscribe = feed.subscribe_delivery("d1", lambda record, error: received.append((record, error)))
    await asyncio.sleep(0.01)

    assert [record for record, _ in received] == [None, None]
    assert all(isinstance(error, SnapshotDecodeError) for _, error in received)
    unsubscribe()


async def test_failing_callback_does_not_stop_reader(feed, redis_client, caplog):
    redis_client.pubsub.return_value = create_pubsub_mock(
        [
            message("delivery-updates:d1", {"id": "d1", "status": "searching"}),
            message("delivery-updates:d1", {"id": "d1", "status": "accepted"}),
        ]
    )
    received = []

    def render(record, error):
        received.append(record)
        if len(received) == 1:
            raise RuntimeError("ui render failed")

    unsubscribe = feed.subscribe_delivery("d1", render)
    await asyncio.sleep(0.01)

    assert [record.status for record in received] == [
        DeliveryStatus.SEARCHING,
        DeliveryStatus.ACCEPTED,
    ]
    assert feed.active_subscriptions == 1
    assert "ui render failed" in caplog.text
    unsubscribe()


async def test_driver_locations_use_their_own_channel(feed, redis_client):
    pubsub = create_pubsub_mock(
        [message("driver-locations:driver-7", {"latitude": -6.8, "longitude": 39.2, "heading": 45})]
    )
    redis_client.pubsub.return_value = pubsub
    received = []

    unsubscribe = feed.subscribe_driver_location(
        "driver-7", lambda location, error: received.append(location)
    )
    await asyncio.sleep(0.01)

    pubsub.subscribe.assert_awaited_once_with("driver-locations:driver-7")
    assert received == [DriverLocation(latitude=-6.8, longitude=39.2, heading=45)]
    unsubscribe()


async def test_unsubscribe_releases_pubsub(feed, redis_client):
    pubsub = create_pubsub_mock([])
    redis_client.pubsub.return_value = pubsub

    unsubscribe = feed.subscribe_delivery("d1", lambda record, error: None)
    await asyncio.sleep(0.01)
    assert feed.active_subscriptions == 1

    unsubscribe()
    await asyncio.sleep(0.01)

    assert feed.active_subscriptions == 0
    pubsub.unsubscribe.assert_awaited_once_with("delivery-updates:d1")
    pubsub.aclose.assert_awaited_once()


async def test_connection_error_reported_then_reconnects(feed, redis_client):
    failing = create_pubsub_mock([], fail_with=redis.ConnectionError("connection lost"))
    healthy = create_pubsub_mock([message("delivery-updates:d1", {"id": "d1", "status": "accepted"})])
    redis_client.pubsub.side_effect = [failing, healthy]
    received = []

    unsubscribe = feed.subscribe_delivery("d1", lambda record, error: received.append((record, error)))
    await asyncio.sleep(0.01)

    first_record, first_error = received[0]
    assert first_record is None
    assert isinstance(first_error, redis.ConnectionError)
    assert received[1][0].status == DeliveryStatus.ACCEPTED
    failing.aclose.assert_awaited_once()
    unsubscribe()


async def test_close_cancels_all_readers(feed, redis_client):
    redis_client.pubsub.side_effect = [create_pubsub_mock([]), create_pubsub_mock([])]
    feed.subscribe_delivery("d1", lambda record, error: None)
    feed.subscribe_driver_location("driver-7", lambda location, error: None)
    await asyncio.sleep(0.01)

    await feed.close()
    await asyncio.sleep(0)

    assert feed.active_subscriptions == 0


async def test_get_profile(feed, redis_client):
    redis_client.get = AsyncMock(
        return_value=json.dumps({"name": "Juma Hassan", "plate_number": "MC 123 ABC"}).encode()
    )

    profile = await feed.get_profile("driver-7")

    redis_client.get.assert_awaited_once_with("driver-profile:driver-7")
    assert profile.id == "driver-7"
    assert profile.name == "Juma Hassan"
    assert profile.plate_number == "MC 123 ABC"


async def test_get_profile_missing(feed, redis_client):
    redis_client.get = AsyncMock(return_value=None)

    with pytest.raises(NotFoundError):
        await feed.get_profile("driver-404")


async def test_get_profile_malformed(feed, redis_client):
    redis_client.get = AsyncMock(return_value=b"[1, 2]")

    with pytest.raises(SnapshotDecodeError):
        await feed.get_profile("driver-7")


async def test_tracker_over_redis_feed_releases_everything(feed, redis_client):
    """Tracker wired to Redis opens a driver stream on acceptance and closes both on detach."""
    delivery_pubsub = create_pubsub_mock(
        [
            message("delivery-updates:d1", {"id": "d1", "status": "searching"}),
            message(
                "delivery-updates:d1",
                {"id": "d1", "status": "accepted", "driverId": "driver-7"},
            ),
        ]
    )
    driver_pubsub = create_pubsub_mock(
        [message("driver-locations:driver-7", {"latitude": -6.8, "longitude": 39.2})]
    )
    redis_client.pubsub.side_effect = [delivery_pubsub, driver_pubsub]
    redis_client.get = AsyncMock(return_value=json.dumps({"name": "Juma Hassan"}).encode())

    tracker = DeliveryTimelineTracker(
        feed, feed, feed, formatter=TimelineFormatter(time_format="%H:%M")
    )
    detach = tracker.attach("d1", lambda state: None)
    await asyncio.sleep(0.02)

    assert tracker.state.status == DeliveryStatus.ACCEPTED
    assert tracker.state.driver_profile.name == "Juma Hassan"
    assert tracker.state.driver_location.latitude == -6.8
    assert feed.active_subscriptions == 2

    detach()
    await asyncio.sleep(0.01)

    assert feed.active_subscriptions == 0
    delivery_pubsub.aclose.assert_awaited_once()
    driver_pubsub.aclose.assert_awaited_once()
