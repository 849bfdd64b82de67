"""Update publisher tests — result envelopes, fan-out and refresh-on-write."""

import json
import time
from unittest.mock import AsyncMock

import pytest
from redis import exceptions as redis_errors

from smartpro.dashboard.metrics_cache import MetricsCacheLayer, metrics_key
from smartpro.realtime.bus import UpdateBus
from smartpro.realtime.medium import KeyValueClient
from smartpro.resilience.retry import RetryOptions
from smartpro.schemas.dashboard import MetricsSnapshot
from smartpro.services.booking_service import BookingService
from smartpro.services.update_publisher import UpdatePublisher

NO_WAIT = RetryOptions(max_retries=1, delay_ms=0)


def channels(fake_redis):
    return [channel for channel, _ in fake_redis.published]


def make_publisher(kv, snapshot=None, clock=time.time):
    source = AsyncMock()
    source.load.return_value = snapshot or MetricsSnapshot(total_bookings=1, pending_bookings=1)
    cache = MetricsCacheLayer(kv, source, retry=NO_WAIT, clock=clock)
    return UpdatePublisher(UpdateBus(kv, retry=NO_WAIT), cache), source


@pytest.mark.asyncio
async def test_booking_update_publishes_booking_then_metrics(kv, fake_redis, clock):
    publisher, source = make_publisher(kv, clock=clock)

    result = await publisher.publish_booking_update("u1", {"id": "b1", "status": "pending"})

    assert result == {"success": True}
    assert channels(fake_redis) == ["booking-updates", "metrics-updates"]
    booking_msg = json.loads(fake_redis.published[0][1])
    assert booking_msg["type"] == "booking"
    assert booking_msg["data"] == {"id": "b1", "status": "pending"}
    assert booking_msg["userId"] == "u1"
    source.load.assert_awaited_once_with("u1")


@pytest.mark.asyncio
async def test_booking_update_refreshes_cached_metrics(kv, clock):
    snapshot = MetricsSnapshot(total_bookings=7, confirmed_bookings=7)
    publisher, _ = make_publisher(kv, snapshot=snapshot, clock=clock)

    await publisher.publish_booking_update("u1", {"id": "b1"})

    assert await publisher.metrics_cache.get("u1") == snapshot


@pytest.mark.asyncio
async def test_booking_update_stores_events_for_recovery(kv, clock):
    publisher, _ = make_publisher(kv, clock=clock)

    await publisher.publish_booking_update("u1", {"id": "b1"})

    events = await publisher.bus.get_recent_events("u1")
    assert [e.type for e in events] == ["metrics", "booking"]


@pytest.mark.asyncio
async def test_contract_update_success(kv, fake_redis, clock):
    publisher, _ = make_publisher(kv, clock=clock)

    result = await publisher.publish_contract_update("u1", {"id": "c1", "status": "signed"})

    assert result == {"success": True}
    assert channels(fake_redis) == ["contract-updates", "metrics-updates"]


@pytest.mark.asyncio
async def test_message_update_does_not_touch_metrics(kv, fake_redis, clock):
    publisher, source = make_publisher(kv, clock=clock)

    result = await publisher.publish_message_update("u2", {"id": "m1"})

    assert result == {"success": True}
    assert channels(fake_redis) == ["message-updates"]
    source.load.assert_not_awaited()


@pytest.mark.asyncio
async def test_metrics_update_payload(kv, fake_redis, clock):
    snapshot = MetricsSnapshot(total_contracts=2, signed_contracts=1, total_contract_value=250.0)
    publisher, _ = make_publisher(kv, snapshot=snapshot, clock=clock)

    result = await publisher.publish_metrics_update("u1")

    assert result["success"] is True
    assert result["metrics"]["userId"] == "u1"
    assert result["metrics"]["totalContractValue"] == 250.0
    message = json.loads(fake_redis.published[0][1])
    assert message["type"] == "metrics"
    assert message["data"]["signedContracts"] == 1
    assert "timestamp" in message


# ─── Failures ────────────────────────────────────────────


@pytest.mark.asyncio
async def test_booking_update_fails_without_medium(unconfigured_kv):
    publisher, _ = make_publisher(unconfigured_kv)

    result = await publisher.publish_booking_update("u1", {"id": "b1"})

    assert result == {"success": False, "error": "Failed to publish booking update"}


@pytest.mark.asyncio
async def test_booking_update_fails_when_medium_throws():
    redis = AsyncMock()
    redis.publish.side_effect = redis_errors.ConnectionError("connection refused")
    redis.lpush.side_effect = redis_errors.ConnectionError("connection refused")
    redis.set.side_effect = redis_errors.ConnectionError("connection refused")
    publisher, _ = make_publisher(KeyValueClient(redis))

    result = await publisher.publish_booking_update("u1", {"id": "b1"})

    assert result["success"] is False
    assert result["error"] == "Failed to publish booking update"


@pytest.mark.asyncio
async def test_contract_update_fails_when_metrics_refresh_fails(kv, clock):
    publisher, source = make_publisher(kv, clock=clock)
    source.load.side_effect = OSError("database unreachable")

    result = await publisher.publish_contract_update("u1", {"id": "c1"})

    assert result == {"success": False, "error": "Failed to publish contract update"}


@pytest.mark.asyncio
async def test_unexpected_bus_exception_becomes_failure(kv, clock):
    publisher, _ = make_publisher(kv, clock=clock)
    publisher.bus.publish = AsyncMock(side_effect=RuntimeError("boom"))

    result = await publisher.publish_message_update("u1", {"id": "m1"})

    assert result == {"success": False, "error": "Failed to publish message update"}


@pytest.mark.asyncio
async def test_unknown_event_type_is_rejected(kv, clock):
    publisher, _ = make_publisher(kv, clock=clock)
    result = await publisher.dispatch("invoice", "u1", {})
    assert result["success"] is False


# ─── Against the real database ───────────────────────────


@pytest.mark.asyncio
async def test_failed_publish_leaves_booking_in_place(context, db_session):
    """A medium outage after the write never undoes the booking."""
    booking = await BookingService(db_session).create_booking("u1", "Deep cleaning")

    broken = AsyncMock()
    broken.publish.side_effect = redis_errors.ConnectionError("connection refused")
    broken.lpush.side_effect = redis_errors.ConnectionError("connection refused")
    broken.set.side_effect = redis_errors.ConnectionError("connection refused")
    publisher, _ = make_publisher(KeyValueClient(broken))

    result = await publisher.publish_booking_update("u1", {"id": str(booking.id)})
    assert result["success"] is False

    async with context.session_factory() as db:
        bookings = await BookingService(db).list_bookings("u1")
    assert [b.id for b in bookings] == [booking.id]


@pytest.mark.asyncio
async def test_metrics_update_uses_relational_counts(context, db_session, fake_redis):
    await BookingService(db_session).create_booking("u1", "Plumbing")
    await BookingService(db_session).create_booking("u1", "Gardening")

    result = await context.publisher.publish_metrics_update("u1")

    assert result["success"] is True
    assert result["metrics"]["totalBookings"] == 2
    assert result["metrics"]["pendingBookings"] == 2
    assert metrics_key("u1") in fake_redis.strings


# ─── Single-step dispatch ────────────────────────────────


@pytest.mark.asyncio
async def test_dispatch_domain_event_skips_metrics(kv, fake_redis, clock):
    publisher, source = make_publisher(kv, clock=clock)

    result = await publisher.dispatch("booking", "u1", {"id": "b1"})

    assert result == {"success": True, "sent": True}
    assert channels(fake_redis) == ["booking-updates"]
    source.load.assert_not_awaited()


@pytest.mark.asyncio
async def test_dispatch_metrics_step(kv, fake_redis, clock):
    publisher, source = make_publisher(kv, clock=clock)

    result = await publisher.dispatch("metrics", "u1", {})

    assert result == {"success": True, "sent": True}
    assert channels(fake_redis) == ["metrics-updates"]
    source.load.assert_awaited_once_with("u1")


@pytest.mark.asyncio
async def test_dispatch_failed_refresh_sends_nothing(kv, fake_redis, clock):
    publisher, source = make_publisher(kv, clock=clock)
    source.load.side_effect = OSError("database unreachable")

    result = await publisher.dispatch("metrics", "u1", {})

    assert result == {"success": False, "sent": False, "error": "Failed to publish metrics update"}
    assert fake_redis.published == []


@pytest.mark.asyncio
async def test_dispatch_reports_buffered_event_as_sent(kv, fake_redis, clock):
    """Publish failed but the event reached the recovery buffer."""
    publisher, _ = make_publisher(kv, clock=clock)
    fake_redis.publish = AsyncMock(side_effect=redis_errors.ConnectionError("connection reset"))

    result = await publisher.dispatch("message", "u2", {"id": "m1"})

    assert result["success"] is False
    assert result["sent"] is True
    assert [e.type for e in await publisher.bus.get_recent_events("u2")] == ["message"]


def test_enabled_follows_medium(kv, unconfigured_kv):
    assert make_publisher(kv)[0].enabled is True
    assert make_publisher(unconfigured_kv)[0].enabled is False
