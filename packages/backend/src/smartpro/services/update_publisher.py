"""Update publisher — tells live dashboards that something changed.

Learn: Each action publishes on its channel, appends the event to the
user's recovery buffer, and (for bookings and contracts) refreshes the
cached metrics snapshot. Refreshing on write keeps the cache close to the
database; the 1-hour TTL is only a backstop for refreshes that never ran.

Actions return an envelope instead of raising:
    {"success": True}
    {"success": False, "error": "Failed to publish booking update"}

Every published message carries the owning user's id next to the event
data, so the WebSocket only forwards a user's own events.

The outbox dispatcher does not call the composite actions. It calls
dispatch(), which performs exactly one step per outbox row (the domain
event OR the metrics refresh) and reports whether anything reached the
medium, so a failed metrics refresh never re-sends a booking event.
"""

from typing import Any, Optional

import structlog

from smartpro.dashboard.metrics_cache import MetricsCacheLayer
from smartpro.realtime.bus import UpdateBus
from smartpro.schemas.dashboard import CHANNEL_FOR_EVENT

logger = structlog.get_logger()


def _failed(kind: str) -> dict[str, Any]:
    return {"success": False, "error": f"Failed to publish {kind} update"}


class UpdatePublisher:
    def __init__(self, bus: UpdateBus, metrics_cache: MetricsCacheLayer):
        self.bus = bus
        self.metrics_cache = metrics_cache

    @property
    def enabled(self) -> bool:
        """False when the medium is not configured; nothing can be delivered."""
        return self.bus.kv.configured

    async def _emit(self, kind: str, user_id: str, data: dict[str, Any]) -> tuple[bool, bool]:
        """Publish and buffer one event. Returns (published, stored)."""
        published = await self.bus.publish(
            CHANNEL_FOR_EVENT[kind], {"type": kind, "userId": user_id, "data": data}
        )
        stored = await self.bus.store_event(user_id, kind, data)
        return published, stored

    async def _refresh_and_emit(
        self, user_id: str
    ) -> tuple[Optional[dict[str, Any]], bool, bool]:
        """Recompute the snapshot, overwrite the cache, announce it."""
        snapshot = await self.metrics_cache.refresh(user_id)
        if snapshot is None:
            return None, False, False

        await self.metrics_cache.store(user_id, snapshot)
        data = {"userId": user_id, **snapshot.model_dump(mode="json", by_alias=True)}
        published, stored = await self._emit("metrics", user_id, data)
        return data, published, stored

    async def publish_booking_update(self, user_id: str, booking: dict[str, Any]) -> dict[str, Any]:
        try:
            published, _ = await self._emit("booking", user_id, booking)
            metrics = await self.publish_metrics_update(user_id)
        except Exception as e:
            logger.error("publisher.booking_failed", user_id=user_id, error=str(e))
            return _failed("booking")
        if not published or not metrics["success"]:
            return _failed("booking")
        return {"success": True}

    async def publish_contract_update(self, user_id: str, contract: dict[str, Any]) -> dict[str, Any]:
        try:
            published, _ = await self._emit("contract", user_id, contract)
            metrics = await self.publish_metrics_update(user_id)
        except Exception as e:
            logger.error("publisher.contract_failed", user_id=user_id, error=str(e))
            return _failed("contract")
        if not published or not metrics["success"]:
            return _failed("contract")
        return {"success": True}

    async def publish_message_update(self, user_id: str, message: dict[str, Any]) -> dict[str, Any]:
        try:
            published, _ = await self._emit("message", user_id, message)
        except Exception as e:
            logger.error("publisher.message_failed", user_id=user_id, error=str(e))
            return _failed("message")
        if not published:
            return _failed("message")
        return {"success": True}

    async def publish_metrics_update(self, user_id: str) -> dict[str, Any]:
        try:
            data, published, _ = await self._refresh_and_emit(user_id)
        except Exception as e:
            logger.error("publisher.metrics_failed", user_id=user_id, error=str(e))
            return _failed("metrics")
        if not published:
            return _failed("metrics")
        return {"success": True, "metrics": data}

    async def dispatch(self, event_type: str, user_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Run the single step behind one outbox row.

        "sent" is True once any side effect (pub/sub message or buffered
        event) went out. The dispatcher never retries a row that was sent.
        """
        if event_type not in CHANNEL_FOR_EVENT:
            return {"success": False, "sent": False, "error": f"Unknown event type: {event_type}"}

        try:
            if event_type == "metrics":
                _, published, stored = await self._refresh_and_emit(user_id)
            else:
                published, stored = await self._emit(event_type, user_id, payload)
        except Exception as e:
            logger.error("publisher.dispatch_failed", event_type=event_type, user_id=user_id, error=str(e))
            return {**_failed(event_type), "sent": False}

        if published:
            return {"success": True, "sent": True}
        return {**_failed(event_type), "sent": stored}
