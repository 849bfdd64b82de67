"""Update bus — fire-and-forget fan-out of dashboard events.

Learn: Redis pub/sub is fire-and-forget. If no one is listening, the message
is lost. That's fine for live dashboard updates: a viewer that reconnects
can catch up from the per-user recovery buffer (a capped Redis list), and
can always re-read /dashboard/metrics.

The two paths are independent. A client may see an event through pub/sub,
through the buffer, both, or neither when Redis is down. Neither path ever
raises to the caller: a publish failure must not roll back the booking,
contract or message that triggered it.

Keys: dashboard:events:{user_id}  (LPUSH + LTRIM 0 99, newest first)
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from smartpro.realtime.medium import KeyValueClient
from smartpro.resilience.retry import RetryOptions, with_retry
from smartpro.schemas.dashboard import Channel, UpdateEvent

logger = structlog.get_logger()

RECENT_EVENTS_LIMIT = 100


def events_key(user_id: str) -> str:
    return f"dashboard:events:{user_id}"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class UpdateBus:
    """Publish domain events and keep a bounded per-user replay buffer."""

    def __init__(
        self,
        kv: KeyValueClient,
        retry: Optional[RetryOptions] = None,
        buffer_size: int = RECENT_EVENTS_LIMIT,
    ):
        self.kv = kv
        self.retry = retry or RetryOptions()
        self.buffer_size = buffer_size

    async def publish(self, channel: Channel | str, payload: dict[str, Any]) -> bool:
        """Stamp, serialize and publish a payload. False on any failure."""
        if not self.kv.configured:
            return False

        name = channel.value if isinstance(channel, Channel) else channel
        try:
            message = json.dumps({**payload, "timestamp": utc_timestamp()})
            await with_retry(lambda: self.kv.publish(name, message), self.retry)
            return True
        except Exception as e:
            logger.error("update_bus.publish_failed", channel=name, error=str(e))
            return False

    async def store_event(self, user_id: str, event_type: str, event_data: Any) -> bool:
        """Append to the user's recovery buffer, trimmed to the newest entries."""
        if not self.kv.configured:
            return False

        key = events_key(user_id)
        try:
            event = UpdateEvent(type=event_type, data=event_data, timestamp=utc_timestamp())
            raw = event.model_dump_json()

            # Retried separately: a retried LPUSH would duplicate the event
            await with_retry(lambda: self.kv.lpush(key, raw), self.retry)
            await with_retry(lambda: self.kv.ltrim(key, 0, self.buffer_size - 1), self.retry)
            return True
        except Exception as e:
            logger.error(
                "update_bus.store_event_failed",
                user_id=user_id,
                event_type=event_type,
                error=str(e),
            )
            return False

    async def get_recent_events(
        self, user_id: str, limit: int = RECENT_EVENTS_LIMIT
    ) -> list[UpdateEvent]:
        """Newest-first events from the recovery buffer ([] on any failure)."""
        if not self.kv.configured or limit <= 0:
            return []

        try:
            raw_events = await with_retry(
                lambda: self.kv.lrange(events_key(user_id), 0, limit - 1), self.retry
            )
        except Exception as e:
            logger.error("update_bus.read_events_failed", user_id=user_id, error=str(e))
            return []

        events = []
        for raw in raw_events:
            try:
                events.append(UpdateEvent.model_validate_json(raw))
            except ValidationError:
                logger.warning("update_bus.skipped_bad_event", user_id=user_id)
        return events
