"""Transactional outbox — side effects recorded next to the write that caused them.

Learn: A service that creates a booking does NOT publish to Redis itself.
It appends an OutboxEvent in the same session and commits both rows at
once. If the commit fails, neither exists; if Redis is down afterwards, the
booking still exists and the event waits in the outbox for the dispatcher.

This keeps the primary write independent of the side effect while making
the side-effect boundary explicit: everything that should reach live
dashboards is a row in outbox_events.
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from smartpro.db.models import OutboxEvent

EVENT_TYPES = ("booking", "contract", "message", "metrics")


class Outbox:
    """Append-only outbox backed by the relational store."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        user_id: str,
        event_type: str,
        payload: dict[str, Any],
    ) -> OutboxEvent:
        """Add an event to the current transaction. The caller commits."""
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown outbox event type: {event_type}")

        event = OutboxEvent(
            user_id=user_id,
            event_type=event_type,
            payload=payload,
            status="pending",
            attempts=0,
        )
        self.db.add(event)
        await self.db.flush()  # get the auto-generated id
        return event

    async def append_with_metrics(
        self,
        user_id: str,
        event_type: str,
        payload: dict[str, Any],
    ) -> list[OutboxEvent]:
        """Domain event followed by a metrics refresh, as two separate rows.

        Each row is dispatched on its own, so a failed refresh is retried
        without re-sending the domain event.
        """
        event = await self.append(user_id, event_type, payload)
        refresh = await self.append(user_id, "metrics", {})
        return [event, refresh]

    async def pending(self, limit: int = 50) -> list[OutboxEvent]:
        """Oldest pending events first."""
        result = await self.db.execute(
            select(OutboxEvent)
            .where(OutboxEvent.status == "pending")
            .order_by(OutboxEvent.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def for_user(self, user_id: str, limit: int = 100) -> list[OutboxEvent]:
        result = await self.db.execute(
            select(OutboxEvent)
            .where(OutboxEvent.user_id == user_id)
            .order_by(OutboxEvent.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
