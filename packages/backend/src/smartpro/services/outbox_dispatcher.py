"""Outbox dispatcher — drains pending outbox rows into the update publisher.

Learn: Services append OutboxEvent(status=pending) rows alongside their
writes, one row per side effect: a booking change appends a "booking" row
and a "metrics" row. This worker claims pending rows oldest-first and hands
each one to UpdatePublisher.dispatch():

  pending → dispatched            (the step went out, fully or in part)
  pending → pending, attempts+1   (nothing went out, retried on a later pass)
  pending → failed                (attempts reached max_attempts)
  pending → skipped               (no medium configured)

A row whose event already reached the medium is never retried, so each
event is delivered at most once.

It runs as a background task in the FastAPI lifespan, and mutation routes
also schedule one dispatch_pending() pass right after responding so live
dashboards do not wait for the next poll.

Delivery is still best-effort: a row marked dispatched may have reached no
subscriber at all (pub/sub keeps nothing).
"""

import asyncio
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from smartpro.db.models import OutboxEvent
from smartpro.services.update_publisher import UpdatePublisher

logger = structlog.get_logger()


class OutboxDispatcher:
    """Background worker that publishes committed outbox events.

    Usage:
        dispatcher = OutboxDispatcher(session_factory, publisher)
        asyncio.create_task(dispatcher.run_loop())
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: UpdatePublisher,
        *,
        batch_size: int = 50,
        max_attempts: int = 5,
        poll_interval: float = 2.0,
    ):
        self.session_factory = session_factory
        self.publisher = publisher
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.poll_interval = poll_interval
        self._running = False
        # Serializes passes inside this process (loop + post-request kicks)
        self._lock = asyncio.Lock()

    async def run_loop(self) -> None:
        """Main worker loop — poll for pending events and dispatch them."""
        self._running = True
        logger.info("outbox_dispatcher.started", poll_interval=self.poll_interval)

        while self._running:
            try:
                await self.dispatch_pending()
            except Exception:
                logger.exception("outbox_dispatcher.error")
            await asyncio.sleep(self.poll_interval)

    async def dispatch_pending(self) -> int:
        """Dispatch one batch. Returns how many events were dispatched."""
        async with self._lock:
            async with self.session_factory() as db:
                q = (
                    select(OutboxEvent)
                    .where(OutboxEvent.status == "pending")
                    .order_by(OutboxEvent.id.asc())
                    .limit(self.batch_size)
                    .with_for_update(skip_locked=True)  # Skip rows another worker holds
                )
                result = await db.execute(q)
                events = list(result.scalars().all())

                dispatched = 0
                for event in events:
                    if await self._dispatch_one(event):
                        dispatched += 1
                await db.commit()

        if events:
            logger.info(
                "outbox_dispatcher.batch",
                claimed=len(events),
                dispatched=dispatched,
            )
        return dispatched

    async def kick(self) -> None:
        """One pass scheduled after a write. Never raises."""
        try:
            await self.dispatch_pending()
        except Exception:
            logger.exception("outbox_dispatcher.kick_failed")

    async def _dispatch_one(self, event: OutboxEvent) -> bool:
        if not self.publisher.enabled:
            # No medium configured: nothing can ever be delivered
            event.status = "skipped"
            return False

        log = logger.bind(outbox_id=event.id, event_type=event.event_type, user_id=event.user_id)

        try:
            outcome = await self.publisher.dispatch(event.event_type, event.user_id, event.payload)
        except Exception as e:
            outcome = {"success": False, "sent": False, "error": str(e)}

        if outcome.get("success") or outcome.get("sent"):
            # A step that reached the medium is never retried
            event.status = "dispatched"
            event.dispatched_at = datetime.now(timezone.utc)
            event.last_error = None if outcome.get("success") else outcome.get("error")
            if event.last_error:
                log.warning("outbox.partial_dispatch", error=event.last_error)
            return True

        event.attempts += 1
        event.last_error = outcome.get("error", "unknown error")
        if event.attempts >= self.max_attempts:
            event.status = "failed"
            log.error("outbox.gave_up", attempts=event.attempts, error=event.last_error)
        else:
            log.warning("outbox.dispatch_failed", attempts=event.attempts, error=event.last_error)
        return False

    def stop(self) -> None:
        """Signal the worker to stop."""
        self._running = False
        logger.info("outbox_dispatcher.stopping")
