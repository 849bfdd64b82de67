"""Dashboard metrics cache — cache-aside in front of the aggregate query.

Learn: This is cache-aside, not read-through. The layer never loads on a
miss by itself; the caller does:

    snapshot = await cache.get(user_id)
    if snapshot is None:
        snapshot = await cache.refresh(user_id)
        if snapshot is not None:
            await cache.store(user_id, snapshot)
    return snapshot or MetricsSnapshot.zero()

Every method is lenient. Redis down, Redis not configured, a corrupt entry
or a failing query all come back as None / False and a log line, because a
dashboard must render zeros rather than an error page.

Entries live under dashboard:metrics:{user_id} with EX=ttl. The value is an
envelope {"snapshot": {...}, "storedAt": <epoch seconds>} and get() also
checks the age itself, so an entry is never served past its TTL even if the
server has not evicted it yet.
"""

import json
import time
from typing import Callable, Optional, Protocol

import structlog
from pydantic import ValidationError

from smartpro.realtime.medium import KeyValueClient
from smartpro.resilience.retry import RetryOptions, with_retry
from smartpro.schemas.dashboard import MetricsSnapshot

logger = structlog.get_logger()

METRICS_TTL_SECONDS = 3600


class MetricsSource(Protocol):
    async def load(self, user_id: str) -> MetricsSnapshot: ...


def metrics_key(user_id: str) -> str:
    return f"dashboard:metrics:{user_id}"


class MetricsCacheLayer:
    """Per-user metrics snapshot cache with a fixed TTL."""

    def __init__(
        self,
        kv: KeyValueClient,
        source: MetricsSource,
        *,
        ttl_seconds: int = METRICS_TTL_SECONDS,
        retry: Optional[RetryOptions] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.kv = kv
        self.source = source
        self.ttl_seconds = ttl_seconds
        self.retry = retry or RetryOptions()
        self.clock = clock

    async def get(self, user_id: str) -> Optional[MetricsSnapshot]:
        """Cached snapshot, or None when absent, expired or unavailable."""
        if not self.kv.configured:
            return None

        try:
            raw = await with_retry(lambda: self.kv.get(metrics_key(user_id)), self.retry)
        except Exception as e:
            logger.error("metrics_cache.read_failed", user_id=user_id, error=str(e))
            return None

        if raw is None:
            return None

        try:
            envelope = json.loads(raw)
            stored_at = float(envelope["storedAt"])
            snapshot = MetricsSnapshot.model_validate(envelope["snapshot"])
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            logger.warning("metrics_cache.corrupt_entry", user_id=user_id, error=str(e))
            return None

        if self.clock() - stored_at >= self.ttl_seconds:
            logger.debug("metrics_cache.expired", user_id=user_id)
            return None

        logger.debug("metrics_cache.hit", user_id=user_id)
        return snapshot

    async def refresh(self, user_id: str) -> Optional[MetricsSnapshot]:
        """Recompute from the relational store. None (and a log) on failure."""
        try:
            return await self.source.load(user_id)
        except Exception as e:
            logger.error("metrics_cache.refresh_failed", user_id=user_id, error=str(e))
            return None

    async def store(self, user_id: str, snapshot: MetricsSnapshot) -> bool:
        """Write with EX=ttl. Returns whether the write succeeded."""
        if not self.kv.configured:
            return False

        try:
            value = json.dumps(
                {
                    "snapshot": snapshot.model_dump(mode="json", by_alias=True),
                    "storedAt": self.clock(),
                }
            )
            return await with_retry(
                lambda: self.kv.set(metrics_key(user_id), value, ex=self.ttl_seconds),
                self.retry,
            )
        except Exception as e:
            logger.error("metrics_cache.store_failed", user_id=user_id, error=str(e))
            return False

    async def invalidate(self, user_id: str) -> bool:
        """Drop the cached entry so the next read goes to the database."""
        if not self.kv.configured:
            return False

        try:
            await with_retry(lambda: self.kv.delete(metrics_key(user_id)), self.retry)
            return True
        except Exception as e:
            logger.error("metrics_cache.invalidate_failed", user_id=user_id, error=str(e))
            return False
