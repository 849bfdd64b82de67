"""Key-value medium — the Redis connection shared by the cache and the bus.

Learn: Redis is optional. Without a URL the client is "unconfigured" and
every operation is a no-op that returns an empty value (None, False, 0, []).
Dashboards then render from the database and live updates simply stop.

When Redis IS configured, every library exception is translated into a
MediumError tagged with an ErrorKind. Callers (and the retry executor) ask
the error whether it is worth retrying instead of matching on messages:
- TRANSIENT: connection drops, timeouts, socket errors → retry
- PERMANENT: bad credentials, rejected commands, unserializable data → fail fast
"""

import asyncio
import enum
from typing import Any, Optional

import redis.asyncio as aioredis
import structlog
from redis import exceptions as redis_errors

from smartpro.config import Settings

logger = structlog.get_logger()


class ErrorKind(str, enum.Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class MediumError(Exception):
    """A failed call against the key-value medium."""

    def __init__(self, kind: ErrorKind, message: str, operation: str = ""):
        super().__init__(message)
        self.kind = kind
        self.operation = operation

    def is_retryable(self) -> bool:
        return self.kind is ErrorKind.TRANSIENT


def classify(exc: BaseException) -> ErrorKind:
    """Map a redis / socket exception onto an ErrorKind."""
    # AuthenticationError subclasses ConnectionError, so check it first
    if isinstance(exc, redis_errors.AuthenticationError):
        return ErrorKind.PERMANENT
    if isinstance(
        exc,
        (
            redis_errors.ConnectionError,
            redis_errors.TimeoutError,
            asyncio.TimeoutError,
            ConnectionError,
            OSError,
        ),
    ):
        return ErrorKind.TRANSIENT
    return ErrorKind.PERMANENT


class KeyValueClient:
    """Thin async wrapper over redis.asyncio with error classification.

    Usage:
        kv = KeyValueClient.from_settings(settings)
        if kv.configured:
            await kv.set("key", "value", ex=60)
    """

    def __init__(self, redis: Optional[Any] = None):
        self._redis = redis

    @classmethod
    def from_settings(cls, settings: Settings) -> "KeyValueClient":
        if not settings.medium_configured:
            logger.warning(
                "medium.not_configured",
                detail="SMARTPRO_REDIS_URL is not set; cache and live updates disabled",
            )
            return cls(None)

        client = aioredis.from_url(
            settings.redis_url,
            password=settings.redis_token or None,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=settings.redis_socket_timeout,
        )
        return cls(client)

    @property
    def configured(self) -> bool:
        return self._redis is not None

    @property
    def raw(self) -> Any:
        """The underlying redis client (None when unconfigured)."""
        return self._redis

    async def _call(self, operation: str, *args: Any, **kwargs: Any) -> Any:
        try:
            return await getattr(self._redis, operation)(*args, **kwargs)
        except MediumError:
            raise
        except Exception as e:
            raise MediumError(classify(e), f"{operation} failed: {e}", operation) from e

    # ─── Strings ─────────────────────────────────────────

    async def get(self, key: str) -> Optional[str]:
        if not self.configured:
            return None
        return await self._call("get", key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        if not self.configured:
            return False
        result = await self._call("set", key, value, ex=ex)
        return bool(result)

    async def delete(self, key: str) -> int:
        if not self.configured:
            return 0
        return int(await self._call("delete", key))

    # ─── Pub/sub ─────────────────────────────────────────

    async def publish(self, channel: str, message: str) -> int:
        """Publish a message. Returns the number of subscribers that got it."""
        if not self.configured:
            return 0
        return int(await self._call("publish", channel, message))

    def pubsub(self) -> Any:
        if not self.configured:
            raise MediumError(ErrorKind.PERMANENT, "medium not configured", "pubsub")
        return self._redis.pubsub()

    # ─── Lists ───────────────────────────────────────────

    async def lpush(self, key: str, *values: str) -> int:
        if not self.configured:
            return 0
        return int(await self._call("lpush", key, *values))

    async def ltrim(self, key: str, start: int, end: int) -> bool:
        if not self.configured:
            return False
        return bool(await self._call("ltrim", key, start, end))

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        if not self.configured:
            return []
        return list(await self._call("lrange", key, start, end))

    # ─── Lifecycle ───────────────────────────────────────

    async def ping(self) -> bool:
        if not self.configured:
            return False
        return bool(await self._call("ping"))

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
