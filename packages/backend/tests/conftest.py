"""Test fixtures — a SQLite database per test and an in-memory Redis stand-in.

Learn: Testing pattern for the dashboard backend:

1. Each test gets its own SQLite file (tmp_path) with the schema created,
   so rows written through one session are visible to the dispatcher's
   and the metrics repository's sessions.
2. Redis is replaced by FakeRedis, an in-memory object with the handful of
   commands the medium client uses. EX expiry follows a FakeClock that
   tests move forward by hand. Its pub/sub handle yields whatever the test
   queued on pubsub_messages.
3. The app gets a fully wired AppContext on app.state (the same object the
   lifespan would build), and requests go through httpx's ASGITransport.
"""

import asyncio

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from smartpro.config import Settings
from smartpro.context import build_context
from smartpro.db.engine import build_engine
from smartpro.db.models import Base
from smartpro.main import app
from smartpro.realtime.medium import KeyValueClient
from smartpro.resilience.retry import RetryOptions


class FakeClock:
    """Callable clock (epoch seconds) that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePubSub:
    """Pub/sub handle that replays queued messages, then waits forever."""

    def __init__(self, messages: list[dict]):
        self.messages = messages
        self.channels: list[str] = []
        self.closed = False

    async def subscribe(self, *channels):
        self.channels.extend(channels)

    async def unsubscribe(self, *channels):
        self.channels = [c for c in self.channels if c not in channels]

    async def listen(self):
        for message in self.messages:
            yield message
        await asyncio.sleep(3600)

    async def aclose(self):
        self.closed = True


class FakeRedis:
    """In-memory subset of redis.asyncio.Redis (decode_responses=True)."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.strings: dict[str, tuple[str, float | None]] = {}
        self.lists: dict[str, list[str]] = {}
        self.published: list[tuple[str, str]] = []
        self.pubsub_messages: list[dict] = []
        self.pubsubs: list[FakePubSub] = []
        self.closed = False

    def _expire_stale(self, key: str) -> None:
        entry = self.strings.get(key)
        if entry and entry[1] is not None and self.clock() >= entry[1]:
            del self.strings[key]

    async def get(self, key):
        self._expire_stale(key)
        entry = self.strings.get(key)
        return entry[0] if entry else None

    async def set(self, key, value, ex=None):
        deadline = self.clock() + ex if ex else None
        self.strings[key] = (value, deadline)
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += int(self.strings.pop(key, None) is not None)
            removed += int(self.lists.pop(key, None) is not None)
        return removed

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 1

    def pubsub(self):
        handle = FakePubSub(self.pubsub_messages)
        self.pubsubs.append(handle)
        return handle

    async def lpush(self, key, *values):
        items = self.lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def ltrim(self, key, start, end):
        items = self.lists.get(key, [])
        stop = len(items) if end == -1 else end + 1
        self.lists[key] = items[start:stop]
        return True

    async def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        stop = len(items) if end == -1 else end + 1
        return items[start:stop]

    async def ping(self):
        return True

    async def aclose(self):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock)


@pytest.fixture
def kv(fake_redis):
    return KeyValueClient(fake_redis)


@pytest.fixture
def unconfigured_kv():
    return KeyValueClient(None)


@pytest.fixture
def no_wait_retry():
    """Retry policy with zero delays so failure tests run instantly."""
    return RetryOptions(max_retries=2, delay_ms=0)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'smartpro.db'}",
        redis_url="",
        retry_delay_ms=0,
        outbox_worker_enabled=False,
        outbox_dispatch_after_write=False,
    )


@pytest_asyncio.fixture()
async def engine(settings):
    engine = build_engine(settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture()
async def context(settings, engine, kv, clock):
    """Fully wired AppContext over SQLite + FakeRedis."""
    ctx = build_context(settings, engine=engine, kv=kv)
    ctx.metrics_cache.clock = clock
    return ctx


@pytest_asyncio.fixture()
async def db_session(context):
    async with context.session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def client(context):
    """HTTP client talking to the app with the test context installed."""
    app.state.context = context

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.state.context = None
