"""Application context — every shared client, built once per process.

Learn: Instead of module-level singletons (a global engine, a global Redis
connection), the lifespan calls build_context() once and parks the result
on app.state.context. Routes get what they need through FastAPI
dependencies, and tests build a context around a SQLite file and an
in-memory medium without patching anything.

Teardown order matters: stop the dispatcher first (it uses both the
database and the medium), then close Redis, then dispose of the engine.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from smartpro.config import Settings
from smartpro.dashboard.metrics_cache import MetricsCacheLayer
from smartpro.dashboard.metrics_source import MetricsRepository
from smartpro.db.engine import build_engine, build_session_factory
from smartpro.realtime.bus import UpdateBus
from smartpro.realtime.medium import KeyValueClient
from smartpro.resilience.retry import RetryOptions
from smartpro.services.dashboard_service import DashboardService
from smartpro.services.outbox_dispatcher import OutboxDispatcher
from smartpro.services.update_publisher import UpdatePublisher

logger = structlog.get_logger()


@dataclass
class AppContext:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    kv: KeyValueClient
    metrics_cache: MetricsCacheLayer
    bus: UpdateBus
    publisher: UpdatePublisher
    dashboard: DashboardService
    dispatcher: OutboxDispatcher


def build_context(
    settings: Settings,
    *,
    engine: Optional[AsyncEngine] = None,
    kv: Optional[KeyValueClient] = None,
) -> AppContext:
    """Wire every component. Pass engine / kv to override the defaults."""
    engine = engine or build_engine(settings)
    session_factory = build_session_factory(engine)
    kv = kv or KeyValueClient.from_settings(settings)
    retry = RetryOptions.from_settings(settings)

    repository = MetricsRepository(session_factory)
    metrics_cache = MetricsCacheLayer(
        kv,
        repository,
        ttl_seconds=settings.metrics_cache_ttl_seconds,
        retry=retry,
    )
    bus = UpdateBus(kv, retry=retry, buffer_size=settings.recent_events_limit)
    publisher = UpdatePublisher(bus, metrics_cache)
    dispatcher = OutboxDispatcher(
        session_factory,
        publisher,
        batch_size=settings.outbox_batch_size,
        max_attempts=settings.outbox_max_attempts,
        poll_interval=settings.outbox_poll_interval,
    )

    return AppContext(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        kv=kv,
        metrics_cache=metrics_cache,
        bus=bus,
        publisher=publisher,
        dashboard=DashboardService(metrics_cache, repository, bus),
        dispatcher=dispatcher,
    )


async def close_context(ctx: AppContext) -> None:
    ctx.dispatcher.stop()
    await ctx.kv.close()
    await ctx.engine.dispose()
    logger.info("context.closed")
