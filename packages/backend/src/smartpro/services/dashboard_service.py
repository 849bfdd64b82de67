"""Dashboard read side — metrics, activity, and missed events.

get_metrics() is the cache-aside read path:

    cache hit            → cached snapshot
    miss                 → database aggregate → write back with TTL → snapshot
    miss + database down → MetricsSnapshot.zero()
"""

import structlog

from smartpro.dashboard.metrics_cache import MetricsCacheLayer
from smartpro.dashboard.metrics_source import MetricsRepository
from smartpro.realtime.bus import UpdateBus
from smartpro.schemas.dashboard import ActivityItem, MetricsSnapshot, UpdateEvent

logger = structlog.get_logger()


class DashboardService:
    def __init__(
        self,
        metrics_cache: MetricsCacheLayer,
        repository: MetricsRepository,
        bus: UpdateBus,
    ):
        self.metrics_cache = metrics_cache
        self.repository = repository
        self.bus = bus

    async def get_metrics(self, user_id: str) -> MetricsSnapshot:
        snapshot = await self.metrics_cache.get(user_id)
        if snapshot is not None:
            return snapshot

        snapshot = await self.metrics_cache.refresh(user_id)
        if snapshot is None:
            logger.warning("dashboard.metrics_unavailable", user_id=user_id)
            return MetricsSnapshot.zero()

        await self.metrics_cache.store(user_id, snapshot)
        return snapshot

    async def get_activity(self, user_id: str, limit: int = 10) -> list[ActivityItem]:
        return await self.repository.recent_activity(user_id, limit=limit)

    async def get_missed_events(self, user_id: str, limit: int = 100) -> list[UpdateEvent]:
        return await self.bus.get_recent_events(user_id, limit=limit)
