"""Dashboard API routes.

Learn: These are read paths plus one explicit refresh. Nothing here can
fail because Redis is down: metrics fall back to the database and then to
zeros, events fall back to an empty list.

- GET  /dashboard/metrics?userId=           snapshot (cache-aside)
- POST /dashboard/metrics/refresh?userId=   recompute, re-cache, publish
- GET  /dashboard/activity?userId=&limit=   newest-first activity feed
- GET  /dashboard/events?userId=&limit=     recovery buffer for reconnects
"""

from fastapi import APIRouter, Depends, Query

from smartpro.api.deps import get_context
from smartpro.context import AppContext
from smartpro.schemas.dashboard import ActivityItem, MetricsSnapshot, UpdateEvent

router = APIRouter(prefix="/dashboard")


@router.get("/metrics", response_model=MetricsSnapshot, response_model_by_alias=True)
async def get_metrics(
    user_id: str = Query(..., alias="userId", min_length=1),
    ctx: AppContext = Depends(get_context),
):
    """Metrics snapshot for a user; all zeros when no source answers."""
    return await ctx.dashboard.get_metrics(user_id)


@router.post("/metrics/refresh")
async def refresh_metrics(
    user_id: str = Query(..., alias="userId", min_length=1),
    ctx: AppContext = Depends(get_context),
):
    """Recompute the snapshot now and push it to live dashboards."""
    return await ctx.publisher.publish_metrics_update(user_id)


@router.get("/activity", response_model=list[ActivityItem], response_model_by_alias=True)
async def get_activity(
    user_id: str = Query(..., alias="userId", min_length=1),
    limit: int = Query(10, ge=1, le=100),
    ctx: AppContext = Depends(get_context),
):
    return await ctx.dashboard.get_activity(user_id, limit=limit)


@router.get("/events", response_model=list[UpdateEvent])
async def get_events(
    user_id: str = Query(..., alias="userId", min_length=1),
    limit: int = Query(100, ge=1, le=100),
    ctx: AppContext = Depends(get_context),
):
    """Events a reconnecting client may have missed, newest first."""
    return await ctx.dashboard.get_missed_events(user_id, limit=limit)
