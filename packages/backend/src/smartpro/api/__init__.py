"""API route aggregation.

All routers registered here get mounted in main.py under /api/v1.

Learn: Authentication is delegated to the external auth provider in front
of this service, so every router is mounted without auth dependencies.
"""

from fastapi import APIRouter

from smartpro.api.bookings import router as bookings_router
from smartpro.api.dashboard import router as dashboard_router
from smartpro.api.health import router as health_router
from smartpro.api.messages import router as messages_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(dashboard_router, tags=["dashboard"])
api_router.include_router(bookings_router, tags=["bookings", "contracts"])
api_router.include_router(messages_router, tags=["messages"])
