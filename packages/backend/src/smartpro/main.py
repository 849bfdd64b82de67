"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan owns the AppContext: it builds the engine, the Redis
client and every component once at startup, starts the outbox dispatcher,
and tears everything down at shutdown.

Run with: uvicorn smartpro.main:app
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from smartpro import __version__
from smartpro.api import api_router
from smartpro.config import Settings
from smartpro.context import build_context, close_context
from smartpro.db.models import Base
from smartpro.log_config import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown. A context already placed on app.state (tests) is reused and
    left for its owner to close.
    """
    settings: Settings = app.state.settings
    logger.info(
        "smartpro.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    owns_context = getattr(app.state, "context", None) is None
    if owns_context:
        app.state.context = build_context(settings)
    ctx = app.state.context

    if settings.auto_create_schema:
        async with ctx.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    if ctx.kv.configured:
        try:
            await ctx.kv.ping()
            logger.info("smartpro.redis_connected")
        except Exception as e:
            # Redis is optional — app works without real-time features
            logger.warning("smartpro.redis_unavailable", error=str(e))

    dispatcher_task: Optional[asyncio.Task] = None
    if settings.outbox_worker_enabled:
        dispatcher_task = asyncio.create_task(ctx.dispatcher.run_loop())
        logger.info("smartpro.outbox_dispatcher_started")

    yield

    logger.info("smartpro.shutdown")

    if dispatcher_task is not None:
        ctx.dispatcher.stop()
        dispatcher_task.cancel()
        try:
            await dispatcher_task
        except asyncio.CancelledError:
            pass

    if owns_context:
        await close_context(ctx)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build and return the FastAPI application."""
    settings = settings or Settings()
    configure_logging(settings)

    app = FastAPI(
        title="SmartPRO Dashboard API",
        description="Bookings, contracts, messages and live dashboard metrics",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.context = None

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → CORS → handler

    from smartpro.middleware.request_id import RequestIdMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router)

    from smartpro.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: smartpro.main:app)
app = create_app()
