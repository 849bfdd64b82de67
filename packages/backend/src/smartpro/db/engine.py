"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection pooling,
AsyncSession for per-request database access, dependency injection via FastAPI.

There is no module-level engine. The app lifespan builds one through
build_engine() and keeps it on the AppContext; get_db() pulls the session
factory from there, so tests can hand the app any engine they like.
"""

from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from smartpro.config import Settings


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the engine. Pool sizing only applies to server databases."""
    kwargs = {"echo": settings.debug}
    if not settings.database_url.startswith("sqlite"):
        # Connection pool: min 5, max 20 connections.
        kwargs.update(pool_size=5, max_overflow=15)
    return create_async_engine(settings.database_url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory — each request gets its own session."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency — yields a session per request, auto-closes."""
    factory = request.app.state.context.session_factory
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()
