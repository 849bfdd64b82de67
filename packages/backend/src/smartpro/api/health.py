"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and its
dependencies are reachable. An unconfigured medium is reported as
"disabled", not as an error. The app runs fine without it.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text

from smartpro import __version__
from smartpro.api.deps import get_context
from smartpro.context import AppContext

router = APIRouter()


@router.get("/health")
async def health_check(ctx: AppContext = Depends(get_context)):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    # Check database
    try:
        async with ctx.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    # Check key-value medium
    if not ctx.kv.configured:
        checks["redis"] = "disabled"
    else:
        try:
            await ctx.kv.ping()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {e}"

    status = "healthy" if all(
        v in ("ok", "disabled") for k, v in checks.items() if k != "version"
    ) else "degraded"

    return {"status": status, **checks}
