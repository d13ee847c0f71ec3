"""GET /health — Health check with real service probes."""

import logging

from fastapi import APIRouter, Request

from stepflow.api.schemas import HealthResponse
from stepflow.version import __version__

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Check health of all services."""
    services: dict[str, bool] = {"api": True, "database": True, "scheduler": False}

    # Database (only when the app owns one)
    async_session = getattr(request.app.state, "async_session", None)
    if async_session is not None:
        try:
            async with async_session() as session:
                from sqlalchemy import text
                await session.execute(text("SELECT 1"))
        except Exception as exc:
            services["database"] = False
            logger.warning(f"[health] DB check failed: {exc}")

    runtime = getattr(request.app.state, "runtime", None)
    services["runtime"] = runtime is not None
    services["scheduler"] = runtime is not None and runtime.ticker.running

    overall = "ok" if services["database"] and services["runtime"] else "degraded"
    return HealthResponse(status=overall, version=__version__, services=services)
