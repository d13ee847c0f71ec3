"""FastAPI application factory with lifespan management."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from stepflow.config import config
from stepflow.version import __version__


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    # ── Startup ──
    logger.info(f"STEPFLOW v{__version__} starting...")

    runtime = getattr(app.state, "runtime", None)
    if runtime is None:
        # 1. Database
        from stepflow.db.database import init_db, async_session
        await init_db()
        app.state.async_session = async_session

        # 2. Engine components over the database
        from stepflow.runtime import Stepflow
        runtime = Stepflow.from_database(async_session, config)
        app.state.runtime = runtime

    # 3. Schedule ticks
    await runtime.start(schedule=True)
    logger.info(f"STEPFLOW v{__version__} ready, execution_mode={runtime.dispatcher.mode.value}")

    yield

    # ── Shutdown ──
    logger.info("STEPFLOW shutting down...")
    await runtime.close(timeout=runtime.config.attempt_timeout_seconds)


def create_app(runtime=None, jwt_manager=None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        runtime:     Pre-built Stepflow runtime.  When None the lifespan
                     builds one over the configured database.
        jwt_manager: JWTManager used by the auth middleware.
    """
    app = FastAPI(
        title="STEPFLOW",
        description="Trigger-matched workflow execution with bounded retries and an attempt ledger.",
        version=__version__,
        lifespan=lifespan,
    )
    if runtime is not None:
        app.state.runtime = runtime

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["*"],
    )

    from stepflow.auth.middleware import AuthMiddleware
    from stepflow.auth.jwt import JWTManager
    app.add_middleware(AuthMiddleware, jwt_manager=jwt_manager or JWTManager())

    # Security headers: outermost middleware, applied to all responses
    app.add_middleware(SecurityHeadersMiddleware)

    # Routes (runs before workflows: /workflows/runs must not resolve as a logical name)
    from stepflow.api.routes import events, health, runs, workflows
    app.include_router(health.router)
    app.include_router(runs.router)
    app.include_router(workflows.router)
    app.include_router(events.router)

    return app


app = create_app()
