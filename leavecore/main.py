"""Leave Core — FastAPI Application Factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from leavecore.api.router import router as leave_router
from leavecore.common.exceptions import register_exception_handlers
from leavecore.config import settings
from leavecore.container import LeaveCore, build_core, build_sql_core
from leavecore.database import build_engine, build_session_factory

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=level or settings.log_level_name,
        format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_app(core: Optional[LeaveCore] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Without an injected core, services are built from ``STORAGE_BACKEND``;
    the SQL backend expects the schema from ``alembic upgrade head``.
    """
    configure_logging()
    engine = None
    if core is None:
        if settings.STORAGE_BACKEND == "sql":
            engine = build_engine()
            core = build_sql_core(build_session_factory(engine))
        else:
            core = build_core()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Leave core started (%s storage)", settings.STORAGE_BACKEND)
        yield
        if engine is not None:
            await engine.dispose()

    app = FastAPI(
        title="Leave Core",
        description="Leave entitlement, balances, conflict detection and approvals",
        version="1.0.0",
        docs_url="/api/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/api/redoc" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan,
    )
    app.state.core = core

    # Exception handlers (RFC 7807)
    register_exception_handlers(app)

    # Health check
    @app.get("/api/v1/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": "1.0.0",
            "environment": settings.ENVIRONMENT,
        }

    app.include_router(leave_router, prefix="/api/v1/leave", tags=["leave"])

    return app
