"""
ShelfGuard API — status surface for a host running the compliance engine.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.v1.routers import compliance, offline
from compliance.engine import ComplianceEngine
from core.config import get_settings

logger = structlog.get_logger()


def create_app(engine: ComplianceEngine, *, manage_lifecycle: bool = False) -> FastAPI:
    """
    Build the app around ``engine``. With ``manage_lifecycle`` the scheduler is
    started on startup and stopped on shutdown; otherwise the host owns it.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("ShelfGuard API starting up", version=settings.app_version, account_id=engine.account_id)
        if manage_lifecycle:
            await engine.start()
        yield
        if manage_lifecycle:
            engine.stop()
        logger.info("ShelfGuard API shutting down")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Expiry compliance engine status",
        lifespan=lifespan,
    )
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(compliance.router)
    app.include_router(offline.router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint for load balancers."""
        return {"status": "healthy", "version": settings.app_version}

    return app
