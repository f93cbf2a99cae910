"""
Admin API Application

Operational HTTP surface of the analytics store: health, storage usage,
cleanup triggers, read endpoints and Prometheus metrics.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from analytics_store.config import get_settings
from analytics_store.serving.api.middleware import RequestLoggingMiddleware
from analytics_store.serving.api.routes import (
    analytics_router,
    health_router,
    storage_router,
)
from analytics_store.service import AnalyticsStore

settings = get_settings()
logger = structlog.get_logger(__name__)


def create_app(store: Optional[AnalyticsStore] = None, configure_logs: bool = True) -> FastAPI:
    """
    Build the admin API around an AnalyticsStore.

    Args:
        store: Store to serve; a default one is built from settings if omitted
        configure_logs: Configure structlog on startup
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        if configure_logs:
            from analytics_store.config.logging import configure_logging
            configure_logging(settings=app.state.store.settings)

        logger.info("Starting analytics store admin API")

        # Connection happens in the background; the API serves either way
        await app.state.store.start()

        yield

        logger.info("Shutting down...")
        await app.state.store.close()

    app = FastAPI(
        title="Analytics Store Admin API",
        description="Capacity monitoring and retention management for the analytics store",
        version=settings.version,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.store = store or AnalyticsStore(settings)

    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(storage_router, prefix="/api/v1/storage", tags=["Storage"])
    app.include_router(analytics_router, prefix="/api/v1/analytics", tags=["Analytics"])

    app.mount("/metrics", make_asgi_app())

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": "Analytics Store Admin API",
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    return app
