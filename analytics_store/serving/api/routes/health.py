"""
Health Check Endpoints

The admin API is healthy even when the analytics store is down; the
store's state is reported as a check, not as a failure.
"""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from analytics_store.aggregation.periods import utc_now
from analytics_store.config import get_settings
from analytics_store.serving.api.dependencies import get_store
from analytics_store.service import AnalyticsStore

settings = get_settings()
router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(store: AnalyticsStore = Depends(get_store)) -> HealthResponse:
    """
    Health check endpoint.

    Checks:
    - Analytics store connectivity
    - Cleanup engine state
    """
    store_health = await store.manager.health()
    overall_status = "healthy" if store_health.get("status") == "healthy" else "degraded"

    return HealthResponse(
        status=overall_status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=utc_now(),
        checks={
            "store": store_health,
            "cleanup": {
                "state": store.engine.state.value,
                "running": store.engine.is_running,
                "scheduler_running": store.scheduler.running,
            },
        },
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """
    Liveness probe endpoint.

    Returns 200 if the application is running.
    """
    return {"status": "alive"}
