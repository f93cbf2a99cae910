"""
Storage Administration Endpoints

Usage report and operator-triggered cleanup passes.
"""

from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends

from analytics_store.serving.api.dependencies import get_store
from analytics_store.service import AnalyticsStore

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("/stats")
async def get_storage_stats(store: AnalyticsStore = Depends(get_store)) -> Dict[str, Any]:
    """Current usage against the storage budget, per category"""
    stats = await store.monitor.get_storage_stats()
    return stats.to_dict()


@router.get("/policy")
async def get_retention_policy(store: AnalyticsStore = Depends(get_store)) -> Dict[str, Any]:
    """Retention days and eviction rank of every category"""
    return {
        "cleanup_threshold_percent": store.engine.cleanup_threshold,
        "max_storage_mb": store.monitor.max_storage_mb,
        "categories": store.policy.as_dict(),
    }


@router.post("/cleanup")
async def run_cleanup(store: AnalyticsStore = Depends(get_store)) -> Dict[str, Any]:
    """Run a threshold-triggered cleanup pass now"""
    logger.info("Cleanup requested by operator")
    report = await store.engine.check_and_cleanup_storage()
    return report.to_dict()


@router.post("/emergency-cleanup")
async def run_emergency_cleanup(store: AnalyticsStore = Depends(get_store)) -> Dict[str, Any]:
    """Halve every retention window and delete what falls outside it"""
    logger.warning("Emergency cleanup requested by operator")
    report = await store.engine.emergency_cleanup()
    return report.to_dict()
