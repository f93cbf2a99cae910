"""
Analytics Read Endpoints
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from analytics_store.serving.api.dependencies import get_store
from analytics_store.service import AnalyticsStore
from analytics_store.store.categories import PeriodType

router = APIRouter()


@router.get("/searches/popular")
async def popular_searches(
    limit: int = Query(20, ge=1, le=100),
    store: AnalyticsStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    return await store.queries.get_popular_searches(limit)


@router.get("/searches/conversion")
async def search_conversion(store: AnalyticsStore = Depends(get_store)) -> Dict[str, float]:
    return await store.queries.get_search_conversion_rate()


@router.get("/menus/top")
async def top_menus(
    period_type: PeriodType = PeriodType.MONTHLY,
    limit: int = Query(10, ge=1, le=100),
    store: AnalyticsStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    return await store.queries.get_top_menus(period_type, limit)


@router.get("/dashboard")
async def dashboard_stats(
    date: Optional[str] = None,
    period_type: PeriodType = PeriodType.DAILY,
    store: AnalyticsStore = Depends(get_store),
) -> Optional[Dict[str, Any]]:
    return await store.queries.get_dashboard_stats(date, period_type)


@router.get("/dashboard/latest")
async def latest_dashboard_stats(
    period_type: PeriodType = PeriodType.DAILY,
    store: AnalyticsStore = Depends(get_store),
) -> Optional[Dict[str, Any]]:
    return await store.queries.get_latest_stats(period_type)


@router.get("/dashboard/range")
async def dashboard_stats_range(
    start: str,
    end: str,
    period_type: PeriodType = PeriodType.DAILY,
    store: AnalyticsStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    return await store.queries.get_stats_range(start, end, period_type)


@router.get("/orders/recent")
async def recent_orders(
    limit: int = Query(100, ge=1, le=500),
    store: AnalyticsStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    return await store.queries.get_recent_orders(limit)


@router.get("/orders/peak-hours")
async def peak_hours(store: AnalyticsStore = Depends(get_store)) -> List[Dict[str, int]]:
    return await store.queries.get_peak_hours()


@router.get("/sessions/{session_id}/activity")
async def session_activity(
    session_id: str,
    store: AnalyticsStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    return await store.queries.get_session_activity(session_id)
