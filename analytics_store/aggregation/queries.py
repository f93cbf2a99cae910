"""
Analytics Queries

Thin read API over the analytics store. Reads degrade to empty results
when the store is unavailable or a query fails.
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

import structlog
from pymongo.errors import PyMongoError

from analytics_store.aggregation.periods import period_key, period_start
from analytics_store.store.categories import Category, PeriodType
from analytics_store.store.connection import ConnectionManager

logger = structlog.get_logger(__name__)


def _serialize(document: Dict[str, Any]) -> Dict[str, Any]:
    if "_id" in document:
        document["_id"] = str(document["_id"])
    return document


class AnalyticsQueries:
    """Read-side accessors for dashboards and reports"""

    def __init__(
        self,
        manager: ConnectionManager,
        local_clock: Callable[[], datetime] = datetime.now,
    ):
        self.manager = manager
        self._local_clock = local_clock

    async def _find(
        self,
        category: Category,
        query: Dict[str, Any],
        sort_field: str,
        direction: int = -1,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        if not self.manager.is_available():
            return []
        try:
            cursor = self.manager.collection(category).find(query).sort(sort_field, direction).limit(limit)
            documents = await cursor.to_list()
        except PyMongoError as e:
            logger.error("Analytics query failed", category=category.value, error=str(e))
            return []
        return [_serialize(doc) for doc in documents]

    async def _aggregate(self, category: Category, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not self.manager.is_available():
            return []
        try:
            cursor = await self.manager.collection(category).aggregate(pipeline)
            return await cursor.to_list()
        except PyMongoError as e:
            logger.error("Analytics aggregation failed", category=category.value, error=str(e))
            return []

    async def get_popular_searches(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Most frequent normalized search queries"""
        return await self._aggregate(Category.SEARCH_ANALYTICS, [
            {"$group": {"_id": "$normalizedQuery", "count": {"$sum": 1}}},
            {"$sort": {"count": -1}},
            {"$limit": limit},
            {"$project": {"_id": 0, "query": "$_id", "count": 1}},
        ])

    async def get_no_result_searches(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Most frequent queries that returned nothing"""
        return await self._aggregate(Category.SEARCH_ANALYTICS, [
            {"$match": {"resultsCount": 0}},
            {"$group": {"_id": "$normalizedQuery", "count": {"$sum": 1}}},
            {"$sort": {"count": -1}},
            {"$limit": limit},
            {"$project": {"_id": 0, "query": "$_id", "count": 1}},
        ])

    async def get_search_conversion_rate(self) -> Dict[str, float]:
        """Share of searches followed by an order"""
        empty = {"total": 0, "converted": 0, "rate": 0.0}
        if not self.manager.is_available():
            return empty

        collection = self.manager.collection(Category.SEARCH_ANALYTICS)
        try:
            total = await collection.count_documents({})
            converted = await collection.count_documents({"convertedToOrder": True})
        except PyMongoError as e:
            logger.error("Conversion rate query failed", error=str(e))
            return empty

        rate = converted / total * 100 if total > 0 else 0.0
        return {"total": total, "converted": converted, "rate": rate}

    async def get_top_menus(
        self,
        period_type: Union[PeriodType, str] = PeriodType.MONTHLY,
        limit: int = 10,
    ) -> List[Dict[str, Any]]:
        """
        Menus of the current period ordered by order count.

        Views and orders are counted in daily buckets, so weekly and monthly
        rankings sum the daily buckets since the start of the period.
        """
        period_type = PeriodType(period_type)
        local_now = self._local_clock()
        if period_type == PeriodType.DAILY:
            query = {
                "periodType": period_type.value,
                "period": period_key(local_now, period_type),
            }
            return await self._find(Category.MENU_ANALYTICS, query, "orderCount", limit=limit)

        start = period_start(local_now.date(), period_type).isoformat()
        rows = await self._aggregate(Category.MENU_ANALYTICS, [
            {
                "$match": {
                    "periodType": PeriodType.DAILY.value,
                    "period": {"$gte": start, "$lte": period_key(local_now, PeriodType.DAILY)},
                }
            },
            {
                "$group": {
                    "_id": "$menuId",
                    "menuTitle": {"$last": "$menuTitle"},
                    "viewCount": {"$sum": "$viewCount"},
                    "orderCount": {"$sum": "$orderCount"},
                    "totalRevenue": {"$sum": "$totalRevenue"},
                }
            },
            {"$sort": {"orderCount": -1, "_id": 1}},
            {"$limit": limit},
        ])
        key = period_key(local_now, period_type)
        return [
            {
                "menuId": row.pop("_id"),
                **row,
                "period": key,
                "periodType": period_type.value,
            }
            for row in rows
        ]

    async def get_dashboard_stats(
        self,
        date: Optional[str] = None,
        period_type: Union[PeriodType, str] = PeriodType.DAILY,
    ) -> Optional[Dict[str, Any]]:
        """Stored rollup for a period, the current one by default"""
        period_type = PeriodType(period_type)
        key = date or period_key(self._local_clock(), period_type)
        documents = await self._find(
            Category.DASHBOARD_STATS,
            {"date": key, "type": period_type.value},
            "computedAt",
            limit=1,
        )
        return documents[0] if documents else None

    async def get_stats_range(
        self,
        start_date: str,
        end_date: str,
        period_type: Union[PeriodType, str] = PeriodType.DAILY,
    ) -> List[Dict[str, Any]]:
        """Stored rollups with period keys between two keys, oldest first"""
        period_type = PeriodType(period_type)
        return await self._find(
            Category.DASHBOARD_STATS,
            {"type": period_type.value, "date": {"$gte": start_date, "$lte": end_date}},
            "date",
            direction=1,
            limit=0,
        )

    async def get_latest_stats(
        self,
        period_type: Union[PeriodType, str] = PeriodType.DAILY,
    ) -> Optional[Dict[str, Any]]:
        period_type = PeriodType(period_type)
        documents = await self._find(Category.DASHBOARD_STATS, {"type": period_type.value}, "date", limit=1)
        return documents[0] if documents else None

    async def get_recent_orders(self, limit: int = 100) -> List[Dict[str, Any]]:
        return await self._find(Category.ORDER_SNAPSHOT, {}, "orderDate", limit=limit)

    async def get_peak_hours(self) -> List[Dict[str, int]]:
        """Order counts per hour of ``orderDate``, busiest first"""
        return await self._aggregate(Category.ORDER_SNAPSHOT, [
            {"$group": {"_id": {"$hour": "$orderDate"}, "count": {"$sum": 1}}},
            {"$sort": {"count": -1, "_id": 1}},
            {"$project": {"_id": 0, "hour": "$_id", "count": 1}},
        ])

    async def get_order_history(self, user_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        return await self._find(Category.ORDER_SNAPSHOT, {"user.id": user_id}, "orderDate", limit=limit)

    async def get_audit_history(self, entity_type: str, entity_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        return await self._find(
            Category.AUDIT_LOG,
            {"entityType": entity_type, "entityId": entity_id},
            "timestamp",
            limit=limit,
        )

    async def get_user_activity(self, user_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        return await self._find(Category.USER_ACTIVITY_LOG, {"userId": user_id}, "timestamp", limit=limit)

    async def get_session_activity(self, session_id: str) -> List[Dict[str, Any]]:
        """Everything a session did, in order"""
        return await self._find(
            Category.USER_ACTIVITY_LOG,
            {"sessionId": session_id},
            "timestamp",
            direction=1,
            limit=0,
        )
