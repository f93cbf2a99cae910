"""
Aggregation Writer

Idempotent counters and rollups. Every counter mutation is a single atomic
upsert on the category's unique key, so concurrent events for the same key
serialize in the store and never lose updates.
"""

from typing import Any, Dict, Optional, Union

import structlog
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError
from pydantic import ValidationError

from analytics_store.aggregation.base import StoreWriter, with_insert_defaults
from analytics_store.aggregation.counters import CounterMap
from analytics_store.aggregation.models import OrderSnapshotIn, OrderStatus
from analytics_store.aggregation.periods import local_midnight_utc, period_key, period_start
from analytics_store.results import OpResult
from analytics_store.store.categories import Category, PeriodType

logger = structlog.get_logger(__name__)

MAX_RATING = 5


class AggregationWriter(StoreWriter):
    """
    Counter and rollup writer.

    Example:
        writer = AggregationWriter(manager)
        await writer.increment_menu_views(7, "Menu de Noel")
        await writer.record_menu_order(7, "Menu de Noel", 50.0, diet="vegan")
    """

    def _menu_defaults(self, now) -> Dict[str, Any]:
        return {
            "menuTitle": "",
            "viewCount": 0,
            "orderCount": 0,
            "totalRevenue": 0,
            "averageRating": 0,
            "ratingCount": 0,
            "ratingTotal": 0,
            "ordersByDiet": {},
            "ordersByTheme": {},
            "peakHours": [],
            "createdAt": now,
        }

    def _menu_key(self, menu_id: int, period_type: PeriodType) -> Dict[str, Any]:
        return {
            "menuId": menu_id,
            "period": period_key(self._local_clock(), period_type),
            "periodType": period_type.value,
        }

    async def increment_menu_views(self, menu_id: int, title: str) -> OpResult:
        """Add one view to today's counters of a menu"""
        if not self.manager.is_available():
            return OpResult.skipped()

        now = self._clock()
        update = with_insert_defaults(
            {
                "$inc": {"viewCount": 1},
                "$set": {"menuTitle": title, "updatedAt": now},
            },
            self._menu_defaults(now),
        )
        try:
            await self.manager.collection(Category.MENU_ANALYTICS).update_one(
                self._menu_key(menu_id, PeriodType.DAILY), update, upsert=True
            )
        except PyMongoError as e:
            return self._failed("increment_menu_views", e, menu_id=menu_id)
        return OpResult.ok()

    async def record_menu_order(
        self,
        menu_id: int,
        title: str,
        revenue: float,
        diet: Optional[str] = None,
        theme: Optional[str] = None,
    ) -> OpResult:
        """
        Count an order of a menu in today's counters.

        Increments the order count and revenue, appends the current hour to
        ``peakHours`` and bumps the per-diet and per-theme counters when
        given, all in one atomic update.
        """
        if not self.manager.is_available():
            return OpResult.skipped()

        try:
            if revenue < 0:
                raise ValueError("revenue must not be negative")
            increments: Dict[str, Any] = {"orderCount": 1, "totalRevenue": revenue}
            if diet:
                increments.update(CounterMap().increment(diet).as_increments("ordersByDiet"))
            if theme:
                increments.update(CounterMap().increment(theme).as_increments("ordersByTheme"))
        except (TypeError, ValueError) as e:
            return self._failed("record_menu_order", e, menu_id=menu_id)

        now = self._clock()
        update = with_insert_defaults(
            {
                "$inc": increments,
                "$set": {"menuTitle": title, "updatedAt": now},
                "$push": {"peakHours": self._local_clock().hour},
            },
            self._menu_defaults(now),
        )
        try:
            await self.manager.collection(Category.MENU_ANALYTICS).update_one(
                self._menu_key(menu_id, PeriodType.DAILY), update, upsert=True
            )
        except PyMongoError as e:
            return self._failed("record_menu_order", e, menu_id=menu_id)
        return OpResult.ok()

    async def record_menu_rating(self, menu_id: int, rating: float, title: Optional[str] = None) -> OpResult:
        """
        Add a rating to this month's counters of a menu.

        Count and total are incremented atomically; the average is then set
        only if no other rating landed in between, in which case that
        rating's writer sets it instead.
        """
        if not self.manager.is_available():
            return OpResult.skipped()
        if isinstance(rating, bool) or not isinstance(rating, (int, float)):
            return self._failed("record_menu_rating", TypeError("rating must be a number"), menu_id=menu_id)
        if not 0 <= rating <= MAX_RATING:
            return self._failed("record_menu_rating", ValueError(f"rating must be within 0..{MAX_RATING}"))

        now = self._clock()
        fields: Dict[str, Any] = {"updatedAt": now}
        if title:
            fields["menuTitle"] = title
        update = with_insert_defaults(
            {"$inc": {"ratingCount": 1, "ratingTotal": rating}, "$set": fields},
            self._menu_defaults(now),
        )
        collection = self.manager.collection(Category.MENU_ANALYTICS)
        try:
            doc = await collection.find_one_and_update(
                self._menu_key(menu_id, PeriodType.MONTHLY),
                update,
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
            count = doc["ratingCount"]
            average = doc["ratingTotal"] / count
            await collection.update_one(
                {"_id": doc["_id"], "ratingCount": count},
                {"$set": {"averageRating": average}},
            )
        except PyMongoError as e:
            return self._failed("record_menu_rating", e, menu_id=menu_id)
        return OpResult.ok({"ratingCount": count, "averageRating": average})

    async def update_dashboard_stats(self) -> OpResult:
        """
        Recompute today's dashboard rollup from today's order snapshots.

        Returns:
            OpResult: value holds the stored statistics
        """
        if not self.manager.is_available():
            return OpResult.skipped()

        local_now = self._local_clock()
        today = period_key(local_now, PeriodType.DAILY)
        pipeline = [
            {"$match": {"createdAt": {"$gte": local_midnight_utc(local_now)}}},
            {
                "$group": {
                    "_id": "$status",
                    "count": {"$sum": 1},
                    "revenue": {"$sum": "$totalPrice"},
                }
            },
        ]

        try:
            cursor = await self.manager.collection(Category.ORDER_SNAPSHOT).aggregate(pipeline)
            rows = await cursor.to_list()

            by_status: Dict[str, int] = {}
            total_orders = 0
            total_revenue = 0.0
            for row in rows:
                status = str(row["_id"] or "").lower()
                by_status[status] = by_status.get(status, 0) + row["count"]
                total_orders += row["count"]
                total_revenue += row["revenue"] or 0

            stats = {
                "totalOrders": total_orders,
                "completedOrders": by_status.get(OrderStatus.COMPLETED.value, 0),
                "cancelledOrders": by_status.get(OrderStatus.CANCELLED.value, 0),
                "pendingOrders": by_status.get(OrderStatus.PENDING.value, 0),
                "totalRevenue": total_revenue,
                "averageOrderValue": total_revenue / total_orders if total_orders > 0 else 0,
            }
            await self.manager.collection(Category.DASHBOARD_STATS).update_one(
                {"date": today, "type": PeriodType.DAILY.value},
                {"$set": {**stats, "computedAt": self._clock()}},
                upsert=True,
            )
        except PyMongoError as e:
            return self._failed("update_dashboard_stats", e)

        logger.info("Dashboard stats updated", date=today, total_orders=total_orders)
        return OpResult.ok(stats)

    async def rollup_dashboard_stats(self, period_type: Union[PeriodType, str]) -> OpResult:
        """
        Sum the daily dashboard rollups of the current week or month.

        Args:
            period_type: ``weekly`` or ``monthly``
        """
        if not self.manager.is_available():
            return OpResult.skipped()

        period_type = PeriodType(period_type)
        if period_type == PeriodType.DAILY:
            return self._failed("rollup_dashboard_stats", ValueError("daily stats are not a rollup"))

        local_now = self._local_clock()
        start = period_start(local_now.date(), period_type).isoformat()
        key = period_key(local_now, period_type)
        pipeline = [
            {"$match": {"type": PeriodType.DAILY.value, "date": {"$gte": start}}},
            {
                "$group": {
                    "_id": None,
                    "totalOrders": {"$sum": "$totalOrders"},
                    "completedOrders": {"$sum": "$completedOrders"},
                    "cancelledOrders": {"$sum": "$cancelledOrders"},
                    "pendingOrders": {"$sum": "$pendingOrders"},
                    "totalRevenue": {"$sum": "$totalRevenue"},
                }
            },
        ]

        collection = self.manager.collection(Category.DASHBOARD_STATS)
        try:
            cursor = await collection.aggregate(pipeline)
            rows = await cursor.to_list()
            totals = rows[0] if rows else {}
            stats = {
                name: totals.get(name) or 0
                for name in ("totalOrders", "completedOrders", "cancelledOrders", "pendingOrders", "totalRevenue")
            }
            stats["averageOrderValue"] = (
                stats["totalRevenue"] / stats["totalOrders"] if stats["totalOrders"] > 0 else 0
            )
            await collection.update_one(
                {"date": key, "type": period_type.value},
                {"$set": {**stats, "computedAt": self._clock()}},
                upsert=True,
            )
        except PyMongoError as e:
            return self._failed("rollup_dashboard_stats", e, period_type=period_type.value)
        return OpResult.ok(stats)

    async def create_order_snapshot(self, order: Union[OrderSnapshotIn, Dict[str, Any]]) -> OpResult:
        """
        Store a denormalized copy of an order, keyed by order id.

        Re-applying the same order overwrites the snapshot; its creation
        time, which drives retention, is kept from the first write.
        """
        if not self.manager.is_available():
            return OpResult.skipped()

        try:
            if not isinstance(order, OrderSnapshotIn):
                order = OrderSnapshotIn.model_validate(order)
        except ValidationError as e:
            return self._failed("create_order_snapshot", e)

        now = self._clock()
        try:
            await self.manager.collection(Category.ORDER_SNAPSHOT).update_one(
                {"orderId": order.order_id},
                {
                    "$set": {**order.to_document(), "updatedAt": now},
                    "$setOnInsert": {"createdAt": now},
                },
                upsert=True,
            )
        except PyMongoError as e:
            return self._failed("create_order_snapshot", e, order_id=order.order_id)
        return OpResult.ok()

    async def update_order_status(self, order_id: int, status: str) -> OpResult:
        """Update the status of an existing snapshot"""
        if not self.manager.is_available():
            return OpResult.skipped()

        try:
            result = await self.manager.collection(Category.ORDER_SNAPSHOT).update_one(
                {"orderId": order_id},
                {"$set": {"status": status, "updatedAt": self._clock()}},
            )
        except PyMongoError as e:
            return self._failed("update_order_status", e, order_id=order_id)
        return OpResult.ok(result.matched_count)
