"""
Capacity Monitor

Reports analytics store usage against the configured storage budget,
using the sizes the server reports through ``dbStats`` and ``collStats``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

import structlog
from pymongo.errors import PyMongoError

from analytics_store.aggregation.periods import utc_now
from analytics_store.config import StoreSettings
from analytics_store.metrics import STORAGE_SIZE_MB, STORAGE_USED_PERCENT
from analytics_store.store.categories import CATEGORY_SPECS, Category
from analytics_store.store.connection import ConnectionManager

logger = structlog.get_logger(__name__)

BYTES_PER_MB = 1024 * 1024


@dataclass
class CategoryStats:
    """Size of a single category"""
    category: Category
    count: int = 0
    size_mb: float = 0.0
    avg_doc_size_kb: float = 0.0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "count": self.count,
            "size_mb": round(self.size_mb, 3),
            "avg_doc_size_kb": round(self.avg_doc_size_kb, 3),
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class StorageStats:
    """Usage report for the whole store"""
    total_size_mb: float
    max_storage_mb: float
    used_percentage: float
    categories: Dict[Category, CategoryStats] = field(default_factory=dict)
    available: bool = True
    collected_at: datetime = field(default_factory=utc_now)

    @classmethod
    def empty(cls, max_storage_mb: float) -> "StorageStats":
        return cls(
            total_size_mb=0.0,
            max_storage_mb=max_storage_mb,
            used_percentage=0.0,
            available=False,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "available": self.available,
            "total_size_mb": round(self.total_size_mb, 3),
            "max_storage_mb": self.max_storage_mb,
            "used_percentage": round(self.used_percentage, 2),
            "collected_at": self.collected_at.isoformat(),
            "categories": {c.value: s.to_dict() for c, s in self.categories.items()},
        }


class CapacityMonitor:
    """
    Storage usage monitor.

    Example:
        monitor = CapacityMonitor(manager)
        stats = await monitor.get_storage_stats()
        if stats.used_percentage >= 85:
            ...
    """

    def __init__(self, manager: ConnectionManager, settings: Optional[StoreSettings] = None):
        self.manager = manager
        self.settings = settings or manager.settings

    @property
    def max_storage_mb(self) -> float:
        return self.settings.max_storage_mb

    async def get_storage_stats(self) -> StorageStats:
        """
        Collect total and per-category storage statistics.

        A failing per-category stat call zeroes that category only. When the
        store is unavailable, or the database-wide stats fail, an empty
        report with ``available=False`` is returned.
        """
        if not self.manager.is_available():
            return StorageStats.empty(self.max_storage_mb)

        total_size_mb = await self._total_size_mb()
        if total_size_mb is None:
            return StorageStats.empty(self.max_storage_mb)

        categories = {}
        for category in CATEGORY_SPECS:
            categories[category] = await self._category_stats(category)

        stats = StorageStats(
            total_size_mb=total_size_mb,
            max_storage_mb=self.max_storage_mb,
            used_percentage=self._percentage(total_size_mb),
            categories=categories,
        )
        logger.debug(
            "Storage stats collected",
            total_size_mb=round(total_size_mb, 3),
            used_percentage=round(stats.used_percentage, 2),
        )
        return stats

    async def get_used_percentage(self) -> Optional[float]:
        """
        Current usage percentage from database-wide stats only.

        Returns:
            Usage percentage, or None if it could not be measured
        """
        total_size_mb = await self.get_total_size_mb()
        if total_size_mb is None:
            return None
        return self._percentage(total_size_mb)

    async def get_total_size_mb(self) -> Optional[float]:
        """Database data size in MB, or None if it could not be measured"""
        if not self.manager.is_available():
            return None
        return await self._total_size_mb()

    def _percentage(self, total_size_mb: float) -> float:
        percentage = total_size_mb / self.max_storage_mb * 100
        STORAGE_USED_PERCENT.set(percentage)
        STORAGE_SIZE_MB.set(total_size_mb)
        return percentage

    async def _total_size_mb(self) -> Optional[float]:
        try:
            db_stats = await self.manager.database.command("dbStats")
        except PyMongoError as e:
            logger.error("Failed to read database stats", error=str(e))
            return None
        return (db_stats.get("dataSize") or 0) / BYTES_PER_MB

    async def _category_stats(self, category: Category) -> CategoryStats:
        name = CATEGORY_SPECS[category].collection
        try:
            coll_stats = await self.manager.database.command("collStats", name)
        except PyMongoError as e:
            logger.warning("Collection stats unavailable", collection=name, error=str(e))
            return CategoryStats(category=category, error=str(e))

        return CategoryStats(
            category=category,
            count=coll_stats.get("count") or 0,
            size_mb=(coll_stats.get("size") or 0) / BYTES_PER_MB,
            avg_doc_size_kb=(coll_stats.get("avgObjSize") or 0) / 1024,
        )
