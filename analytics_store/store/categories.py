"""
Record Categories

Closed enumeration of the logical record types kept in the analytics store,
mapped through a single lookup table to their collection, retention time
field and structural indexes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class Category(str, Enum):
    """Logical record categories managed by the retention engine"""
    MENU_ANALYTICS = "menu_analytics"
    USER_ACTIVITY_LOG = "user_activity_log"
    SEARCH_ANALYTICS = "search_analytics"
    AUDIT_LOG = "audit_log"
    ORDER_SNAPSHOT = "order_snapshot"
    DASHBOARD_STATS = "dashboard_stats"


class PeriodType(str, Enum):
    """Aggregation bucket sizes"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


IndexKeys = List[Tuple[str, int]]


@dataclass(frozen=True)
class IndexSpec:
    """A secondary index declaration"""
    keys: IndexKeys
    unique: bool = False
    name: Optional[str] = None

    @property
    def index_name(self) -> str:
        return self.name or "_".join(f"{k}_{d}" for k, d in self.keys)


@dataclass(frozen=True)
class CategorySpec:
    """Storage layout of one category"""
    category: Category
    collection: str
    time_field: str
    upsert_key: Tuple[str, ...] = ()
    indexes: List[IndexSpec] = field(default_factory=list)

    @property
    def append_only(self) -> bool:
        return not self.upsert_key

    @property
    def ttl_index_name(self) -> str:
        return f"ttl_{self.time_field}"


CATEGORY_SPECS: Dict[Category, CategorySpec] = {
    Category.MENU_ANALYTICS: CategorySpec(
        category=Category.MENU_ANALYTICS,
        collection="menu_analytics",
        time_field="updatedAt",
        upsert_key=("menuId", "period", "periodType"),
        indexes=[
            IndexSpec([("menuId", 1), ("period", 1), ("periodType", 1)], unique=True),
            IndexSpec([("periodType", 1), ("period", 1), ("orderCount", -1)]),
        ],
    ),
    Category.USER_ACTIVITY_LOG: CategorySpec(
        category=Category.USER_ACTIVITY_LOG,
        collection="user_activity_logs",
        time_field="timestamp",
        indexes=[
            IndexSpec([("userId", 1), ("timestamp", -1)]),
            IndexSpec([("sessionId", 1)]),
        ],
    ),
    Category.SEARCH_ANALYTICS: CategorySpec(
        category=Category.SEARCH_ANALYTICS,
        collection="search_analytics",
        time_field="timestamp",
        indexes=[
            IndexSpec([("normalizedQuery", 1)]),
            IndexSpec([("sessionId", 1), ("timestamp", -1)]),
        ],
    ),
    Category.AUDIT_LOG: CategorySpec(
        category=Category.AUDIT_LOG,
        collection="audit_logs",
        time_field="timestamp",
        indexes=[
            IndexSpec([("entityType", 1), ("entityId", 1), ("timestamp", -1)]),
        ],
    ),
    Category.ORDER_SNAPSHOT: CategorySpec(
        category=Category.ORDER_SNAPSHOT,
        collection="order_snapshots",
        time_field="createdAt",
        upsert_key=("orderId",),
        indexes=[
            IndexSpec([("orderId", 1)], unique=True),
            IndexSpec([("user.id", 1), ("orderDate", -1)]),
            IndexSpec([("status", 1)]),
        ],
    ),
    Category.DASHBOARD_STATS: CategorySpec(
        category=Category.DASHBOARD_STATS,
        collection="dashboard_stats",
        time_field="computedAt",
        upsert_key=("date", "type"),
        indexes=[
            IndexSpec([("date", 1), ("type", 1)], unique=True),
        ],
    ),
}


def get_spec(category: Category) -> CategorySpec:
    """Look up the storage layout for a category"""
    return CATEGORY_SPECS[Category(category)]
