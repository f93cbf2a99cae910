"""
Retention Policy Table

Maps each record category to its retention period and cleanup priority.
"""

from typing import Dict, List, Mapping, Optional

from analytics_store.config import RetentionSettings
from analytics_store.store.categories import Category


DEFAULT_RETENTION_DAYS: Dict[Category, int] = {
    Category.USER_ACTIVITY_LOG: 30,
    Category.SEARCH_ANALYTICS: 30,
    Category.AUDIT_LOG: 90,
    Category.ORDER_SNAPSHOT: 180,
    Category.MENU_ANALYTICS: 365,
    Category.DASHBOARD_STATS: 365,
}

# Evicted first -> evicted last
CLEANUP_PRIORITY: List[Category] = [
    Category.USER_ACTIVITY_LOG,
    Category.SEARCH_ANALYTICS,
    Category.AUDIT_LOG,
    Category.ORDER_SNAPSHOT,
    Category.MENU_ANALYTICS,
    Category.DASHBOARD_STATS,
]

# Compliance floor for audit logs
AUDIT_LOG_MIN_RETENTION_DAYS = 90

EMERGENCY_MIN_RETENTION_DAYS = 7


class RetentionPolicy:
    """
    Retention periods and eviction order for every category.

    Overrides replace the default retention of individual categories. Audit
    logs cannot go below the compliance floor unless ``compliance_override``
    is set.

    Example:
        policy = RetentionPolicy(overrides={"search_analytics": 14})
        policy.retention_days(Category.SEARCH_ANALYTICS)  # 14
        policy.emergency_retention_days(Category.AUDIT_LOG)  # 45
    """

    def __init__(
        self,
        overrides: Optional[Mapping[str, int]] = None,
        compliance_override: bool = False,
    ):
        self._days: Dict[Category, int] = dict(DEFAULT_RETENTION_DAYS)

        for key, days in (overrides or {}).items():
            try:
                category = Category(key)
            except ValueError:
                raise ValueError(f"Unknown category in retention overrides: {key!r}") from None

            days = int(days)
            if days < 1:
                raise ValueError(f"Retention for {category.value} must be at least 1 day")
            if (
                category == Category.AUDIT_LOG
                and days < AUDIT_LOG_MIN_RETENTION_DAYS
                and not compliance_override
            ):
                raise ValueError(
                    f"Audit log retention below {AUDIT_LOG_MIN_RETENTION_DAYS} days "
                    "requires an explicit compliance override"
                )
            self._days[category] = days

    @classmethod
    def from_settings(cls, settings: RetentionSettings) -> "RetentionPolicy":
        return cls(
            overrides=settings.retention_overrides,
            compliance_override=settings.compliance_override,
        )

    @property
    def cleanup_priority(self) -> List[Category]:
        """Categories from least to most valuable"""
        return list(CLEANUP_PRIORITY)

    def retention_days(self, category: Category) -> int:
        return self._days[Category(category)]

    def priority_rank(self, category: Category) -> int:
        """Lower rank is evicted first"""
        return CLEANUP_PRIORITY.index(Category(category))

    def emergency_retention_days(self, category: Category) -> int:
        """Halved retention window, never below one week"""
        return max(EMERGENCY_MIN_RETENTION_DAYS, self.retention_days(category) // 2)

    def ttl_seconds(self, category: Category) -> int:
        return self.retention_days(category) * 86400

    def as_dict(self) -> Dict[str, Dict[str, int]]:
        return {
            category.value: {
                "retention_days": self.retention_days(category),
                "priority": self.priority_rank(category),
            }
            for category in CLEANUP_PRIORITY
        }
