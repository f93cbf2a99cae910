"""
Retention & Cleanup Engine

Keeps the analytics store under its storage budget:

- Threshold-triggered cleanup: once usage crosses the configured threshold,
  categories are visited in priority order and their expired records are
  deleted, stopping as soon as usage falls below the safety margin.
- Emergency cleanup: an explicit pass over every category with halved
  retention windows (never below one week).

Both passes share one in-process lock, since "check stats, delete,
re-check stats" is not atomic.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import structlog
from pymongo.errors import PyMongoError

from analytics_store.aggregation.periods import utc_now
from analytics_store.config import SAFETY_MARGIN_PERCENT, StoreSettings
from analytics_store.metrics import CLEANUP_RUNS, DOCUMENTS_DELETED
from analytics_store.retention.monitor import CapacityMonitor
from analytics_store.retention.policy import RetentionPolicy
from analytics_store.store.categories import Category, get_spec
from analytics_store.store.connection import ConnectionManager

logger = structlog.get_logger(__name__)


class CleanupState(str, Enum):
    """Engine states"""
    IDLE = "idle"
    CHECKING = "checking"
    NO_ACTION = "no_action"
    CLEANING = "cleaning"
    EMERGENCY_CLEANING = "emergency_cleaning"


class CleanupMode(str, Enum):
    """What started a deletion"""
    THRESHOLD = "threshold"
    EMERGENCY = "emergency"
    MANUAL = "manual"


@dataclass
class CategoryCleanup:
    """Outcome of deleting expired records from one category"""
    category: Category
    retention_days: int
    cutoff: datetime
    deleted_count: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "retention_days": self.retention_days,
            "cutoff": self.cutoff.isoformat(),
            "deleted_count": self.deleted_count,
            "error": self.error,
        }


@dataclass
class CleanupReport:
    """Outcome of a whole cleanup pass"""
    mode: CleanupMode
    cleaned: bool
    deleted_count: int = 0
    freed_mb: float = 0.0
    used_percentage_before: Optional[float] = None
    used_percentage_after: Optional[float] = None
    categories: List[CategoryCleanup] = field(default_factory=list)
    skipped_reason: Optional[str] = None
    started_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None

    @property
    def partial(self) -> bool:
        """True if at least one category failed"""
        return any(not c.succeeded for c in self.categories)

    @property
    def visited(self) -> List[Category]:
        return [c.category for c in self.categories]

    @property
    def outcome(self) -> str:
        if self.skipped_reason:
            return "skipped"
        if not self.cleaned:
            return "no_action"
        return "partial" if self.partial else "cleaned"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "cleaned": self.cleaned,
            "deleted_count": self.deleted_count,
            "freed_mb": round(self.freed_mb, 3),
            "used_percentage_before": self.used_percentage_before,
            "used_percentage_after": self.used_percentage_after,
            "partial": self.partial,
            "skipped_reason": self.skipped_reason,
            "categories": [c.to_dict() for c in self.categories],
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class CleanupEngine:
    """
    Retention and capacity-management engine.

    Example:
        engine = CleanupEngine(manager, CapacityMonitor(manager))
        report = await engine.check_and_cleanup_storage()
        if report.cleaned:
            print(f"Deleted {report.deleted_count} records, freed {report.freed_mb:.1f} MB")
    """

    def __init__(
        self,
        manager: ConnectionManager,
        monitor: CapacityMonitor,
        policy: Optional[RetentionPolicy] = None,
        settings: Optional[StoreSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.manager = manager
        self.monitor = monitor
        self.policy = policy or RetentionPolicy()
        self.settings = settings or manager.settings
        self._clock = clock
        self._lock = asyncio.Lock()
        self._state = CleanupState.IDLE

    @property
    def state(self) -> CleanupState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    @property
    def cleanup_threshold(self) -> float:
        return self.settings.cleanup_threshold_percent

    async def check_and_cleanup_storage(self) -> CleanupReport:
        """
        Delete expired records if usage is at or above the cleanup threshold.

        Below the threshold nothing is deleted. Above it, categories are
        visited from least to most valuable; usage is re-checked before each
        one and the pass stops once it is under the safety margin.

        Returns:
            CleanupReport: ``freed_mb`` is the before/after stats delta of the whole pass
        """
        mode = CleanupMode.THRESHOLD
        if not self.manager.is_available():
            return self._skipped(mode, "unavailable")
        if self._lock.locked():
            logger.info("Cleanup already running, skipping")
            return self._skipped(mode, "in_progress")

        async with self._lock:
            try:
                return await self._run_threshold_pass()
            finally:
                self._state = CleanupState.IDLE

    async def emergency_cleanup(self) -> CleanupReport:
        """
        Delete records older than half their retention window in every category.

        Ignores the current usage and never stops early. Waits for any
        running pass to finish first.
        """
        mode = CleanupMode.EMERGENCY
        if not self.manager.is_available():
            return self._skipped(mode, "unavailable")

        async with self._lock:
            try:
                return await self._run_emergency_pass()
            finally:
                self._state = CleanupState.IDLE

    async def cleanup_collection(
        self,
        category: Category,
        retention_days: Optional[int] = None,
    ) -> CategoryCleanup:
        """
        Delete the records of one category older than its retention period.

        Args:
            category: Category to clean
            retention_days: Override of the policy's retention period

        Returns:
            CategoryCleanup with the deletion count, or the error
        """
        category = Category(category)
        days = retention_days if retention_days is not None else self.policy.retention_days(category)
        if not self.manager.is_available():
            return CategoryCleanup(
                category=category,
                retention_days=days,
                cutoff=self._cutoff(days),
            )
        return await self._delete_expired(category, days, CleanupMode.MANUAL)

    async def _run_threshold_pass(self) -> CleanupReport:
        mode = CleanupMode.THRESHOLD
        started_at = self._clock()
        self._state = CleanupState.CHECKING

        before = await self.monitor.get_storage_stats()
        if not before.available:
            return self._skipped(mode, "stats_unavailable")

        if before.used_percentage < self.cleanup_threshold:
            self._state = CleanupState.NO_ACTION
            logger.debug(
                "Storage below cleanup threshold",
                used_percentage=round(before.used_percentage, 2),
                threshold=self.cleanup_threshold,
            )
            report = CleanupReport(
                mode=mode,
                cleaned=False,
                used_percentage_before=before.used_percentage,
                used_percentage_after=before.used_percentage,
                started_at=started_at,
                completed_at=self._clock(),
            )
            CLEANUP_RUNS.labels(mode=mode.value, outcome=report.outcome).inc()
            return report

        self._state = CleanupState.CLEANING
        logger.warning(
            "Storage above cleanup threshold, starting cleanup",
            used_percentage=round(before.used_percentage, 2),
            threshold=self.cleanup_threshold,
        )

        results = []
        for category in self.policy.cleanup_priority:
            current = await self.monitor.get_used_percentage()
            if current is not None and current < SAFETY_MARGIN_PERCENT:
                logger.info(
                    "Usage below safety margin, stopping cleanup",
                    used_percentage=round(current, 2),
                    next_category=category.value,
                )
                break
            results.append(
                await self._delete_expired(category, self.policy.retention_days(category), mode)
            )

        return await self._finish(mode, before.total_size_mb, before.used_percentage, results, started_at)

    async def _run_emergency_pass(self) -> CleanupReport:
        mode = CleanupMode.EMERGENCY
        started_at = self._clock()
        self._state = CleanupState.EMERGENCY_CLEANING

        before_mb = await self.monitor.get_total_size_mb()
        before_pct = self._to_percentage(before_mb)
        logger.warning("Emergency cleanup started", used_percentage=before_pct)

        results = []
        for category in self.policy.cleanup_priority:
            results.append(
                await self._delete_expired(category, self.policy.emergency_retention_days(category), mode)
            )

        return await self._finish(mode, before_mb, before_pct, results, started_at)

    async def _delete_expired(self, category: Category, days: int, mode: CleanupMode) -> CategoryCleanup:
        spec = get_spec(category)
        result = CategoryCleanup(category=category, retention_days=days, cutoff=self._cutoff(days))

        try:
            deleted = await self.manager.collection(category).delete_many(
                {spec.time_field: {"$lt": result.cutoff}}
            )
        except PyMongoError as e:
            result.error = str(e)
            logger.error(
                "Cleanup failed for category, continuing",
                category=category.value,
                error=str(e),
            )
            return result

        result.deleted_count = deleted.deleted_count
        DOCUMENTS_DELETED.labels(category=category.value, mode=mode.value).inc(result.deleted_count)
        logger.info(
            "Expired records deleted",
            category=category.value,
            deleted=result.deleted_count,
            retention_days=days,
            mode=mode.value,
        )
        return result

    async def _finish(
        self,
        mode: CleanupMode,
        before_mb: Optional[float],
        before_pct: Optional[float],
        results: List[CategoryCleanup],
        started_at: datetime,
    ) -> CleanupReport:
        after_mb = await self.monitor.get_total_size_mb()
        freed_mb = 0.0
        if before_mb is not None and after_mb is not None:
            freed_mb = max(0.0, before_mb - after_mb)

        report = CleanupReport(
            mode=mode,
            cleaned=True,
            deleted_count=sum(r.deleted_count for r in results),
            freed_mb=freed_mb,
            used_percentage_before=before_pct,
            used_percentage_after=self._to_percentage(after_mb),
            categories=results,
            started_at=started_at,
            completed_at=self._clock(),
        )
        CLEANUP_RUNS.labels(mode=mode.value, outcome=report.outcome).inc()

        log = logger.warning if report.partial else logger.info
        log(
            "Cleanup complete",
            mode=mode.value,
            deleted=report.deleted_count,
            freed_mb=round(freed_mb, 3),
            used_percentage=report.used_percentage_after,
            categories=[c.value for c in report.visited],
            failed=[r.category.value for r in results if not r.succeeded],
        )
        return report

    def _skipped(self, mode: CleanupMode, reason: str) -> CleanupReport:
        report = CleanupReport(mode=mode, cleaned=False, skipped_reason=reason, completed_at=self._clock())
        CLEANUP_RUNS.labels(mode=mode.value, outcome=report.outcome).inc()
        return report

    def _cutoff(self, days: int) -> datetime:
        return self._clock() - timedelta(days=days)

    def _to_percentage(self, size_mb: Optional[float]) -> Optional[float]:
        if size_mb is None:
            return None
        return round(size_mb / self.settings.max_storage_mb * 100, 2)
