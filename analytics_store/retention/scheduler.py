"""
Maintenance Scheduler

Runs storage maintenance once at startup and then on a fixed interval:
reconnect if the store is down, refresh today's dashboard rollup and run
the threshold-triggered cleanup. Emergency cleanup is never started here.
"""

import asyncio
import contextlib
from typing import Optional, TYPE_CHECKING

import structlog

from analytics_store.config import RetentionSettings, get_settings
from analytics_store.retention.engine import CleanupEngine, CleanupReport
from analytics_store.store.connection import ConnectionManager

if TYPE_CHECKING:
    from analytics_store.aggregation.writer import AggregationWriter
    from analytics_store.store.registry import SchemaRegistry

logger = structlog.get_logger(__name__)


class MaintenanceScheduler:
    """
    Periodic storage maintenance.

    Example:
        scheduler = MaintenanceScheduler(manager, engine, writer=writer)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        manager: ConnectionManager,
        engine: CleanupEngine,
        writer: Optional["AggregationWriter"] = None,
        registry: Optional["SchemaRegistry"] = None,
        settings: Optional[RetentionSettings] = None,
    ):
        self.manager = manager
        self.engine = engine
        self.writer = writer
        self.registry = registry
        self.settings = settings or get_settings().retention
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0

    @property
    def interval_seconds(self) -> float:
        return self.settings.cleanup_interval_minutes * 60

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> Optional[CleanupReport]:
        """
        Run one maintenance iteration.

        Returns:
            The cleanup report, or None if the store is unavailable
        """
        self.ticks += 1
        was_available = self.manager.is_available()
        if not await self.manager.ensure_connected():
            logger.debug("Maintenance skipped, store unavailable")
            return None

        if not was_available and self.registry is not None:
            await self.registry.ensure_indexes()

        if self.settings.refresh_dashboard_stats and self.writer is not None:
            await self.writer.update_dashboard_stats()

        report = await self.engine.check_and_cleanup_storage()
        if (
            report.cleaned
            and report.used_percentage_after is not None
            and report.used_percentage_after >= self.engine.cleanup_threshold
        ):
            logger.warning(
                "Storage still above threshold after cleanup, emergency cleanup recommended",
                used_percentage=report.used_percentage_after,
                threshold=self.engine.cleanup_threshold,
            )
        return report

    def start(self) -> None:
        """Start the background loop. No-op if already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="analytics-store-maintenance")
        logger.info("Maintenance scheduler started", interval_minutes=self.settings.cleanup_interval_minutes)

    async def stop(self) -> None:
        """Cancel the background loop"""
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Maintenance scheduler stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except Exception as e:
                logger.error("Maintenance tick failed", error=str(e), error_type=type(e).__name__)
            await asyncio.sleep(self.interval_seconds)
