"""
Analytics Store Service

Builds every analytics store component once and wires them together. This
is the object host applications hold on to.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Coroutine, Optional, Set

import structlog
from pymongo import AsyncMongoClient

from analytics_store.aggregation.ingest import EventIngest
from analytics_store.aggregation.periods import utc_now
from analytics_store.aggregation.queries import AnalyticsQueries
from analytics_store.aggregation.writer import AggregationWriter
from analytics_store.config import Settings, get_settings
from analytics_store.retention.engine import CleanupEngine
from analytics_store.retention.monitor import CapacityMonitor
from analytics_store.retention.policy import RetentionPolicy
from analytics_store.retention.scheduler import MaintenanceScheduler
from analytics_store.results import OpResult
from analytics_store.store.connection import ConnectionManager
from analytics_store.store.registry import SchemaRegistry

logger = structlog.get_logger(__name__)


class AnalyticsStore:
    """
    Analytics store facade.

    Example:
        store = AnalyticsStore()
        await store.start()
        store.submit(store.ingest.track_menu_view(3, 7, "Menu de Noel", "s-1"))
        report = await store.engine.check_and_cleanup_storage()
        await store.close()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client_factory: Callable[..., Any] = AsyncMongoClient,
        clock: Callable[[], datetime] = utc_now,
        local_clock: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings or get_settings()
        self.policy = RetentionPolicy.from_settings(self.settings.retention)
        self.manager = ConnectionManager(self.settings.store, client_factory=client_factory)
        self.registry = SchemaRegistry(self.manager, self.policy)
        self.monitor = CapacityMonitor(self.manager)
        self.engine = CleanupEngine(self.manager, self.monitor, self.policy, clock=clock)
        self.writer = AggregationWriter(self.manager, clock=clock, local_clock=local_clock)
        self.ingest = EventIngest(self.manager, self.writer, clock=clock, local_clock=local_clock)
        self.queries = AnalyticsQueries(self.manager, local_clock=local_clock)
        self.scheduler = MaintenanceScheduler(
            self.manager,
            self.engine,
            writer=self.writer,
            registry=self.registry,
            settings=self.settings.retention,
        )
        self._startup_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

    def is_available(self) -> bool:
        return self.manager.is_available()

    async def start(self, background: bool = True, scheduler: Optional[bool] = None) -> None:
        """
        Connect, create indexes and start the scheduler.

        With ``background`` (the default) this returns immediately and the
        connection is made off the caller's startup path. ``scheduler``
        overrides the ``scheduler_enabled`` setting.
        """
        if scheduler is None:
            scheduler = self.settings.retention.scheduler_enabled
        if background:
            if self._startup_task is None:
                self._startup_task = asyncio.create_task(
                    self._bootstrap(scheduler), name="analytics-store-startup"
                )
            return
        await self._bootstrap(scheduler)

    async def _bootstrap(self, scheduler: bool) -> None:
        if await self.manager.connect():
            await self.registry.ensure_indexes()
        if scheduler:
            self.scheduler.start()

    def submit(self, operation: Coroutine[Any, Any, OpResult]) -> asyncio.Task:
        """
        Run a write without waiting for it.

        The caller never sees the result; failures are already logged by
        the writer.
        """
        task = asyncio.create_task(operation)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def close(self) -> None:
        """Stop background work, drain pending writes and disconnect"""
        if self._startup_task is not None:
            if not self._startup_task.done():
                self._startup_task.cancel()
            await asyncio.gather(self._startup_task, return_exceptions=True)
            self._startup_task = None

        await self.scheduler.stop()

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

        await self.manager.close()
        logger.info("Analytics store closed")
