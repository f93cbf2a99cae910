"""
Unit Tests - Scheduler, Service Facade and Command Line
"""
import asyncio
from datetime import datetime

import pytest

from analytics_store.cli import main, run_command
from analytics_store.config import RetentionSettings
from analytics_store.retention import CapacityMonitor, CleanupEngine
from analytics_store.retention.engine import CleanupMode
from analytics_store.retention.monitor import BYTES_PER_MB
from analytics_store.retention.scheduler import MaintenanceScheduler
from analytics_store.service import AnalyticsStore
from analytics_store.store.connection import ConnectionManager
from analytics_store.store.registry import SchemaRegistry


@pytest.fixture
def analytics(test_settings, backend) -> AnalyticsStore:
    return AnalyticsStore(test_settings, client_factory=backend.client_factory)


class TestMaintenanceScheduler:
    """Tests for MaintenanceScheduler"""

    @pytest.mark.asyncio
    async def test_tick_when_unavailable(self, unavailable):
        """Ticks without a store do nothing"""
        scheduler = MaintenanceScheduler(
            unavailable,
            engine=None,
            settings=RetentionSettings(),
        )
        assert await scheduler.tick() is None
        assert scheduler.ticks == 1

    @pytest.mark.asyncio
    async def test_tick_refreshes_stats_and_cleans(self, engine, writer, mongo):
        """A tick refreshes today's rollup and runs the threshold check"""
        scheduler = MaintenanceScheduler(
            engine.manager,
            engine,
            writer=writer,
            settings=RetentionSettings(),
        )

        report = await scheduler.tick()

        assert report.mode == CleanupMode.THRESHOLD
        assert report.cleaned is False
        assert mongo["dashboard_stats"].count_documents({"type": "daily"}) == 1

    @pytest.mark.asyncio
    async def test_tick_without_stats_refresh(self, engine, writer, mongo):
        """The rollup refresh can be turned off"""
        scheduler = MaintenanceScheduler(
            engine.manager,
            engine,
            writer=writer,
            settings=RetentionSettings(refresh_dashboard_stats=False),
        )

        await scheduler.tick()

        assert mongo["dashboard_stats"].count_documents({}) == 0

    @pytest.mark.asyncio
    async def test_tick_reconnects_and_creates_indexes(self, store_settings, backend, mongo, clock):
        """A store that comes back gets its indexes on the next tick"""
        backend.reachable = False
        manager = ConnectionManager(store_settings, client_factory=backend.client_factory, clock=clock)
        await manager.connect()

        engine = CleanupEngine(manager, CapacityMonitor(manager))
        scheduler = MaintenanceScheduler(
            manager,
            engine,
            registry=SchemaRegistry(manager),
            settings=RetentionSettings(refresh_dashboard_stats=False),
        )

        backend.reachable = True
        assert await scheduler.tick() is None

        clock.advance(30)
        report = await scheduler.tick()

        assert report is not None
        assert manager.is_available()
        assert "ttl_timestamp" in mongo["audit_logs"].index_information()
        await manager.close()

    @pytest.mark.asyncio
    async def test_tick_cleans_above_threshold(self, engine, backend, mongo):
        """Usage above the threshold triggers a cleanup pass"""
        backend.set_doc_size("search_analytics", BYTES_PER_MB // 10)
        mongo["search_analytics"].insert_many([{"timestamp": datetime(2025, 1, 1)} for _ in range(9)])
        scheduler = MaintenanceScheduler(
            engine.manager,
            engine,
            settings=RetentionSettings(refresh_dashboard_stats=False),
        )

        report = await scheduler.tick()

        assert report.cleaned is True
        assert report.deleted_count == 9

    @pytest.mark.asyncio
    async def test_start_and_stop(self, engine):
        """The background loop runs until stopped"""
        scheduler = MaintenanceScheduler(
            engine.manager,
            engine,
            settings=RetentionSettings(refresh_dashboard_stats=False),
        )

        scheduler.start()
        scheduler.start()
        await asyncio.sleep(0.01)

        assert scheduler.running
        assert scheduler.ticks == 1

        await scheduler.stop()
        await scheduler.stop()
        assert not scheduler.running


class TestAnalyticsStore:
    """Tests for the AnalyticsStore facade"""

    @pytest.mark.asyncio
    async def test_start_connects_and_indexes(self, analytics, mongo):
        """Starting in the foreground connects and creates indexes"""
        await analytics.start(background=False)

        assert analytics.is_available()
        assert "orderId_1" in mongo["order_snapshots"].index_information()
        assert not analytics.scheduler.running

        await analytics.close()
        assert not analytics.is_available()

    @pytest.mark.asyncio
    async def test_start_with_scheduler(self, analytics):
        """The scheduler can be started regardless of settings"""
        await analytics.start(background=False, scheduler=True)
        assert analytics.scheduler.running

        await analytics.close()
        assert not analytics.scheduler.running

    @pytest.mark.asyncio
    async def test_background_start(self, analytics):
        """Background start returns before the connection is made"""
        await analytics.start()
        await analytics._startup_task

        assert analytics.is_available()
        await analytics.close()

    @pytest.mark.asyncio
    async def test_start_without_store(self, test_settings, backend):
        """An unreachable store does not fail startup"""
        backend.reachable = False
        analytics = AnalyticsStore(test_settings, client_factory=backend.client_factory)

        await analytics.start(background=False)

        assert not analytics.is_available()
        assert (await analytics.ingest.track_search("vegan", results_count=1)).is_skipped
        await analytics.close()

    @pytest.mark.asyncio
    async def test_submitted_writes_drain_on_close(self, analytics, mongo):
        """Fire-and-forget writes finish before the connection closes"""
        await analytics.start(background=False)

        analytics.submit(analytics.writer.increment_menu_views(7, "Menu de Noel"))
        analytics.submit(analytics.writer.increment_menu_views(7, "Menu de Noel"))
        await analytics.close()

        assert mongo["menu_analytics"].find_one({"menuId": 7})["viewCount"] == 2


class TestCommandLine:
    """Tests for the analytics-store command"""

    @pytest.mark.asyncio
    async def test_stats(self, analytics):
        """The stats command reports usage"""
        output = await run_command("stats", analytics)

        assert output["available"] is True
        assert "audit_log" in output["categories"]
        assert not analytics.is_available()

    @pytest.mark.asyncio
    async def test_init_indexes(self, analytics):
        """Index setup reports its counts"""
        output = await run_command("init-indexes", analytics)
        assert output["status"] == "ok"
        assert output["created"] == 17

    @pytest.mark.asyncio
    async def test_emergency_cleanup(self, analytics):
        """Emergency cleanup runs through the command"""
        output = await run_command("emergency-cleanup", analytics)
        assert output["mode"] == "emergency"

    @pytest.mark.asyncio
    async def test_unavailable(self, test_settings, backend):
        """Commands report an unavailable store"""
        backend.reachable = False
        analytics = AnalyticsStore(test_settings, client_factory=backend.client_factory)

        output = await run_command("cleanup", analytics)

        assert output == {"error": "analytics store unavailable"}

    def test_emergency_requires_confirmation(self, capsys):
        """Emergency cleanup needs --yes"""
        assert main(["emergency-cleanup"]) == 2
        assert "--yes" in capsys.readouterr().err
