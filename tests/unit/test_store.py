"""
Unit Tests - Store Connection, Indexes and Capacity Monitor
"""
import pytest
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from analytics_store.config import StoreSettings
from analytics_store.retention.monitor import BYTES_PER_MB, CapacityMonitor
from analytics_store.retention.policy import RetentionPolicy
from analytics_store.store.categories import CATEGORY_SPECS, Category, get_spec
from analytics_store.store.connection import ConnectionManager, StoreUnavailableError
from analytics_store.store.registry import SchemaRegistry


class TestCategories:
    """Tests for the category table"""

    def test_every_category_has_a_spec(self):
        """Each category maps to exactly one collection"""
        collections = {spec.collection for spec in CATEGORY_SPECS.values()}
        assert set(CATEGORY_SPECS) == set(Category)
        assert len(collections) == len(Category)

    def test_append_only_categories(self):
        """Logs have no upsert key, counters do"""
        assert get_spec(Category.AUDIT_LOG).append_only
        assert get_spec(Category.SEARCH_ANALYTICS).append_only
        assert not get_spec(Category.MENU_ANALYTICS).append_only
        assert get_spec(Category.MENU_ANALYTICS).upsert_key == ("menuId", "period", "periodType")

    def test_lookup_by_value(self):
        """Categories can be looked up by their string value"""
        assert get_spec("order_snapshot").time_field == "createdAt"


class TestConnectionManager:
    """Tests for ConnectionManager"""

    @pytest.mark.asyncio
    async def test_connect_and_close(self, manager, backend):
        """Connect pings the server, close is idempotent"""
        assert await manager.connect()
        assert manager.is_available()
        assert await manager.connect()
        assert backend.connect_attempts == 1

        await manager.close()
        await manager.close()

        assert not manager.is_available()
        assert backend.clients[0].closed

    @pytest.mark.asyncio
    async def test_missing_uri_disables_store(self, unavailable):
        """Without a URI the store stays unavailable and nothing raises"""
        assert not await unavailable.connect()
        assert not await unavailable.ensure_connected()
        assert not unavailable.is_available()

        with pytest.raises(StoreUnavailableError):
            unavailable.database

    @pytest.mark.asyncio
    async def test_unreachable_server(self, store_settings, backend):
        """A failed ping leaves the store unavailable and closes the client"""
        backend.reachable = False
        manager = ConnectionManager(store_settings, client_factory=backend.client_factory)

        assert not await manager.connect()
        assert not manager.is_available()
        assert manager.consecutive_failures == 1
        assert backend.clients[0].closed

    @pytest.mark.asyncio
    async def test_client_factory_error(self, store_settings):
        """Errors raised while building the client are contained"""
        def broken_factory(uri, **kwargs):
            raise ServerSelectionTimeoutError("DNS lookup failed")

        manager = ConnectionManager(store_settings, client_factory=broken_factory)
        assert not await manager.connect()
        assert manager.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_reconnect_backoff(self, store_settings, backend, clock):
        """Reconnect attempts wait for an exponentially growing delay"""
        backend.reachable = False
        manager = ConnectionManager(store_settings, client_factory=backend.client_factory, clock=clock)

        assert not await manager.connect()
        assert manager.next_attempt_at == clock.now + 30

        clock.advance(10)
        assert not await manager.ensure_connected()
        assert backend.connect_attempts == 1

        clock.advance(20)
        assert not await manager.ensure_connected()
        assert backend.connect_attempts == 2
        assert manager.next_attempt_at == clock.now + 60

        backend.reachable = True
        clock.advance(60)
        assert await manager.ensure_connected()
        assert manager.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_backoff_is_capped(self, backend, clock):
        """The reconnect delay never exceeds the configured cap"""
        backend.reachable = False
        settings = StoreSettings(
            uri="mongodb://analytics-test:27017",
            reconnect_initial_delay_seconds=30,
            reconnect_max_delay_seconds=100,
        )
        manager = ConnectionManager(settings, client_factory=backend.client_factory, clock=clock)

        for _ in range(5):
            await manager.connect()

        assert manager.next_attempt_at == clock.now + 100

    @pytest.mark.asyncio
    async def test_health(self, connected, unavailable):
        """Health reports latency when connected"""
        health = await connected.health()
        assert health["status"] == "healthy"
        assert "latency_ms" in health

        health = await unavailable.health()
        assert health == {"status": "unavailable", "configured": False, "consecutive_failures": 0}

    @pytest.mark.asyncio
    async def test_collection_lookup(self, connected, mongo):
        """Category handles write to the category's collection"""
        await connected.collection(Category.AUDIT_LOG).insert_one({"action": "create"})
        assert mongo["audit_logs"].count_documents({}) == 1


class TestSchemaRegistry:
    """Tests for SchemaRegistry"""

    @pytest.mark.asyncio
    async def test_ensure_indexes(self, connected, mongo):
        """TTL and uniqueness indexes are created for every category"""
        registry = SchemaRegistry(connected, RetentionPolicy(overrides={"search_analytics": 14}))

        result = await registry.ensure_indexes()

        assert result.is_ok
        assert result.value == {"created": 17, "updated": 0, "conflicts": 0, "failed": 0}

        search_indexes = mongo["search_analytics"].index_information()
        assert search_indexes["ttl_timestamp"]["expireAfterSeconds"] == 14 * 86400

        menu_indexes = mongo["menu_analytics"].index_information()
        assert menu_indexes["menuId_1_period_1_periodType_1"]["unique"]

    @pytest.mark.asyncio
    async def test_ensure_indexes_is_repeatable(self, connected):
        """Running index setup twice is harmless"""
        registry = SchemaRegistry(connected)
        await registry.ensure_indexes()
        result = await registry.ensure_indexes()
        assert result.value["conflicts"] == 0

    @pytest.mark.asyncio
    async def test_conflicts_are_counted(self, connected, backend):
        """A conflicting index is logged and the rest are still created"""
        backend.fail("audit_logs", "create_index", OperationFailure("Index with name: ttl_timestamp already exists with different options"))

        result = await SchemaRegistry(connected).ensure_indexes()

        assert result.is_ok
        assert result.value == {"created": 15, "updated": 0, "conflicts": 2, "failed": 0}

    @pytest.mark.asyncio
    async def test_changed_retention_updates_ttl(self, connected, backend, mongo):
        """A TTL index created under an older policy follows the new one"""
        await SchemaRegistry(connected).ensure_indexes()
        assert mongo["search_analytics"].index_information()["ttl_timestamp"]["expireAfterSeconds"] == 30 * 86400

        backend.fail("search_analytics", "create_index", OperationFailure("Index with name: ttl_timestamp already exists with different options", code=85))
        result = await SchemaRegistry(connected, RetentionPolicy(overrides={"search_analytics": 14})).ensure_indexes()

        assert result.value["updated"] == 1
        assert result.value["conflicts"] == len(get_spec(Category.SEARCH_ANALYTICS).indexes)
        assert mongo["search_analytics"].index_information()["ttl_timestamp"]["expireAfterSeconds"] == 14 * 86400

    @pytest.mark.asyncio
    async def test_skipped_when_unavailable(self, unavailable):
        """Nothing is attempted without a store"""
        result = await SchemaRegistry(unavailable).ensure_indexes()
        assert result.is_skipped


class TestCapacityMonitor:
    """Tests for CapacityMonitor"""

    @pytest.mark.asyncio
    async def test_storage_stats(self, monitor, backend, mongo):
        """Usage is the data size against the configured budget"""
        backend.set_doc_size("search_analytics", BYTES_PER_MB // 10)
        mongo["search_analytics"].insert_many([{"query": str(i)} for i in range(4)])

        stats = await monitor.get_storage_stats()

        assert stats.available
        assert stats.max_storage_mb == 1.0
        assert stats.total_size_mb == pytest.approx(0.4, abs=0.001)
        assert stats.used_percentage == pytest.approx(40.0, abs=0.1)

        search = stats.categories[Category.SEARCH_ANALYTICS]
        assert search.count == 4
        assert search.size_mb == pytest.approx(0.4, abs=0.001)
        assert stats.categories[Category.AUDIT_LOG].count == 0

    @pytest.mark.asyncio
    async def test_partial_category_failure(self, monitor, backend, mongo):
        """A failing collection stat zeroes that category only"""
        mongo["audit_logs"].insert_one({"action": "create"})
        mongo["search_analytics"].insert_one({"query": "vegan"})
        backend.fail("$cmd", "collStats:audit_logs", OperationFailure("not authorized"))

        stats = await monitor.get_storage_stats()

        assert stats.available
        assert stats.categories[Category.AUDIT_LOG].count == 0
        assert stats.categories[Category.AUDIT_LOG].error
        assert stats.categories[Category.SEARCH_ANALYTICS].count == 1
        assert "error" in stats.to_dict()["categories"]["audit_log"]

    @pytest.mark.asyncio
    async def test_database_stats_failure(self, monitor, backend):
        """Without database stats the report is empty"""
        backend.fail("$cmd", "dbStats", OperationFailure("not authorized"))

        stats = await monitor.get_storage_stats()

        assert not stats.available
        assert stats.used_percentage == 0
        assert await monitor.get_used_percentage() is None

    @pytest.mark.asyncio
    async def test_unavailable(self, unavailable):
        """An unavailable store yields an empty report"""
        monitor = CapacityMonitor(unavailable)

        stats = await monitor.get_storage_stats()

        assert not stats.available
        assert stats.categories == {}
        assert await monitor.get_total_size_mb() is None
