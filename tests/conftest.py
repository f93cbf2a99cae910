"""
Test Suite Configuration

The analytics store runs against mongomock behind a small async facade
that mimics the parts of pymongo's async API the package uses. Sizes
reported by ``dbStats`` and ``collStats`` are derived from document
counts, so deleting documents lowers usage the way it would on a server.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple

import mongomock
import pytest
import pytest_asyncio
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from analytics_store.aggregation import AggregationWriter, AnalyticsQueries, EventIngest
from analytics_store.config import RetentionSettings, Settings, StoreSettings
from analytics_store.retention import CapacityMonitor, CleanupEngine, RetentionPolicy
from analytics_store.store.connection import ConnectionManager

NOW = datetime(2026, 3, 15, 12, 0, 0)
LOCAL_NOW = datetime(2026, 3, 15, 19, 30, 0)
DATABASE = "analytics_test"
DEFAULT_DOC_SIZE = 1024


class FakeCursor:
    """Async cursor over a mongomock cursor or a list"""

    def __init__(self, source: Iterable):
        self._source = source

    def sort(self, key, direction=1):
        self._source = self._source.sort(key, direction)
        return self

    def limit(self, count: int):
        self._source = self._source.limit(count)
        return self

    async def to_list(self, length: Optional[int] = None):
        documents = list(self._source)
        return documents if length is None else documents[:length]


class FakeCollection:
    """Async facade over a mongomock collection"""

    def __init__(self, backend: "FakeBackend", collection):
        self._backend = backend
        self._collection = collection

    def _check(self, method: str) -> None:
        self._backend.raise_if_failing(self._collection.name, method)

    async def insert_one(self, document, **kwargs):
        self._check("insert_one")
        return self._collection.insert_one(document, **kwargs)

    async def update_one(self, query, update, **kwargs):
        self._check("update_one")
        return self._collection.update_one(query, update, **kwargs)

    async def update_many(self, query, update, **kwargs):
        self._check("update_many")
        return self._collection.update_many(query, update, **kwargs)

    async def find_one_and_update(self, query, update, **kwargs):
        self._check("find_one_and_update")
        return self._collection.find_one_and_update(query, update, **kwargs)

    async def delete_many(self, query, **kwargs):
        self._check("delete_many")
        return self._collection.delete_many(query, **kwargs)

    async def count_documents(self, query, **kwargs):
        self._check("count_documents")
        return self._collection.count_documents(query, **kwargs)

    async def create_index(self, keys, **kwargs):
        self._check("create_index")
        return self._collection.create_index(keys, **kwargs)

    async def aggregate(self, pipeline, **kwargs):
        self._check("aggregate")
        return FakeCursor(list(self._collection.aggregate(pipeline, **kwargs)))

    def find(self, query=None, *args, **kwargs):
        self._check("find")
        return FakeCursor(self._collection.find(query or {}, *args, **kwargs))


class FakeDatabase:
    """Async facade over a mongomock database with scripted stats"""

    def __init__(self, backend: "FakeBackend", name: str):
        self._backend = backend
        self._db = backend.client[name]

    def __getitem__(self, name: str) -> FakeCollection:
        return FakeCollection(self._backend, self._db[name])

    async def command(self, name: str, value: Any = None, **kwargs):
        key = name if value is None else f"{name}:{value}"
        self._backend.raise_if_failing("$cmd", key)

        if name == "ping":
            return {"ok": 1.0}
        if name == "dbStats":
            data_size = sum(
                self._db[coll].count_documents({}) * self._backend.doc_size(coll)
                for coll in self._db.list_collection_names()
            )
            return {"db": self._db.name, "dataSize": data_size, "ok": 1.0}
        if name == "collStats":
            count = self._db[value].count_documents({})
            doc_size = self._backend.doc_size(value)
            return {
                "ns": f"{self._db.name}.{value}",
                "count": count,
                "size": count * doc_size,
                "avgObjSize": doc_size if count else 0,
                "ok": 1.0,
            }
        if name == "collMod":
            index = kwargs["index"]
            collection = self._db[value]
            info = collection.index_information().get(index["name"])
            if info is None:
                raise OperationFailure(f"cannot find index {index['name']} for ns {self._db.name}.{value}", code=27)
            collection.drop_index(index["name"])
            collection.create_index(info["key"], name=index["name"], expireAfterSeconds=index["expireAfterSeconds"])
            return {
                "expireAfterSeconds_old": info.get("expireAfterSeconds"),
                "expireAfterSeconds_new": index["expireAfterSeconds"],
                "ok": 1.0,
            }
        raise NotImplementedError(name)


class FakeAdmin:
    def __init__(self, backend: "FakeBackend"):
        self._backend = backend

    async def command(self, name: str):
        if not self._backend.reachable:
            raise ServerSelectionTimeoutError("No servers found yet")
        return {"ok": 1.0}


class FakeAsyncClient:
    def __init__(self, backend: "FakeBackend"):
        self._backend = backend
        self.admin = FakeAdmin(backend)
        self.closed = False

    def __getitem__(self, name: str) -> FakeDatabase:
        return FakeDatabase(self._backend, name)

    async def close(self):
        self.closed = True


class FakeBackend:
    """
    Shared in-memory server.

    Data survives reconnects. ``reachable`` controls the ping, ``fail()``
    makes a collection method or a command raise.
    """

    def __init__(self):
        self.client = mongomock.MongoClient()
        self.reachable = True
        self.connect_attempts = 0
        self.clients = []
        self._doc_sizes: Dict[str, int] = {}
        self._failures: Dict[Tuple[str, str], Exception] = {}

    def client_factory(self, uri: str, **kwargs) -> FakeAsyncClient:
        self.connect_attempts += 1
        client = FakeAsyncClient(self)
        self.clients.append(client)
        return client

    def set_doc_size(self, collection: str, size_bytes: int) -> None:
        self._doc_sizes[collection] = size_bytes

    def doc_size(self, collection: str) -> int:
        return self._doc_sizes.get(collection, DEFAULT_DOC_SIZE)

    def fail(self, target: str, method: str, error: Exception) -> None:
        self._failures[(target, method)] = error

    def raise_if_failing(self, target: str, method: str) -> None:
        error = self._failures.get((target, method))
        if error is not None:
            raise error

    def db(self, name: str = DATABASE):
        return self.client[name]


class FakeClock:
    """Monotonic clock driven by the test"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def now() -> datetime:
    """Fixed store clock (naive UTC)"""
    return NOW


@pytest.fixture
def local_now() -> datetime:
    """Fixed wall clock"""
    return LOCAL_NOW


@pytest.fixture
def clock() -> FakeClock:
    """Monotonic clock for reconnect backoff"""
    return FakeClock()


@pytest.fixture
def backend() -> FakeBackend:
    """In-memory store backend"""
    return FakeBackend()


@pytest.fixture
def mongo(backend):
    """Synchronous handle on the test database for seeding and assertions"""
    return backend.db()


@pytest.fixture
def store_settings() -> StoreSettings:
    """Store settings with a 1 MB budget"""
    return StoreSettings(
        uri="mongodb://analytics-test:27017",
        database=DATABASE,
        max_storage_mb=1.0,
        cleanup_threshold_percent=85.0,
    )


@pytest.fixture
def test_settings(store_settings) -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
        store=store_settings,
        retention=RetentionSettings(scheduler_enabled=False),
    )


@pytest.fixture
def manager(store_settings, backend) -> ConnectionManager:
    """Manager that has not connected yet"""
    return ConnectionManager(store_settings, client_factory=backend.client_factory)


@pytest_asyncio.fixture
async def connected(manager):
    """Connected manager"""
    assert await manager.connect()
    yield manager
    await manager.close()


@pytest.fixture
def unavailable() -> ConnectionManager:
    """Manager without a configured URI"""
    return ConnectionManager(StoreSettings(uri=None))


@pytest.fixture
def policy() -> RetentionPolicy:
    return RetentionPolicy()


@pytest.fixture
def monitor(connected) -> CapacityMonitor:
    return CapacityMonitor(connected)


@pytest.fixture
def engine(connected, monitor, policy) -> CleanupEngine:
    return CleanupEngine(connected, monitor, policy, clock=lambda: NOW)


@pytest.fixture
def writer(connected) -> AggregationWriter:
    return AggregationWriter(connected, clock=lambda: NOW, local_clock=lambda: LOCAL_NOW)


@pytest.fixture
def ingest(connected, writer) -> EventIngest:
    return EventIngest(connected, writer, clock=lambda: NOW, local_clock=lambda: LOCAL_NOW)


@pytest.fixture
def queries(connected) -> AnalyticsQueries:
    return AnalyticsQueries(connected, local_clock=lambda: LOCAL_NOW)


@pytest.fixture
def sample_order() -> Dict[str, Any]:
    """Order payload as produced by the order service"""
    return {
        "orderId": 501,
        "orderNumber": "CMD-2026-0501",
        "user": {"id": 3, "email": "claire@example.com", "firstName": "Claire", "city": "Bordeaux"},
        "orderDate": NOW,
        "deliveryDate": datetime(2026, 3, 21, 12, 0, 0),
        "deliveryHour": "12:00",
        "personNumber": 12,
        "status": "pending",
        "menuPrice": 240.0,
        "deliveryPrice": 10.0,
        "discountAmount": 24.0,
        "totalPrice": 226.0,
        "menus": [
            {"id": 7, "title": "Menu de Noel", "price": 20.0, "diet": "vegan", "theme": "noel"},
        ],
    }
