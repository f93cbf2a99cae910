"""
Store Connection Management

Owns the lifecycle of the async MongoDB client for the analytics store and
acts as the availability gate for every other component. The analytics
store is optional: a failed connection is logged, never raised, and
retried with exponential backoff on later ``ensure_connected()`` calls.
"""

import asyncio
import time
from typing import Any, Callable, Dict, Optional

import structlog
from pymongo import AsyncMongoClient
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.asynchronous.database import AsyncDatabase

from analytics_store.config import StoreSettings, get_settings
from analytics_store.store.categories import Category, get_spec

logger = structlog.get_logger(__name__)


class StoreUnavailableError(RuntimeError):
    """Raised when a store handle is requested while disconnected"""


class ConnectionManager:
    """
    Connection manager for the analytics store.

    Construct once at process start and pass to every component that needs
    the store. ``connect()`` and ``close()`` are both idempotent.

    Example:
        manager = ConnectionManager()
        await manager.connect()
        if manager.is_available():
            await manager.collection(Category.AUDIT_LOG).insert_one(doc)
    """

    def __init__(
        self,
        settings: Optional[StoreSettings] = None,
        client_factory: Callable[..., Any] = AsyncMongoClient,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or get_settings().store
        self._client_factory = client_factory
        self._clock = clock
        self._client: Optional[Any] = None
        self._db: Optional[AsyncDatabase] = None
        self._available = False
        self._failures = 0
        self._next_attempt_at = 0.0
        self._lock = asyncio.Lock()

    def is_available(self) -> bool:
        """Whether the store is connected and usable"""
        return self._available

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    @property
    def next_attempt_at(self) -> float:
        return self._next_attempt_at

    async def connect(self) -> bool:
        """
        Connect to the analytics store.

        Pings the server so an unreachable store is detected here rather
        than on the first write. Failures are logged and leave the store
        unavailable until a later reconnect attempt.

        Returns:
            bool: True if the store is available afterwards
        """
        if self._available:
            return True

        if not self.settings.uri:
            logger.warning("MongoDB URI not configured, analytics disabled")
            return False

        async with self._lock:
            if self._available:
                return True

            client = None
            try:
                client = self._client_factory(
                    self.settings.uri,
                    serverSelectionTimeoutMS=self.settings.server_selection_timeout_ms,
                )
                await client.admin.command("ping")
            except Exception as e:
                delay = self._record_failure()
                if client is not None:
                    await self._close_client(client)
                logger.warning(
                    "Analytics store connection failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    attempt=self._failures,
                    retry_in_seconds=delay,
                )
                return False

            self._client = client
            self._db = client[self.settings.database]
            self._available = True
            self._failures = 0
            self._next_attempt_at = 0.0
            logger.info("Analytics store connection established", database=self.settings.database)
            return True

    async def ensure_connected(self) -> bool:
        """
        Reconnect if the store is down and the backoff window has elapsed.

        Returns:
            bool: True if the store is available
        """
        if self._available:
            return True
        if not self.settings.uri:
            return False
        if self._clock() < self._next_attempt_at:
            logger.debug(
                "Reconnect deferred",
                seconds_left=round(self._next_attempt_at - self._clock(), 1),
            )
            return False
        return await self.connect()

    async def close(self) -> None:
        """Close the client. Safe to call repeatedly."""
        client = self._client
        self._client = None
        self._db = None
        self._available = False

        if client is not None:
            await self._close_client(client)
            logger.info("Analytics store connection closed")

    @property
    def database(self) -> AsyncDatabase:
        """
        Get the analytics database.

        Raises:
            StoreUnavailableError: If the store is not connected
        """
        if not self._available or self._db is None:
            raise StoreUnavailableError("Analytics store not available. Call connect() first.")
        return self._db

    def collection(self, category: Category) -> AsyncCollection:
        """Get the collection backing a record category"""
        return self.database[get_spec(category).collection]

    async def health(self) -> Dict[str, Any]:
        """
        Check store health.

        Returns:
            dict: Health status with latency information
        """
        if not self._available:
            return {
                "status": "unavailable",
                "configured": bool(self.settings.uri),
                "consecutive_failures": self._failures,
            }

        try:
            start = time.perf_counter()
            await self.database.command("ping")
            latency_ms = (time.perf_counter() - start) * 1000
            return {
                "status": "healthy",
                "latency_ms": round(latency_ms, 2),
                "database": self.settings.database,
            }
        except Exception as e:
            return {
                "status": "unhealthy",
                "error": str(e),
            }

    def _record_failure(self) -> float:
        self._failures += 1
        delay = min(
            self.settings.reconnect_initial_delay_seconds * (2 ** (self._failures - 1)),
            self.settings.reconnect_max_delay_seconds,
        )
        self._next_attempt_at = self._clock() + delay
        return delay

    async def _close_client(self, client: Any) -> None:
        try:
            await client.close()
        except Exception as e:
            logger.debug("Error while closing store client", error=str(e))
