"""
Schema Registry

Declares the TTL and uniqueness indexes of every category. Index creation
is best-effort: a TTL index whose expiry no longer matches the retention
policy is updated in place, other conflicts are logged and skipped.
"""

from typing import Optional

import structlog
from pymongo.errors import OperationFailure, PyMongoError

from analytics_store.results import OpResult
from analytics_store.retention.policy import RetentionPolicy
from analytics_store.store.categories import CATEGORY_SPECS, Category, CategorySpec
from analytics_store.store.connection import ConnectionManager

logger = structlog.get_logger(__name__)


class SchemaRegistry:
    """Creates the structural indexes of the analytics store"""

    def __init__(self, manager: ConnectionManager, policy: Optional[RetentionPolicy] = None):
        self.manager = manager
        self.policy = policy or RetentionPolicy()

    async def ensure_indexes(self) -> OpResult:
        """
        Create TTL, uniqueness and read-path indexes for all categories.

        Returns:
            OpResult: value holds ``created``, ``updated``, ``conflicts`` and
            ``failed`` counts
        """
        if not self.manager.is_available():
            return OpResult.skipped()

        counts = {"created": 0, "updated": 0, "conflicts": 0, "failed": 0}
        for category, spec in CATEGORY_SPECS.items():
            await self._ensure_category(category, spec, counts)

        logger.info("Index setup complete", **counts)
        return OpResult.ok(counts)

    async def _ensure_category(self, category: Category, spec: CategorySpec, counts: dict) -> None:
        collection = self.manager.collection(category)

        declarations = [
            (
                [(spec.time_field, 1)],
                {"name": spec.ttl_index_name, "expireAfterSeconds": self.policy.ttl_seconds(category)},
            )
        ]
        for index in spec.indexes:
            options = {"name": index.index_name}
            if index.unique:
                options["unique"] = True
            declarations.append((index.keys, options))

        for keys, options in declarations:
            try:
                await collection.create_index(keys, **options)
                counts["created"] += 1
            except OperationFailure as e:
                if "expireAfterSeconds" in options and await self._update_ttl(spec, options):
                    counts["updated"] += 1
                    continue
                # Same keys or name with different options
                counts["conflicts"] += 1
                logger.warning(
                    "Index conflict, keeping existing index",
                    collection=spec.collection,
                    index=options["name"],
                    error=str(e),
                )
            except PyMongoError as e:
                counts["failed"] += 1
                logger.error(
                    "Index creation failed",
                    collection=spec.collection,
                    index=options["name"],
                    error=str(e),
                )

    async def _update_ttl(self, spec: CategorySpec, options: dict) -> bool:
        """Bring an existing TTL index in line with the retention policy"""
        try:
            await self.manager.database.command(
                "collMod",
                spec.collection,
                index={"name": options["name"], "expireAfterSeconds": options["expireAfterSeconds"]},
            )
        except PyMongoError as e:
            logger.warning(
                "TTL update failed",
                collection=spec.collection,
                index=options["name"],
                error=str(e),
            )
            return False

        logger.info(
            "TTL index updated",
            collection=spec.collection,
            index=options["name"],
            expire_after_seconds=options["expireAfterSeconds"],
        )
        return True
