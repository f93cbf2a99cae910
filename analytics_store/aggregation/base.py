"""
Shared plumbing for components that write to the analytics store.
"""

from datetime import datetime
from typing import Any, Callable, Dict

import structlog

from analytics_store.aggregation.periods import utc_now
from analytics_store.metrics import WRITE_FAILURES
from analytics_store.results import OpResult
from analytics_store.store.connection import ConnectionManager

logger = structlog.get_logger(__name__)


class StoreWriter:
    """
    Base class for fire-and-forget writers.

    ``clock`` stamps stored documents (naive UTC); ``local_clock`` is the
    wall-clock time that period keys and hours of day are derived from.
    """

    def __init__(
        self,
        manager: ConnectionManager,
        clock: Callable[[], datetime] = utc_now,
        local_clock: Callable[[], datetime] = datetime.now,
    ):
        self.manager = manager
        self._clock = clock
        self._local_clock = local_clock

    def _failed(self, operation: str, error: Exception, **context: Any) -> OpResult:
        WRITE_FAILURES.labels(operation=operation).inc()
        logger.error(
            "Analytics write failed",
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
            **context,
        )
        return OpResult.failed(error)


def with_insert_defaults(update: Dict[str, Dict[str, Any]], defaults: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Add ``$setOnInsert`` defaults that no other operator of ``update`` touches.

    A default for ``ordersByDiet`` would conflict with an increment of
    ``ordersByDiet.vegan`` in the same update, so it is left out.
    """
    touched = [path for operator, fields in update.items() if operator != "$setOnInsert" for path in fields]

    def conflicts(key: str) -> bool:
        return any(path == key or path.startswith(key + ".") or key.startswith(path + ".") for path in touched)

    on_insert = {key: value for key, value in defaults.items() if not conflicts(key)}
    if on_insert:
        update["$setOnInsert"] = on_insert
    return update
