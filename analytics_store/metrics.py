"""
Prometheus Metrics

Capacity and retention metrics exported by the analytics store.
"""

from prometheus_client import Counter, Gauge


STORAGE_USED_PERCENT = Gauge(
    "analytics_store_storage_used_percent",
    "Analytics store usage as a percentage of the configured budget",
)

STORAGE_SIZE_MB = Gauge(
    "analytics_store_storage_size_mb",
    "Analytics store data size in MB",
)

CLEANUP_RUNS = Counter(
    "analytics_store_cleanup_runs_total",
    "Cleanup passes by mode and outcome",
    ["mode", "outcome"],
)

DOCUMENTS_DELETED = Counter(
    "analytics_store_documents_deleted_total",
    "Documents deleted by the retention engine",
    ["category", "mode"],
)

WRITE_FAILURES = Counter(
    "analytics_store_write_failures_total",
    "Failed analytics writes",
    ["operation"],
)
