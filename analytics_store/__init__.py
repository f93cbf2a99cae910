"""
Analytics Store

Secondary MongoDB store for counters, activity logs, audits and search
telemetry, kept under a fixed storage budget by a retention engine.
"""
from .results import OpResult, OpStatus
from .service import AnalyticsStore
from .store import Category, ConnectionManager

__version__ = "1.0.0"

__all__ = [
    "AnalyticsStore",
    "Category",
    "ConnectionManager",
    "OpResult",
    "OpStatus",
]
