"""
Retention Module
"""
from .engine import CategoryCleanup, CleanupEngine, CleanupReport, CleanupState
from .monitor import CapacityMonitor, CategoryStats, StorageStats
from .policy import CLEANUP_PRIORITY, RetentionPolicy
from .scheduler import MaintenanceScheduler

__all__ = [
    "CategoryCleanup",
    "CleanupEngine",
    "CleanupReport",
    "CleanupState",
    "CapacityMonitor",
    "CategoryStats",
    "StorageStats",
    "CLEANUP_PRIORITY",
    "RetentionPolicy",
    "MaintenanceScheduler",
]
