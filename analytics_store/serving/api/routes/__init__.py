"""
API Routes Module
"""
from .health import router as health_router
from .storage import router as storage_router
from .analytics import router as analytics_router

__all__ = [
    "health_router",
    "storage_router",
    "analytics_router",
]
