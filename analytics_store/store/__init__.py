"""
Store Module
"""
from .categories import CATEGORY_SPECS, Category, CategorySpec, PeriodType, get_spec
from .connection import ConnectionManager, StoreUnavailableError

__all__ = [
    "CATEGORY_SPECS",
    "Category",
    "CategorySpec",
    "PeriodType",
    "get_spec",
    "ConnectionManager",
    "StoreUnavailableError",
]
