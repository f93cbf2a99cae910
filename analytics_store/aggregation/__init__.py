"""
Aggregation and Ingest Module
"""
from .counters import CounterMap
from .ingest import EventIngest, normalize_query
from .periods import period_key
from .queries import AnalyticsQueries
from .writer import AggregationWriter

__all__ = [
    "CounterMap",
    "EventIngest",
    "normalize_query",
    "period_key",
    "AnalyticsQueries",
    "AggregationWriter",
]
