"""
Request dependencies for the admin API.
"""

from fastapi import Request

from analytics_store.service import AnalyticsStore


def get_store(request: Request) -> AnalyticsStore:
    """The AnalyticsStore attached to the application"""
    return request.app.state.store
