"""
Event Ingest

Append-only writes for activity logs, search telemetry and audit logs.
Duplicates are acceptable: there is no dedup key, at-most-once delivery is
enough. Every method returns an OpResult and never raises.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

import structlog
from pymongo.errors import PyMongoError

from analytics_store.aggregation.base import StoreWriter
from analytics_store.aggregation.models import ActivityAction, AuditAction, TargetType
from analytics_store.aggregation.writer import AggregationWriter
from analytics_store.results import OpResult, OpStatus
from analytics_store.store.categories import Category
from analytics_store.store.connection import ConnectionManager

logger = structlog.get_logger(__name__)

CONVERSION_WINDOW = timedelta(hours=1)


def normalize_query(query: str) -> str:
    """Lowercase, trim and collapse whitespace so equal searches group together"""
    return " ".join(query.lower().split())


def changed_fields(before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> List[str]:
    """Keys whose values differ between two states"""
    before = before or {}
    after = after or {}
    keys = list(before) + [k for k in after if k not in before]
    return [k for k in keys if before.get(k) != after.get(k) or (k in before) != (k in after)]


def _compact(document: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in document.items() if v is not None}


class EventIngest(StoreWriter):
    """
    Append-only event recorder.

    Example:
        ingest = EventIngest(manager, writer)
        await ingest.track_menu_view(user_id=3, menu_id=7, title="Menu de Noel", session_id="s-1")
        await ingest.track_search("Vegan  Menus", results_count=4, session_id="s-1")
    """

    def __init__(self, manager: ConnectionManager, writer: AggregationWriter, **clocks):
        super().__init__(manager, **clocks)
        self.writer = writer

    async def _append(self, operation: str, category: Category, document: Dict[str, Any]) -> OpResult:
        try:
            result = await self.manager.collection(category).insert_one(document)
        except PyMongoError as e:
            return self._failed(operation, e)
        return OpResult.ok(str(result.inserted_id))

    async def log_activity(
        self,
        session_id: str,
        action: Union[ActivityAction, str],
        target_type: Optional[Union[TargetType, str]] = None,
        user_id: Optional[int] = None,
        target_id: Optional[int] = None,
        target_name: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None,
        search_query: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> OpResult:
        """Append a user action to the activity log"""
        if not self.manager.is_available():
            return OpResult.skipped()

        try:
            action = ActivityAction(action)
            target_type = TargetType(target_type) if target_type is not None else None
        except ValueError as e:
            return self._failed("log_activity", e)

        document = _compact({
            "userId": user_id,
            "sessionId": session_id,
            "action": action.value,
            "targetType": target_type.value if target_type else None,
            "targetId": target_id,
            "targetName": target_name,
            "filters": filters,
            "searchQuery": search_query,
            "ipAddress": ip_address,
            "userAgent": user_agent,
            "timestamp": timestamp or self._clock(),
        })
        return await self._append("log_activity", Category.USER_ACTIVITY_LOG, document)

    async def track_menu_view(
        self,
        user_id: Optional[int],
        menu_id: int,
        title: str,
        session_id: str,
    ) -> OpResult:
        """Log a menu view and count it in the menu's daily counters"""
        if not self.manager.is_available():
            return OpResult.skipped()

        logged = await self.log_activity(
            session_id=session_id,
            action=ActivityAction.VIEW_MENU,
            target_type=TargetType.MENU,
            user_id=user_id,
            target_id=menu_id,
            target_name=title,
        )
        counted = await self.writer.increment_menu_views(menu_id, title)

        for result in (logged, counted):
            if result.status != OpStatus.OK:
                return result
        return OpResult.ok()

    async def track_search(
        self,
        query: str,
        results_count: int,
        filters: Optional[Dict[str, Any]] = None,
        user_id: Optional[int] = None,
        session_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> OpResult:
        """Append a search to the search telemetry"""
        if not self.manager.is_available():
            return OpResult.skipped()
        if not isinstance(query, str):
            return self._failed("track_search", TypeError("query must be a string"))
        if isinstance(results_count, bool) or not isinstance(results_count, int) or results_count < 0:
            return self._failed("track_search", ValueError("results_count must be a non-negative integer"))

        document = {
            "query": query,
            "normalizedQuery": normalize_query(query),
            "resultsCount": results_count,
            "clickedResults": [],
            "filters": filters or {},
            "sessionId": session_id or "",
            "convertedToOrder": False,
            "timestamp": timestamp or self._clock(),
        }
        if user_id is not None:
            document["userId"] = user_id
        return await self._append("track_search", Category.SEARCH_ANALYTICS, document)

    async def track_search_click(self, session_id: str, query: str, menu_id: int) -> OpResult:
        """Record that a search result was clicked"""
        if not self.manager.is_available():
            return OpResult.skipped()
        if not isinstance(query, str):
            return self._failed("track_search_click", TypeError("query must be a string"))

        try:
            result = await self.manager.collection(Category.SEARCH_ANALYTICS).update_one(
                {"sessionId": session_id, "normalizedQuery": normalize_query(query)},
                {"$addToSet": {"clickedResults": menu_id}},
            )
        except PyMongoError as e:
            return self._failed("track_search_click", e)
        return OpResult.ok(result.matched_count)

    async def mark_search_converted(self, session_id: str) -> OpResult:
        """Flag the session's searches of the last hour as converted to an order"""
        if not self.manager.is_available():
            return OpResult.skipped()

        since = self._clock() - CONVERSION_WINDOW
        try:
            result = await self.manager.collection(Category.SEARCH_ANALYTICS).update_many(
                {"sessionId": session_id, "timestamp": {"$gte": since}},
                {"$set": {"convertedToOrder": True}},
            )
        except PyMongoError as e:
            return self._failed("mark_search_converted", e)
        return OpResult.ok(result.modified_count)

    async def log_audit(
        self,
        entity_type: str,
        entity_id: Optional[int],
        actor_id: Optional[int],
        action: Union[AuditAction, str],
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
        actor_email: Optional[str] = None,
        actor_role: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> OpResult:
        """Append a data change to the audit log, with the list of changed fields"""
        if not self.manager.is_available():
            return OpResult.skipped()

        try:
            action = AuditAction(action)
        except ValueError as e:
            return self._failed("log_audit", e)
        for state in (before, after):
            if state is not None and not isinstance(state, dict):
                return self._failed("log_audit", TypeError("audit states must be mappings"))

        document = _compact({
            "entityType": entity_type,
            "entityId": entity_id,
            "actorId": actor_id,
            "actorEmail": actor_email,
            "actorRole": actor_role,
            "action": action.value,
            "previousState": before,
            "newState": after,
            "changedFields": changed_fields(before, after) if (before or after) else None,
            "ipAddress": ip_address,
            "userAgent": user_agent,
            "timestamp": timestamp or self._clock(),
        })
        return await self._append("log_audit", Category.AUDIT_LOG, document)
