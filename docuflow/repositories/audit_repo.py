"""Audit Repository - Data access for audit events"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from .mongo_client import get_collection, AUDIT_EVENTS_COLLECTION
from ..domain.models import AuditEvent
from ..domain.errors import RepositoryUnavailableError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AuditRepository:
    """Repository for audit event operations (append-only)"""

    def __init__(self, collection: Optional[Collection] = None):
        self._audit_events: Collection = (
            collection if collection is not None else get_collection(AUDIT_EVENTS_COLLECTION)
        )

    def create_event(self, event: AuditEvent) -> AuditEvent:
        """Create an audit event (append-only)"""
        # Keep datetimes native so timestamp sorting works in MongoDB
        doc = event.model_dump()
        doc["_id"] = event.audit_event_id

        try:
            self._audit_events.insert_one(doc)
        except PyMongoError as e:
            raise RepositoryUnavailableError(f"Failed to write audit event: {e}")

        logger.info(
            f"Created audit event: {event.action}",
            extra={
                "submission_id": event.resource_id,
                "actor_id": event.actor_id,
                "status": event.status.value,
            }
        )
        return event

    def get_events_for_submission(
        self,
        submission_id: str,
        actions: Optional[List[str]] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[AuditEvent]:
        """Get audit events for a submission, newest first"""
        query: Dict[str, Any] = {"resource_id": submission_id}

        if actions:
            query["action"] = {"$in": actions}

        return self._find(query, skip=skip, limit=limit)

    def _find(self, query: Dict[str, Any], skip: int = 0, limit: int = 0) -> List[AuditEvent]:
        try:
            cursor = self._audit_events.find(query).sort("timestamp", DESCENDING).skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            docs = list(cursor)
        except PyMongoError as e:
            raise RepositoryUnavailableError(f"Failed to read audit events: {e}")

        events = []
        for doc in docs:
            doc.pop("_id", None)
            events.append(AuditEvent.model_validate(doc))
        return events
