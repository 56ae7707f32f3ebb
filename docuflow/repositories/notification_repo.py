"""Notification Repository - Data access for notification outbox

Uses atomic find-and-modify leases so that several dispatcher processes never
deliver the same notification twice.
"""
from typing import Dict, List, Optional
from datetime import datetime, timedelta
from pymongo.collection import Collection
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from .mongo_client import get_collection, NOTIFICATION_OUTBOX_COLLECTION
from ..domain.models import NotificationOutbox
from ..domain.enums import NotificationStatus
from ..domain.errors import NotFoundError, RepositoryUnavailableError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class NotificationRepository:
    """Repository for notification outbox operations"""

    def __init__(self, collection: Optional[Collection] = None):
        self._outbox: Collection = (
            collection if collection is not None else get_collection(NOTIFICATION_OUTBOX_COLLECTION)
        )

    def create_notification(self, notification: NotificationOutbox) -> NotificationOutbox:
        """Create a notification in outbox"""
        doc = notification.model_dump()
        doc["_id"] = notification.notification_id

        try:
            self._outbox.insert_one(doc)
        except PyMongoError as e:
            raise RepositoryUnavailableError(f"Failed to enqueue notification: {e}")

        logger.info(
            f"Queued notification for status {notification.new_status.value}",
            extra={
                "notification_id": notification.notification_id,
                "submission_id": notification.submission_id,
            }
        )
        return notification

    def get_notification(self, notification_id: str) -> Optional[NotificationOutbox]:
        """Get notification by ID"""
        doc = self._outbox.find_one({"notification_id": notification_id})
        if doc:
            doc.pop("_id", None)
            return NotificationOutbox.model_validate(doc)
        return None

    def get_pending_notifications(self, limit: int = 100) -> List[NotificationOutbox]:
        """
        Get pending notifications ready for sending.

        Only returns notifications that are PENDING, not locked (or the lock
        expired) and due for their next attempt.
        """
        now = utc_now()

        try:
            cursor = self._outbox.find({
                "status": NotificationStatus.PENDING.value,
                "$and": [
                    {"$or": [
                        {"next_retry_at": {"$lte": now}},
                        {"next_retry_at": None}
                    ]},
                    {"$or": [
                        {"locked_until": {"$lte": now}},
                        {"locked_until": None}
                    ]}
                ]
            }).sort("created_at", ASCENDING).limit(limit)

            notifications = []
            for doc in cursor:
                doc.pop("_id", None)
                notifications.append(NotificationOutbox.model_validate(doc))
            return notifications

        except PyMongoError as e:
            logger.error(f"Database error fetching pending notifications: {e}")
            return []

    def acquire_lock(
        self,
        notification_id: str,
        lock_by: str,
        lock_duration_seconds: int = 60
    ) -> bool:
        """
        Try to take the delivery lease on a notification.

        Returns:
            True if lock acquired, False otherwise
        """
        now = utc_now()
        lock_until = now + timedelta(seconds=lock_duration_seconds)

        try:
            result = self._outbox.find_one_and_update(
                {
                    "notification_id": notification_id,
                    "status": NotificationStatus.PENDING.value,
                    "$or": [
                        {"locked_until": {"$lte": now}},
                        {"locked_until": None}
                    ]
                },
                {"$set": {"locked_until": lock_until, "locked_by": lock_by}},
                return_document=ReturnDocument.BEFORE
            )
        except PyMongoError as e:
            logger.error(
                f"Database error acquiring lock on notification {notification_id}: {e}",
                extra={"notification_id": notification_id}
            )
            return False

        if result:
            logger.debug(
                f"Lock acquired on notification {notification_id}",
                extra={"notification_id": notification_id}
            )
            return True
        return False

    def release_lock(self, notification_id: str, lock_by: Optional[str] = None) -> bool:
        """Release the lease, only if held by lock_by when given"""
        query: Dict[str, str] = {"notification_id": notification_id}
        if lock_by:
            query["locked_by"] = lock_by

        try:
            result = self._outbox.update_one(
                query,
                {"$set": {"locked_until": None, "locked_by": None}}
            )
        except PyMongoError as e:
            logger.error(
                f"Database error releasing lock on notification {notification_id}: {e}",
                extra={"notification_id": notification_id}
            )
            return False
        return result.modified_count > 0

    def mark_sent(self, notification_id: str) -> NotificationOutbox:
        """Mark notification as sent"""
        result = self._outbox.find_one_and_update(
            {"notification_id": notification_id},
            {
                "$set": {
                    "status": NotificationStatus.SENT.value,
                    "sent_at": utc_now(),
                    "locked_until": None,
                    "locked_by": None
                }
            },
            return_document=ReturnDocument.AFTER
        )

        if result is None:
            raise NotFoundError(f"Notification {notification_id} not found")

        result.pop("_id", None)
        logger.info(f"Notification sent: {notification_id}", extra={"notification_id": notification_id})
        return NotificationOutbox.model_validate(result)

    def mark_failed(
        self,
        notification_id: str,
        error: str,
        retry_count: int,
        next_retry_at: Optional[datetime]
    ) -> NotificationOutbox:
        """
        Record a failed delivery attempt.

        A None next_retry_at means the retry budget is exhausted and the
        notification is parked as FAILED.
        """
        new_status = NotificationStatus.PENDING if next_retry_at else NotificationStatus.FAILED

        result = self._outbox.find_one_and_update(
            {"notification_id": notification_id},
            {
                "$set": {
                    "status": new_status.value,
                    "retry_count": retry_count,
                    "last_error": error,
                    "next_retry_at": next_retry_at,
                    "locked_until": None,
                    "locked_by": None
                }
            },
            return_document=ReturnDocument.AFTER
        )

        if result is None:
            raise NotFoundError(f"Notification {notification_id} not found")

        result.pop("_id", None)
        logger.warning(
            f"Notification delivery failed: {notification_id}",
            extra={"notification_id": notification_id, "status": new_status.value}
        )
        return NotificationOutbox.model_validate(result)

    def get_notifications_for_submission(self, submission_id: str) -> List[NotificationOutbox]:
        """Get all notifications for a submission"""
        cursor = self._outbox.find({"submission_id": submission_id}).sort("created_at", ASCENDING)

        notifications = []
        for doc in cursor:
            doc.pop("_id", None)
            notifications.append(NotificationOutbox.model_validate(doc))
        return notifications

    def count_by_status(self) -> Dict[str, int]:
        """Count notifications by status"""
        pipeline = [
            {"$group": {"_id": "$status", "count": {"$sum": 1}}}
        ]
        return {doc["_id"]: doc["count"] for doc in self._outbox.aggregate(pipeline)}
