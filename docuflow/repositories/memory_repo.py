"""In-memory repositories for local runs and tests

Each store guards its state with a single lock so compare-and-swap writes stay
atomic under concurrent callers, matching the MongoDB implementations.
"""
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..domain.models import Submission, WorkflowStep, AuditEvent, NotificationOutbox
from ..domain.enums import SubmissionStatus, NotificationStatus
from ..domain.errors import (
    SubmissionNotFoundError, ConcurrentModificationError, InvalidTransitionError,
    ConflictError, NotFoundError
)
from ..utils.logger import get_logger
from ..utils.time import utc_now
from .submission_repo import SubmissionQuery, build_commit_fields, check_draft_updates

logger = get_logger(__name__)


class InMemorySubmissionRepository:
    """Thread-safe in-memory implementation of SubmissionRepository"""

    def __init__(self):
        self._lock = threading.Lock()
        self._submissions: Dict[str, Submission] = {}

    def load(self, submission_id: str) -> Submission:
        with self._lock:
            stored = self._submissions.get(submission_id)
            if stored is None:
                raise SubmissionNotFoundError(
                    f"Submission {submission_id} not found",
                    details={"submission_id": submission_id}
                )
            return stored.model_copy(deep=True)

    def commit(
        self,
        submission_id: str,
        expected_version: int,
        new_status: SubmissionStatus,
        new_step: WorkflowStep
    ) -> Submission:
        with self._lock:
            stored = self._get_for_write(submission_id, expected_version)
            fields = build_commit_fields(new_status, new_step, utc_now())
            fields["status"] = new_status
            fields["version"] = stored.version + 1
            fields["workflow_history"] = [*stored.workflow_history, new_step]
            updated = stored.model_copy(update=fields, deep=True)
            self._submissions[submission_id] = updated

        logger.info(
            f"Committed submission {submission_id}: {new_status.value}",
            extra={"submission_id": submission_id, "status": new_status.value, "version": updated.version}
        )
        return updated.model_copy(deep=True)

    def create(self, submission: Submission) -> Submission:
        with self._lock:
            if submission.submission_id in self._submissions:
                raise ConflictError(
                    f"Submission {submission.submission_id} already exists",
                    details={"submission_id": submission.submission_id}
                )
            self._submissions[submission.submission_id] = submission.model_copy(deep=True)

        logger.info(
            f"Created submission: {submission.submission_id}",
            extra={"submission_id": submission.submission_id, "department": submission.department}
        )
        return submission

    def update_draft(
        self,
        submission_id: str,
        expected_version: int,
        updates: Dict[str, Any]
    ) -> Submission:
        check_draft_updates(updates)
        with self._lock:
            stored = self._get_for_write(submission_id, expected_version)
            if stored.status != SubmissionStatus.DRAFT:
                raise InvalidTransitionError(
                    "Only Draft submissions can be edited",
                    details={"current_status": stored.status.value}
                )
            fields = dict(updates)
            fields["updated_at"] = utc_now()
            fields["version"] = stored.version + 1
            # Revalidate so enum and length constraints apply as in the Mongo path
            updated = Submission.model_validate({**stored.model_dump(), **fields})
            self._submissions[submission_id] = updated

        logger.info(f"Updated draft: {submission_id}", extra={"submission_id": submission_id})
        return updated.model_copy(deep=True)

    def list_submissions(self, query: SubmissionQuery) -> List[Submission]:
        with self._lock:
            found = [s for s in self._submissions.values() if query.matches(s)]

        sort_key = query.effective_sort_by
        found.sort(
            key=lambda s: _sort_value(getattr(s, sort_key)),
            reverse=query.sort_order == "desc"
        )
        page = found[query.skip:query.skip + query.limit]
        return [s.model_copy(deep=True) for s in page]

    def count_submissions(self, query: SubmissionQuery) -> int:
        with self._lock:
            return sum(1 for s in self._submissions.values() if query.matches(s))

    def _get_for_write(self, submission_id: str, expected_version: int) -> Submission:
        # Caller holds self._lock
        stored = self._submissions.get(submission_id)
        if stored is None:
            raise SubmissionNotFoundError(
                f"Submission {submission_id} not found",
                details={"submission_id": submission_id}
            )
        if stored.version != expected_version:
            raise ConcurrentModificationError(
                f"Submission {submission_id} was modified. Please refresh and try again.",
                details={"expected_version": expected_version, "current_version": stored.version}
            )
        return stored


def _sort_value(value: Any) -> Any:
    if isinstance(value, SubmissionStatus):
        return value.value
    return value


class InMemoryAuditRepository:
    """Append-only in-memory audit store"""

    def __init__(self):
        self._lock = threading.Lock()
        self._events: List[AuditEvent] = []

    def create_event(self, event: AuditEvent) -> AuditEvent:
        with self._lock:
            self._events.append(event)
        return event

    def get_events_for_submission(
        self,
        submission_id: str,
        actions: Optional[List[str]] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[AuditEvent]:
        with self._lock:
            events = [
                e for e in self._events
                if e.resource_id == submission_id and (not actions or e.action in actions)
            ]
        events.reverse()
        return events[skip:skip + limit]


class InMemoryNotificationRepository:
    """In-memory notification outbox with the same lease semantics as MongoDB"""

    def __init__(self):
        self._lock = threading.Lock()
        self._outbox: Dict[str, NotificationOutbox] = {}

    def create_notification(self, notification: NotificationOutbox) -> NotificationOutbox:
        with self._lock:
            self._outbox[notification.notification_id] = notification
        return notification

    def get_notification(self, notification_id: str) -> Optional[NotificationOutbox]:
        with self._lock:
            return self._outbox.get(notification_id)

    def get_pending_notifications(self, limit: int = 100) -> List[NotificationOutbox]:
        now = utc_now()
        with self._lock:
            ready = [
                n for n in self._outbox.values()
                if n.status == NotificationStatus.PENDING
                and (n.next_retry_at is None or n.next_retry_at <= now)
                and (n.locked_until is None or n.locked_until <= now)
            ]
        ready.sort(key=lambda n: n.created_at)
        return ready[:limit]

    def acquire_lock(self, notification_id: str, lock_by: str, lock_duration_seconds: int = 60) -> bool:
        now = utc_now()
        with self._lock:
            current = self._outbox.get(notification_id)
            if current is None or current.status != NotificationStatus.PENDING:
                return False
            if current.locked_until is not None and current.locked_until > now:
                return False
            self._outbox[notification_id] = current.model_copy(update={
                "locked_until": now + timedelta(seconds=lock_duration_seconds),
                "locked_by": lock_by,
            })
            return True

    def release_lock(self, notification_id: str, lock_by: Optional[str] = None) -> bool:
        with self._lock:
            current = self._outbox.get(notification_id)
            if current is None or (lock_by and current.locked_by != lock_by):
                return False
            self._outbox[notification_id] = current.model_copy(
                update={"locked_until": None, "locked_by": None}
            )
            return True

    def mark_sent(self, notification_id: str) -> NotificationOutbox:
        return self._update(notification_id, {
            "status": NotificationStatus.SENT,
            "sent_at": utc_now(),
            "locked_until": None,
            "locked_by": None,
        })

    def mark_failed(
        self,
        notification_id: str,
        error: str,
        retry_count: int,
        next_retry_at: Optional[datetime]
    ) -> NotificationOutbox:
        return self._update(notification_id, {
            "status": NotificationStatus.PENDING if next_retry_at else NotificationStatus.FAILED,
            "retry_count": retry_count,
            "last_error": error,
            "next_retry_at": next_retry_at,
            "locked_until": None,
            "locked_by": None,
        })

    def get_notifications_for_submission(self, submission_id: str) -> List[NotificationOutbox]:
        with self._lock:
            found = [n for n in self._outbox.values() if n.submission_id == submission_id]
        found.sort(key=lambda n: n.created_at)
        return found

    def count_by_status(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        with self._lock:
            for n in self._outbox.values():
                counts[n.status.value] = counts.get(n.status.value, 0) + 1
        return counts

    def _update(self, notification_id: str, fields: Dict[str, Any]) -> NotificationOutbox:
        with self._lock:
            current = self._outbox.get(notification_id)
            if current is None:
                raise NotFoundError(f"Notification {notification_id} not found")
            updated = current.model_copy(update=fields)
            self._outbox[notification_id] = updated
            return updated
