"""Notification Service - Outbox producer and delivery

Transitions enqueue one outbox document per status change. The outbox
dispatcher later hands each document to a transport: a webhook when
configured, otherwise the application log.
"""
from typing import Any, Dict, List, Optional, Protocol
import httpx

from ..domain.models import NotificationOutbox, Submission, TransitionEvent
from ..domain.enums import SubmissionStatus, Role
from ..config.settings import settings
from ..utils.idgen import generate_notification_id
from ..utils.time import utc_now, add_seconds, backoff_delay_seconds
from ..utils.logger import get_logger

logger = get_logger(__name__)


STATUS_TITLES: Dict[SubmissionStatus, str] = {
    SubmissionStatus.SUBMITTED: "New Form Submitted",
    SubmissionStatus.UNDER_VERIFICATION: "Form Ready for Verification",
    SubmissionStatus.VERIFIED: "Form Verified - Ready for Approval",
    SubmissionStatus.APPROVED: "Form Approved",
    SubmissionStatus.REJECTED: "Form Rejected",
}

STATUS_MESSAGES: Dict[SubmissionStatus, str] = {
    SubmissionStatus.SUBMITTED: 'Form "{title}" has been submitted and is ready for verification.',
    SubmissionStatus.UNDER_VERIFICATION: 'Form "{title}" is now under verification and requires your attention.',
    SubmissionStatus.VERIFIED: 'Form "{title}" has been verified and is ready for final approval.',
    SubmissionStatus.APPROVED: 'Form "{title}" has been approved and the workflow is complete.',
    SubmissionStatus.REJECTED: 'Form "{title}" has been rejected. Please review the comments.',
}

# Who should hear about a status; recipients are resolved outside this service
STATUS_RECIPIENT_ROLES: Dict[SubmissionStatus, List[Role]] = {
    SubmissionStatus.SUBMITTED: [Role.SUPERVISOR],
    SubmissionStatus.UNDER_VERIFICATION: [Role.SUPERVISOR],
    SubmissionStatus.VERIFIED: [Role.ADMIN, Role.AUDITOR],
    SubmissionStatus.APPROVED: [],
    SubmissionStatus.REJECTED: [],
}


def notification_title(status: SubmissionStatus) -> str:
    return STATUS_TITLES.get(status, f"Form Status: {status.value}")


def notification_message(title: str, status: SubmissionStatus) -> str:
    template = STATUS_MESSAGES.get(status)
    if template is None:
        return f'Form "{title}" status updated to {status.value}.'
    return template.format(title=title)


class NotificationTransport(Protocol):
    """Delivers one notification or raises"""

    async def send(self, notification: NotificationOutbox) -> None:
        ...


class LoggingTransport:
    """Write notifications to the application log"""

    async def send(self, notification: NotificationOutbox) -> None:
        logger.info(
            f"Notification: {notification.title} - {notification.message}",
            extra={
                "notification_id": notification.notification_id,
                "submission_id": notification.submission_id,
                "status": notification.new_status.value,
                "department": notification.department,
            }
        )


class WebhookTransport:
    """POST notifications as JSON to an external delivery endpoint"""

    def __init__(self, url: str, timeout_seconds: float = 10.0):
        self.url = url
        self.timeout_seconds = timeout_seconds

    async def send(self, notification: NotificationOutbox) -> None:
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.post(self.url, json=notification.model_dump(mode="json"))
            response.raise_for_status()


def build_transport() -> NotificationTransport:
    if settings.notification_webhook_url:
        return WebhookTransport(
            settings.notification_webhook_url,
            timeout_seconds=settings.notification_webhook_timeout_seconds
        )
    return LoggingTransport()


class NotificationService:
    """Service for queuing and sending notifications"""

    def __init__(self, repo, transport: Optional[NotificationTransport] = None):
        self.repo = repo
        self.transport = transport or build_transport()

    def notify(self, event: TransitionEvent, submission: Submission) -> NotificationOutbox:
        """Queue the status change notification for a committed transition"""
        new_status = event.to_status
        payload: Dict[str, Any] = {
            "action": event.action,
            "from_status": event.from_status.value if event.from_status else None,
            "actor_id": event.actor_id,
            "actor_name": event.actor_name,
            "submitted_by": submission.submitted_by,
            "correlation_id": event.correlation_id,
        }
        if event.comment:
            payload["comment"] = event.comment
        if new_status.is_terminal:
            # Final outcomes go back to the owner of the submission
            payload["notify_user_ids"] = [submission.submitted_by]

        notification = NotificationOutbox(
            notification_id=generate_notification_id(),
            submission_id=event.submission_id,
            new_status=new_status,
            department=event.department,
            title=notification_title(new_status),
            message=notification_message(submission.title, new_status),
            recipient_roles=[r.value for r in STATUS_RECIPIENT_ROLES.get(new_status, [])],
            payload=payload,
            created_at=utc_now()
        )
        return self.repo.create_notification(notification)

    async def send_notification(self, notification: NotificationOutbox) -> bool:
        """
        Deliver a single notification.

        Locking is handled by the dispatcher before this is called.

        Returns True if sent successfully, False otherwise.
        """
        try:
            await self.transport.send(notification)
        except (httpx.HTTPError, OSError) as e:
            self._record_failure(notification, f"{type(e).__name__}: {e}")
            return False

        self.repo.mark_sent(notification.notification_id)
        return True

    def _record_failure(self, notification: NotificationOutbox, error: str) -> None:
        retry_count = notification.retry_count + 1
        next_retry_at = None
        if retry_count < settings.notification_max_retries:
            # 1, 2, 4, 8 ... minutes
            delay = backoff_delay_seconds(retry_count, base_seconds=60)
            next_retry_at = add_seconds(utc_now(), delay)

        self.repo.mark_failed(
            notification.notification_id,
            error,
            retry_count=retry_count,
            next_retry_at=next_retry_at
        )
        logger.error(
            f"Failed to send notification: {notification.notification_id}",
            extra={
                "notification_id": notification.notification_id,
                "submission_id": notification.submission_id,
                "error_code": "NOTIFICATION_SEND_FAILED",
            }
        )
