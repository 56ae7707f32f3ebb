"""Audit Writer - Append-only audit events"""
from typing import Any, Dict, Optional, Union

from ..domain.models import AuditEvent, ActorContext, Submission, TransitionEvent
from ..domain.enums import (
    AuditAction, AuditStatus, AuditResourceType, SubmissionStatus, WorkflowAction,
    WORKFLOW_AUDIT_ACTIONS
)
from ..domain.errors import DomainError
from ..utils.idgen import generate_audit_event_id
from ..utils.time import utc_now
from ..utils.logger import get_logger, get_correlation_id

logger = get_logger(__name__)


def audit_action_for(action: Union[WorkflowAction, str]) -> str:
    """Audit action name for a workflow action (raw string for unknown actions)"""
    try:
        return WORKFLOW_AUDIT_ACTIONS[WorkflowAction(action)].value
    except ValueError:
        return str(action)


class AuditWriter:
    """
    Write audit events (append-only)

    Every transition attempt, successful or not, and every draft lifecycle
    change produces one audit event.
    """

    def __init__(self, repo):
        self.repo = repo

    def write_event(
        self,
        submission_id: str,
        action: str,
        actor: ActorContext,
        description: str,
        status: AuditStatus = AuditStatus.SUCCESS,
        department: Optional[str] = None,
        status_before: Optional[SubmissionStatus] = None,
        status_after: Optional[SubmissionStatus] = None,
        details: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None
    ) -> AuditEvent:
        """Write a single audit event"""
        event = AuditEvent(
            audit_event_id=generate_audit_event_id(),
            resource_type=AuditResourceType.FORM_SUBMISSION,
            resource_id=submission_id,
            action=action,
            status=status,
            description=description,
            actor_id=actor.user_id,
            actor_name=actor.display_name,
            department=department,
            status_before=status_before,
            status_after=status_after,
            details=details or {},
            timestamp=utc_now(),
            correlation_id=correlation_id or get_correlation_id()
        )
        return self.repo.create_event(event)

    def write_transition(self, event: TransitionEvent, actor: ActorContext) -> AuditEvent:
        """Write the success event for a committed transition"""
        details: Dict[str, Any] = {}
        if event.comment:
            details["comment"] = event.comment

        return self.write_event(
            submission_id=event.submission_id,
            action=audit_action_for(event.action),
            actor=actor,
            description=(
                f"{event.action} moved submission from "
                f"{event.from_status.value if event.from_status else '-'} to "
                f"{event.to_status.value if event.to_status else '-'}"
            ),
            department=event.department,
            status_before=event.from_status,
            status_after=event.to_status,
            details=details,
            correlation_id=event.correlation_id
        )

    def write_failure(
        self,
        submission_id: str,
        action: str,
        actor: ActorContext,
        error: DomainError,
        submission: Optional[Submission] = None,
        correlation_id: Optional[str] = None
    ) -> AuditEvent:
        """Write the failure event for a rejected transition attempt"""
        status_before = submission.status if submission else None
        return self.write_event(
            submission_id=submission_id,
            action=audit_action_for(action),
            actor=actor,
            description=f"{action} failed: {error.message}",
            status=AuditStatus.FAILURE,
            department=submission.department if submission else None,
            status_before=status_before,
            status_after=status_before,
            details={"error_code": error.error_code, **error.details},
            correlation_id=correlation_id
        )

    def write_create_submission(
        self,
        submission: Submission,
        actor: ActorContext,
        correlation_id: Optional[str] = None
    ) -> AuditEvent:
        """Write draft creation event"""
        return self.write_event(
            submission_id=submission.submission_id,
            action=AuditAction.CREATE_FORM_SUBMISSION.value,
            actor=actor,
            description=f"Created draft '{submission.title}'",
            department=submission.department,
            status_after=submission.status,
            details={"template_id": submission.template_id},
            correlation_id=correlation_id
        )

    def write_update_submission(
        self,
        submission: Submission,
        actor: ActorContext,
        changed_fields: Dict[str, Any],
        correlation_id: Optional[str] = None
    ) -> AuditEvent:
        """Write draft edit event"""
        return self.write_event(
            submission_id=submission.submission_id,
            action=AuditAction.UPDATE_FORM_SUBMISSION.value,
            actor=actor,
            description="Updated draft content",
            department=submission.department,
            status_before=submission.status,
            status_after=submission.status,
            details={"fields": sorted(changed_fields)},
            correlation_id=correlation_id
        )

    def write_clone_submission(
        self,
        clone: Submission,
        actor: ActorContext,
        correlation_id: Optional[str] = None
    ) -> AuditEvent:
        """Write clone event on the new draft"""
        return self.write_event(
            submission_id=clone.submission_id,
            action=AuditAction.CLONE_FORM_SUBMISSION.value,
            actor=actor,
            description=f"Cloned from rejected submission {clone.cloned_from}",
            department=clone.department,
            status_after=clone.status,
            details={"cloned_from": clone.cloned_from},
            correlation_id=correlation_id
        )
