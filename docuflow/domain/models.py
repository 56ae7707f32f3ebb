"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from pydantic import BaseModel, Field, ConfigDict

from .enums import (
    SubmissionStatus, WorkflowAction, StepKind, StepOutcome, Role, Priority,
    AuditResourceType, AuditStatus, NotificationStatus
)


# ============================================================================
# Identity
# ============================================================================

class ActorContext(BaseModel):
    """Current actor context from JWT token"""
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., description="Platform user ID")
    display_name: str = Field(..., description="User display name")
    role: str = Field(..., description="Assigned role (unknown roles are denied)")
    department: Optional[str] = Field(None, description="Department the user belongs to")

    @property
    def known_role(self) -> Optional[Role]:
        """Role as enum, or None for roles the platform does not know"""
        try:
            return Role(self.role)
        except ValueError:
            return None

    @property
    def is_admin(self) -> bool:
        return self.known_role == Role.ADMIN


# ============================================================================
# Submission & Workflow History
# ============================================================================

class WorkflowStep(BaseModel):
    """One immutable record of an action taken on a submission"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    step_id: str
    action: WorkflowAction
    step_kind: StepKind
    outcome: StepOutcome
    actor_id: Optional[str] = Field(None, description="Absent for automatic submits")
    actor_name: Optional[str] = None
    comment: Optional[str] = Field(None, max_length=1000)
    occurred_at: datetime
    status_after: Optional[SubmissionStatus] = None


class Submission(BaseModel):
    """A filled-out form moving through the approval pipeline"""
    model_config = ConfigDict(extra="ignore")  # Allow extra fields from DB

    submission_id: str
    template_id: str
    title: str
    department: str
    status: SubmissionStatus = Field(default=SubmissionStatus.DRAFT)
    submitted_by: str
    version: int = Field(default=1, ge=1)
    workflow_history: List[WorkflowStep] = Field(default_factory=list)
    field_data: Dict[str, Any] = Field(default_factory=dict, description="Opaque section/field responses")
    priority: Priority = Field(default=Priority.MEDIUM)
    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=2000)
    cloned_from: Optional[str] = Field(None, description="Rejected submission this draft was cloned from")
    created_at: datetime
    updated_at: datetime
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


def derive_status(history: Sequence[WorkflowStep]) -> SubmissionStatus:
    """
    Derive submission status from the most recent workflow step.

    Pending verification steps are told apart by the action that produced
    them: a submit leaves the form Submitted, a start_verification leaves it
    Under Verification.
    """
    if not history:
        return SubmissionStatus.DRAFT

    last = history[-1]
    if last.outcome == StepOutcome.REJECTED:
        return SubmissionStatus.REJECTED

    if last.step_kind == StepKind.APPROVAL:
        if last.outcome == StepOutcome.APPROVED:
            return SubmissionStatus.APPROVED
        raise ValueError(f"Approval steps are never recorded as {last.outcome.value}")

    if last.outcome == StepOutcome.APPROVED:
        return SubmissionStatus.VERIFIED
    if last.action == WorkflowAction.SUBMIT:
        return SubmissionStatus.SUBMITTED
    return SubmissionStatus.UNDER_VERIFICATION


# ============================================================================
# Transition Events & Outcomes
# ============================================================================

class TransitionEvent(BaseModel):
    """Description of a transition handed to the audit emitter and notifier"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    submission_id: str
    actor_id: str
    actor_name: Optional[str] = None
    action: str
    from_status: Optional[SubmissionStatus] = None
    to_status: Optional[SubmissionStatus] = None
    department: Optional[str] = None
    comment: Optional[str] = None
    timestamp: datetime
    correlation_id: Optional[str] = None


class TransitionOutcome(BaseModel):
    """Result of a successful engine transition"""
    model_config = ConfigDict(extra="forbid")

    submission: Submission
    step: WorkflowStep
    event: TransitionEvent
    emission_errors: List[str] = Field(default_factory=list)

    @property
    def from_status(self) -> Optional[SubmissionStatus]:
        return self.event.from_status

    @property
    def to_status(self) -> Optional[SubmissionStatus]:
        return self.event.to_status


# ============================================================================
# Notification Outbox
# ============================================================================

class NotificationOutbox(BaseModel):
    """Notification in outbox"""
    model_config = ConfigDict(extra="ignore")  # Allow extra fields from DB

    notification_id: str
    submission_id: str
    new_status: SubmissionStatus
    department: Optional[str] = None
    title: str
    message: str
    recipient_roles: List[str] = Field(default_factory=list, description="Hint for external recipient resolution")
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: NotificationStatus = Field(default=NotificationStatus.PENDING)
    retry_count: int = Field(default=0)
    last_error: Optional[str] = None
    next_retry_at: Optional[datetime] = None
    locked_until: Optional[datetime] = None
    locked_by: Optional[str] = None
    created_at: datetime
    sent_at: Optional[datetime] = None


# ============================================================================
# Audit Event
# ============================================================================

class AuditEvent(BaseModel):
    """Audit event (append-only)"""
    model_config = ConfigDict(extra="forbid")

    audit_event_id: str
    resource_type: AuditResourceType = Field(default=AuditResourceType.FORM_SUBMISSION)
    resource_id: str
    action: str
    status: AuditStatus = Field(default=AuditStatus.SUCCESS)
    description: str
    actor_id: str
    actor_name: Optional[str] = None
    department: Optional[str] = None
    status_before: Optional[SubmissionStatus] = None
    status_after: Optional[SubmissionStatus] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    correlation_id: Optional[str] = None
