"""
Submission Schemas

Request and response models for submission API endpoints.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from ....domain.enums import Priority, SubmissionStatus, WorkflowAction
from ....domain.models import Submission, WorkflowStep, TransitionOutcome


# =============================================================================
# Draft Schemas
# =============================================================================

class CreateSubmissionRequest(BaseModel):
    """Request to create a new draft"""
    template_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=500)
    field_data: Dict[str, Any] = Field(default_factory=dict)
    priority: Priority = Priority.MEDIUM
    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=2000)
    department: Optional[str] = Field(None, description="Admins may file for another department")


class UpdateSubmissionRequest(BaseModel):
    """Request to edit a draft; omitted fields are left unchanged"""
    expected_version: Optional[int] = Field(None, ge=1)
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    field_data: Optional[Dict[str, Any]] = None
    priority: Optional[Priority] = None
    tags: Optional[List[str]] = None
    notes: Optional[str] = Field(None, max_length=2000)

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"expected_version"})


class SubmissionResponse(BaseModel):
    """A submission plus what the caller may do with it"""
    submission: Submission
    available_actions: List[WorkflowAction] = Field(default_factory=list)


class SubmissionListResponse(BaseModel):
    """Response for submission list"""
    items: List[Submission]
    page: int
    page_size: int
    total: int


class HistoryResponse(BaseModel):
    submission_id: str
    status: SubmissionStatus
    steps: List[WorkflowStep]


# =============================================================================
# Action Schemas
# =============================================================================

class TransitionRequest(BaseModel):
    """Optional comment for verification/approval actions"""
    comment: Optional[str] = Field(None, max_length=1000)


class RejectRequest(BaseModel):
    """Reject requires a comment; blank comments are refused by the engine"""
    comment: str = Field(..., max_length=1000)


class TransitionResponse(BaseModel):
    """Response after a workflow action"""
    submission_id: str
    from_status: SubmissionStatus
    to_status: SubmissionStatus
    version: int
    step: WorkflowStep
    emission_errors: List[str] = Field(default_factory=list)
    occurred_at: datetime
    workflow_history: List[WorkflowStep] = Field(default_factory=list)

    @classmethod
    def from_outcome(cls, outcome: TransitionOutcome) -> "TransitionResponse":
        return cls(
            submission_id=outcome.submission.submission_id,
            from_status=outcome.from_status,
            to_status=outcome.to_status,
            version=outcome.submission.version,
            step=outcome.step,
            emission_errors=outcome.emission_errors,
            occurred_at=outcome.step.occurred_at,
            workflow_history=list(outcome.submission.workflow_history)
        )
