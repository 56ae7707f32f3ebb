"""
Submission Action Routes

Workflow actions on a submission:
- Submit
- Start / complete verification
- Approve / Reject
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query

from ...deps import get_current_user_dep, get_correlation_id_dep, get_submission_service_dep
from ....domain.models import ActorContext
from ....domain.enums import WorkflowAction
from ....services.submission_service import SubmissionService
from .schemas import TransitionRequest, RejectRequest, TransitionResponse

router = APIRouter()

RetryQuery = Query(False, description="Retry automatically on version conflicts")


def _run(
    service: SubmissionService,
    submission_id: str,
    actor: ActorContext,
    action: WorkflowAction,
    comment: Optional[str],
    retry: bool
) -> TransitionResponse:
    outcome = service.transition(submission_id, actor, action, comment=comment, retry=retry)
    return TransitionResponse.from_outcome(outcome)


@router.post("/{submission_id}/submit", response_model=TransitionResponse)
def submit(
    submission_id: str,
    retry: bool = RetryQuery,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    service: SubmissionService = Depends(get_submission_service_dep)
):
    """Submit a draft. Only the owner (or an Admin) can submit."""
    return _run(service, submission_id, actor, WorkflowAction.SUBMIT, None, retry)


@router.post("/{submission_id}/start-verification", response_model=TransitionResponse)
def start_verification(
    submission_id: str,
    request: Optional[TransitionRequest] = None,
    retry: bool = RetryQuery,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    service: SubmissionService = Depends(get_submission_service_dep)
):
    """Pick up a submitted form for verification (Supervisor, Admin)"""
    comment = request.comment if request else None
    return _run(service, submission_id, actor, WorkflowAction.START_VERIFICATION, comment, retry)


@router.post("/{submission_id}/complete-verification", response_model=TransitionResponse)
def complete_verification(
    submission_id: str,
    request: Optional[TransitionRequest] = None,
    retry: bool = RetryQuery,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    service: SubmissionService = Depends(get_submission_service_dep)
):
    """Mark a form under verification as verified (Supervisor, Admin)"""
    comment = request.comment if request else None
    return _run(service, submission_id, actor, WorkflowAction.COMPLETE_VERIFICATION, comment, retry)


@router.post("/{submission_id}/approve", response_model=TransitionResponse)
def approve(
    submission_id: str,
    request: Optional[TransitionRequest] = None,
    retry: bool = RetryQuery,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    service: SubmissionService = Depends(get_submission_service_dep)
):
    """Final approval of a verified form (Admin, Auditor)"""
    comment = request.comment if request else None
    return _run(service, submission_id, actor, WorkflowAction.APPROVE, comment, retry)


@router.post("/{submission_id}/reject", response_model=TransitionResponse)
def reject(
    submission_id: str,
    request: RejectRequest,
    retry: bool = RetryQuery,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    service: SubmissionService = Depends(get_submission_service_dep)
):
    """Reject a form under verification or awaiting approval. A comment is required."""
    return _run(service, submission_id, actor, WorkflowAction.REJECT, request.comment, retry)
