"""
Submission CRUD Routes

Create, read, list and edit submissions.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status

from ...deps import get_current_user_dep, get_correlation_id_dep, get_submission_service_dep
from ....domain.models import ActorContext, AuditEvent
from ....domain.enums import SubmissionStatus
from ....domain.errors import ValidationError
from ....services.submission_service import SubmissionService
from ....utils.time import parse_iso
from ....utils.logger import get_logger
from .schemas import (
    CreateSubmissionRequest, UpdateSubmissionRequest, SubmissionResponse,
    SubmissionListResponse, HistoryResponse
)

logger = get_logger(__name__)
router = APIRouter()


def _parse_statuses(statuses: Optional[str]) -> List[SubmissionStatus]:
    if not statuses:
        return []
    parsed = []
    for raw in statuses.split(","):
        raw = raw.strip()
        if not raw:
            continue
        try:
            parsed.append(SubmissionStatus(raw))
        except ValueError:
            raise ValidationError(
                f"Unknown status '{raw}'",
                details={"allowed_statuses": [s.value for s in SubmissionStatus]}
            )
    return parsed


@router.post("/", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
async def create_submission(
    request: CreateSubmissionRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    service: SubmissionService = Depends(get_submission_service_dep)
):
    """
    Create a new draft

    The draft belongs to the caller and to the caller's department.
    """
    submission = service.create_draft(
        actor=actor,
        template_id=request.template_id,
        title=request.title,
        field_data=request.field_data,
        priority=request.priority,
        tags=request.tags,
        notes=request.notes,
        department=request.department
    )
    logger.info(
        f"Created submission: {submission.submission_id}",
        extra={"submission_id": submission.submission_id, "actor_id": actor.user_id}
    )
    return SubmissionResponse(
        submission=submission,
        available_actions=service.available_actions(submission, actor)
    )


@router.get("/", response_model=SubmissionListResponse)
async def list_submissions(
    statuses: Optional[str] = Query(None, description="Filter by statuses (comma-separated)"),
    template_id: Optional[str] = Query(None, description="Filter by form template"),
    q: Optional[str] = Query(None, description="Search in title and submission ID"),
    department: Optional[str] = Query(None, description="Filter by department (Admin only)"),
    date_from: Optional[str] = Query(None, description="Submitted on or after (ISO 8601)"),
    date_to: Optional[str] = Query(None, description="Submitted on or before (ISO 8601)"),
    sort_by: str = Query("updated_at", description="Sort field: updated_at, created_at, title, status"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    service: SubmissionService = Depends(get_submission_service_dep)
):
    """List submissions visible to the caller"""
    items, total = service.list_submissions(
        actor,
        statuses=_parse_statuses(statuses),
        template_id=template_id,
        search=q,
        department=department,
        submitted_from=parse_iso(date_from) if date_from else None,
        submitted_to=parse_iso(date_to) if date_to else None,
        sort_by=sort_by,
        sort_order=sort_order,
        skip=(page - 1) * page_size,
        limit=page_size
    )
    return SubmissionListResponse(items=items, page=page, page_size=page_size, total=total)


@router.get("/pending", response_model=SubmissionListResponse)
async def list_pending(
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    service: SubmissionService = Depends(get_submission_service_dep)
):
    """Submissions waiting on an action the caller may perform"""
    items = service.list_pending(actor)
    return SubmissionListResponse(items=items, page=1, page_size=len(items), total=len(items))


@router.get("/{submission_id}", response_model=SubmissionResponse)
async def get_submission(
    submission_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    service: SubmissionService = Depends(get_submission_service_dep)
):
    """Get a submission with the actions available to the caller"""
    submission = service.get_submission(submission_id, actor)
    return SubmissionResponse(
        submission=submission,
        available_actions=service.available_actions(submission, actor)
    )


@router.patch("/{submission_id}", response_model=SubmissionResponse)
async def update_submission(
    submission_id: str,
    request: UpdateSubmissionRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    service: SubmissionService = Depends(get_submission_service_dep)
):
    """Edit a draft (owner or Admin, Draft status only)"""
    submission = service.update_draft(
        submission_id,
        actor,
        request.changes(),
        expected_version=request.expected_version
    )
    return SubmissionResponse(
        submission=submission,
        available_actions=service.available_actions(submission, actor)
    )


@router.post("/{submission_id}/clone", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
async def clone_submission(
    submission_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    service: SubmissionService = Depends(get_submission_service_dep)
):
    """Start a new draft from a rejected submission"""
    clone = service.clone_rejected(submission_id, actor)
    return SubmissionResponse(
        submission=clone,
        available_actions=service.available_actions(clone, actor)
    )


@router.get("/{submission_id}/history", response_model=HistoryResponse)
async def get_history(
    submission_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    service: SubmissionService = Depends(get_submission_service_dep)
):
    """Workflow history, oldest step first"""
    submission = service.get_submission(submission_id, actor)
    return HistoryResponse(
        submission_id=submission.submission_id,
        status=submission.status,
        steps=submission.workflow_history
    )


@router.get("/{submission_id}/audit", response_model=List[AuditEvent])
async def get_audit_trail(
    submission_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    service: SubmissionService = Depends(get_submission_service_dep)
):
    """Audit events for a submission, newest first"""
    return service.get_audit_trail(submission_id, actor, skip=skip, limit=limit)
