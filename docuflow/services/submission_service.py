"""Submission Service - Draft lifecycle, scoped reads and transitions"""
import time
from datetime import datetime
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar, Union

from ..domain.models import (
    Submission, WorkflowStep, ActorContext, AuditEvent, TransitionOutcome
)
from ..domain.enums import (
    SubmissionStatus, WorkflowAction, Priority, Role, AUTHORING_ROLES
)
from ..domain.errors import (
    ValidationError, UnauthorizedError, InvalidTransitionError, ConcurrentModificationError
)
from ..engine.engine import WorkflowEngine
from ..engine.permission_guard import PermissionGuard
from ..engine.transition_resolver import TransitionResolver, TRANSITION_RULES
from ..engine.audit_writer import AuditWriter
from ..repositories.submission_repo import SubmissionQuery
from .notification_service import NotificationService
from ..config.settings import settings
from ..utils.idgen import generate_submission_id
from ..utils.time import utc_now, backoff_delay_seconds
from ..utils.logger import get_logger, get_correlation_id

logger = get_logger(__name__)

T = TypeVar("T")


def retry_on_conflict(
    operation: Callable[[], T],
    attempts: Optional[int] = None,
    backoff_ms: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep
) -> T:
    """
    Run an operation, re-running it on ConcurrentModificationError.

    The operation must re-read state itself on every call. After the last
    attempt the conflict propagates to the caller.
    """
    attempts = attempts if attempts is not None else settings.conflict_retry_attempts
    backoff_ms = backoff_ms if backoff_ms is not None else settings.conflict_retry_backoff_ms
    attempts = max(1, attempts)

    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except ConcurrentModificationError:
            if attempt == attempts:
                raise
            delay = backoff_delay_seconds(attempt, base_seconds=backoff_ms / 1000.0)
            logger.info(
                f"Concurrent modification, retrying (attempt {attempt + 1}/{attempts})",
                extra={"error_code": ConcurrentModificationError.error_code}
            )
            sleep(delay)
    raise RuntimeError("unreachable")


class SubmissionService:
    """Service for submission operations"""

    def __init__(
        self,
        repo,
        audit_repo,
        notification_service: NotificationService,
        guard: Optional[PermissionGuard] = None
    ):
        self.repo = repo
        self.audit_repo = audit_repo
        self.notification_service = notification_service
        self.resolver = TransitionResolver()
        self.guard = guard or PermissionGuard(resolver=self.resolver)
        self.audit_writer = AuditWriter(audit_repo)
        self.engine = WorkflowEngine(
            repo=repo,
            audit_writer=self.audit_writer,
            notifier=notification_service,
            guard=self.guard,
            resolver=self.resolver
        )

    # =========================================================================
    # Draft lifecycle
    # =========================================================================

    def create_draft(
        self,
        actor: ActorContext,
        template_id: str,
        title: str,
        field_data: Optional[Dict[str, Any]] = None,
        priority: Priority = Priority.MEDIUM,
        tags: Optional[List[str]] = None,
        notes: Optional[str] = None,
        department: Optional[str] = None
    ) -> Submission:
        """Create a new Draft owned by the actor"""
        self._require_authoring_role(actor)
        department = self._resolve_department(actor, department)

        now = utc_now()
        submission = Submission(
            submission_id=generate_submission_id(),
            template_id=template_id,
            title=title,
            department=department,
            status=SubmissionStatus.DRAFT,
            submitted_by=actor.user_id,
            version=1,
            field_data=field_data or {},
            priority=priority,
            tags=tags or [],
            notes=notes,
            created_at=now,
            updated_at=now
        )
        self.repo.create(submission)
        self._audit(lambda: self.audit_writer.write_create_submission(submission, actor))
        return submission

    def update_draft(
        self,
        submission_id: str,
        actor: ActorContext,
        updates: Dict[str, Any],
        expected_version: Optional[int] = None
    ) -> Submission:
        """Edit the content of a Draft (owner or Admin only)"""
        submission = self.repo.load(submission_id)
        if not self.guard.can_edit_draft(actor, submission):
            raise UnauthorizedError("Only the owner can edit this draft")
        if submission.status != SubmissionStatus.DRAFT:
            raise InvalidTransitionError(
                "Only Draft submissions can be edited",
                details={"current_status": submission.status.value}
            )
        if not updates:
            return submission

        clean = {
            key: value.value if isinstance(value, Priority) else value
            for key, value in updates.items()
        }
        updated = self.repo.update_draft(
            submission_id,
            expected_version if expected_version is not None else submission.version,
            clean
        )
        self._audit(lambda: self.audit_writer.write_update_submission(updated, actor, clean))
        return updated

    def clone_rejected(self, submission_id: str, actor: ActorContext) -> Submission:
        """Start a new Draft from the content of a Rejected submission"""
        source = self.get_submission(submission_id, actor)
        if source.status != SubmissionStatus.REJECTED:
            raise InvalidTransitionError(
                "Only Rejected submissions can be cloned",
                details={"current_status": source.status.value}
            )
        self._require_authoring_role(actor)

        now = utc_now()
        clone = Submission(
            submission_id=generate_submission_id(),
            template_id=source.template_id,
            title=source.title,
            department=source.department,
            status=SubmissionStatus.DRAFT,
            submitted_by=actor.user_id,
            version=1,
            field_data=source.field_data,
            priority=source.priority,
            tags=list(source.tags),
            notes=source.notes,
            cloned_from=source.submission_id,
            created_at=now,
            updated_at=now
        )
        self.repo.create(clone)
        self._audit(lambda: self.audit_writer.write_clone_submission(clone, actor))
        return clone

    # =========================================================================
    # Transitions
    # =========================================================================

    def transition(
        self,
        submission_id: str,
        actor: ActorContext,
        action: Union[WorkflowAction, str],
        comment: Optional[str] = None,
        retry: bool = False
    ) -> TransitionOutcome:
        """Apply a workflow action, optionally retrying on version conflicts"""
        correlation_id = get_correlation_id()

        def attempt() -> TransitionOutcome:
            return self.engine.apply_transition(
                submission_id, actor, action, comment=comment, correlation_id=correlation_id
            )

        if retry:
            return retry_on_conflict(attempt)
        return attempt()

    def available_actions(self, submission: Submission, actor: ActorContext) -> List[WorkflowAction]:
        return self.engine.available_actions(submission, actor)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_submission(self, submission_id: str, actor: ActorContext) -> Submission:
        """Load a submission the actor is allowed to see"""
        submission = self.repo.load(submission_id)
        if not self.guard.can_view(actor, submission):
            raise UnauthorizedError("You do not have access to this submission")
        return submission

    def list_submissions(
        self,
        actor: ActorContext,
        statuses: Optional[List[SubmissionStatus]] = None,
        template_id: Optional[str] = None,
        search: Optional[str] = None,
        department: Optional[str] = None,
        submitted_from: Optional[datetime] = None,
        submitted_to: Optional[datetime] = None,
        sort_by: str = "updated_at",
        sort_order: str = "desc",
        skip: int = 0,
        limit: int = 50
    ) -> Tuple[List[Submission], int]:
        """
        List submissions visible to the actor.

        Admins see everything and may narrow to one department. Operators
        see their own submissions and every other role sees its department;
        for them the department filter is ignored.
        """
        query = self._scoped_query(
            actor,
            admin_department=department,
            statuses=statuses or [],
            template_id=template_id,
            search=search,
            submitted_from=submitted_from,
            submitted_to=submitted_to,
            sort_by=sort_by,
            sort_order=sort_order,
            skip=skip,
            limit=limit
        )
        return self.repo.list_submissions(query), self.repo.count_submissions(query)

    def list_pending(self, actor: ActorContext, limit: int = 100) -> List[Submission]:
        """Submissions the actor can act on right now (excluding own drafts)"""
        role = actor.known_role
        if role is None:
            return []

        statuses = sorted(
            {
                rule.from_status for rule in TRANSITION_RULES
                if not rule.owner_only and (role == Role.ADMIN or role in rule.allowed_roles)
            },
            key=lambda s: list(SubmissionStatus).index(s)
        )
        if not statuses:
            return []

        query = SubmissionQuery(
            department=None if role == Role.ADMIN else actor.department,
            exclude_submitted_by=actor.user_id if self.guard.prevent_self_approval else None,
            statuses=statuses,
            sort_by="updated_at",
            sort_order="asc",
            limit=limit
        )
        return [
            s for s in self.repo.list_submissions(query)
            if self.guard.get_available_actions(actor, s)
        ]

    def get_history(self, submission_id: str, actor: ActorContext) -> List[WorkflowStep]:
        """Workflow history, oldest first"""
        return list(self.get_submission(submission_id, actor).workflow_history)

    def get_audit_trail(
        self,
        submission_id: str,
        actor: ActorContext,
        skip: int = 0,
        limit: int = 100
    ) -> List[AuditEvent]:
        """Audit events for a submission, newest first"""
        self.get_submission(submission_id, actor)
        return self.audit_repo.get_events_for_submission(submission_id, skip=skip, limit=limit)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _scoped_query(
        self,
        actor: ActorContext,
        admin_department: Optional[str] = None,
        **filters
    ) -> SubmissionQuery:
        role = actor.known_role
        if role is None:
            raise UnauthorizedError(f"Unknown role '{actor.role}'")
        if role == Role.ADMIN:
            return SubmissionQuery(department=admin_department or None, **filters)
        if not actor.department:
            raise UnauthorizedError("Your account has no department")
        if role == Role.OPERATOR:
            return SubmissionQuery(department=actor.department, submitted_by=actor.user_id, **filters)
        return SubmissionQuery(department=actor.department, **filters)

    def _require_authoring_role(self, actor: ActorContext) -> None:
        if actor.known_role not in AUTHORING_ROLES:
            raise UnauthorizedError(
                f"Role '{actor.role}' cannot create submissions",
                details={"role": actor.role}
            )

    def _resolve_department(self, actor: ActorContext, requested: Optional[str]) -> str:
        if actor.is_admin and requested:
            return requested
        if requested and requested != actor.department:
            raise UnauthorizedError("You can only create submissions for your own department")
        if not actor.department:
            raise ValidationError("A department is required to create a submission")
        return actor.department

    def _audit(self, write: Callable[[], AuditEvent]) -> None:
        """Draft lifecycle audit is best-effort like transition audit"""
        try:
            write()
        except Exception as e:
            logger.error(f"Audit emission failed: {e}")


def build_submission_service(use_memory: Optional[bool] = None) -> SubmissionService:
    """Wire the service against the configured storage backend"""
    if use_memory is None:
        use_memory = settings.uses_memory_storage

    if use_memory:
        from ..repositories.memory_repo import (
            InMemorySubmissionRepository, InMemoryAuditRepository, InMemoryNotificationRepository
        )
        repo = InMemorySubmissionRepository()
        audit_repo = InMemoryAuditRepository()
        notification_repo = InMemoryNotificationRepository()
    else:
        from ..repositories.submission_repo import MongoSubmissionRepository
        from ..repositories.audit_repo import AuditRepository
        from ..repositories.notification_repo import NotificationRepository
        repo = MongoSubmissionRepository()
        audit_repo = AuditRepository()
        notification_repo = NotificationRepository()

    logger.info(f"Submission storage backend: {'memory' if use_memory else 'mongo'}")
    return SubmissionService(
        repo=repo,
        audit_repo=audit_repo,
        notification_service=NotificationService(notification_repo)
    )


@lru_cache()
def get_submission_service() -> SubmissionService:
    """Get the process-wide submission service"""
    return build_submission_service()
