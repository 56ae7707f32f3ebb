"""
Workflow Engine - Central orchestrator for submission transitions

Every status change of a form submission goes through apply_transition():

1. Validate the action and the comment (nothing is read before this)
2. Load the submission
3. Resolve (status, action) against the fixed state table
4. Check the actor against the permission guard
5. Commit the new step with a version check
6. Emit the audit event and the outbox notification (best-effort)

Nothing is written before the commit, so an abandoned call leaves no trace.
The engine never retries; see SubmissionService.retry_on_conflict for that.
"""

from typing import List, Optional, Union

from ..domain.models import (
    Submission, WorkflowStep, ActorContext, TransitionEvent, TransitionOutcome
)
from ..domain.enums import WorkflowAction
from ..domain.errors import (
    DomainError, ValidationError, InvalidTransitionError, UnauthorizedError,
    ConcurrentModificationError
)
from .permission_guard import PermissionGuard
from .transition_resolver import TransitionResolver, TransitionRule
from .audit_writer import AuditWriter
from ..utils.idgen import generate_workflow_step_id
from ..utils.time import utc_now
from ..utils.logger import get_logger, get_correlation_id

logger = get_logger(__name__)

MAX_COMMENT_LENGTH = 1000

# Failed attempts of these kinds are recorded in the audit trail
AUDITED_FAILURES = (InvalidTransitionError, UnauthorizedError, ConcurrentModificationError)


def parse_action(action: Union[WorkflowAction, str]) -> WorkflowAction:
    """Parse an action name, raising ValidationError for unknown actions"""
    try:
        return WorkflowAction(action)
    except ValueError:
        raise ValidationError(
            f"Unknown action '{action}'",
            details={"allowed_actions": [a.value for a in WorkflowAction]}
        )


def normalize_comment(action: WorkflowAction, comment: Optional[str]) -> Optional[str]:
    """Strip the comment and enforce the per-action comment rules"""
    text = comment.strip() if comment else None
    if not text:
        text = None

    if text and len(text) > MAX_COMMENT_LENGTH:
        raise ValidationError(
            f"Comment must be at most {MAX_COMMENT_LENGTH} characters",
            details={"length": len(text)}
        )
    if action == WorkflowAction.REJECT and text is None:
        raise ValidationError("A comment is required when rejecting a submission")
    return text


class WorkflowEngine:
    """
    The Workflow Engine - applies actions to submissions

    Collaborators are injected so tests and the two storage backends share
    one code path.
    """

    def __init__(
        self,
        repo,
        audit_writer: AuditWriter,
        notifier,
        guard: Optional[PermissionGuard] = None,
        resolver: Optional[TransitionResolver] = None
    ):
        self.repo = repo
        self.audit_writer = audit_writer
        self.notifier = notifier
        self.resolver = resolver or TransitionResolver()
        self.guard = guard or PermissionGuard(resolver=self.resolver)

    # =========================================================================
    # Transitions
    # =========================================================================

    def apply_transition(
        self,
        submission_id: str,
        actor: ActorContext,
        action: Union[WorkflowAction, str],
        comment: Optional[str] = None,
        correlation_id: Optional[str] = None
    ) -> TransitionOutcome:
        """
        Apply an action to a submission.

        Raises:
            ValidationError: Unknown action, missing reject comment, oversized comment
            SubmissionNotFoundError: No such submission
            InvalidTransitionError: Action not allowed from the current status
            UnauthorizedError: Actor may not perform the action
            ConcurrentModificationError: Submission changed since it was loaded
            RepositoryUnavailableError: Storage failure
        """
        correlation_id = correlation_id or get_correlation_id()
        workflow_action = parse_action(action)
        comment = normalize_comment(workflow_action, comment)

        submission = self.repo.load(submission_id)

        try:
            rule = self.resolver.resolve(submission.status, workflow_action)
            self.guard.require(actor, submission, workflow_action)
            step = self._build_step(rule, actor, comment)
            updated = self.repo.commit(
                submission_id,
                expected_version=submission.version,
                new_status=rule.to_status,
                new_step=step
            )
        except AUDITED_FAILURES as e:
            self._audit_failure(submission, workflow_action, actor, e, correlation_id)
            raise

        event = TransitionEvent(
            submission_id=submission_id,
            actor_id=actor.user_id,
            actor_name=actor.display_name,
            action=workflow_action.value,
            from_status=submission.status,
            to_status=rule.to_status,
            department=updated.department,
            comment=comment,
            timestamp=step.occurred_at,
            correlation_id=correlation_id
        )

        logger.info(
            f"Transition {submission.status.value} -> {rule.to_status.value}",
            extra={
                "submission_id": submission_id,
                "actor_id": actor.user_id,
                "action": workflow_action.value,
                "from_status": submission.status.value,
                "to_status": rule.to_status.value,
                "version": updated.version,
            }
        )

        emission_errors = self._emit(event, updated, actor)
        return TransitionOutcome(
            submission=updated,
            step=step,
            event=event,
            emission_errors=emission_errors
        )

    def submit(self, submission_id: str, actor: ActorContext, **kwargs) -> TransitionOutcome:
        """Submit a draft for verification"""
        return self.apply_transition(submission_id, actor, WorkflowAction.SUBMIT, **kwargs)

    def start_verification(self, submission_id: str, actor: ActorContext, **kwargs) -> TransitionOutcome:
        """Pick up a submitted form for verification"""
        return self.apply_transition(submission_id, actor, WorkflowAction.START_VERIFICATION, **kwargs)

    def complete_verification(
        self,
        submission_id: str,
        actor: ActorContext,
        comment: Optional[str] = None,
        **kwargs
    ) -> TransitionOutcome:
        """Mark a form under verification as verified"""
        return self.apply_transition(
            submission_id, actor, WorkflowAction.COMPLETE_VERIFICATION, comment=comment, **kwargs
        )

    def approve(
        self,
        submission_id: str,
        actor: ActorContext,
        comment: Optional[str] = None,
        **kwargs
    ) -> TransitionOutcome:
        """Give final approval to a verified form"""
        return self.apply_transition(submission_id, actor, WorkflowAction.APPROVE, comment=comment, **kwargs)

    def reject(self, submission_id: str, actor: ActorContext, comment: str, **kwargs) -> TransitionOutcome:
        """Reject a form under verification or awaiting approval"""
        return self.apply_transition(submission_id, actor, WorkflowAction.REJECT, comment=comment, **kwargs)

    def available_actions(self, submission: Submission, actor: ActorContext) -> List[WorkflowAction]:
        """Actions the actor may currently perform on the submission"""
        return self.guard.get_available_actions(actor, submission)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _build_step(
        self,
        rule: TransitionRule,
        actor: ActorContext,
        comment: Optional[str]
    ) -> WorkflowStep:
        return WorkflowStep(
            step_id=generate_workflow_step_id(),
            action=rule.action,
            step_kind=rule.step_kind,
            outcome=rule.outcome,
            actor_id=actor.user_id,
            actor_name=actor.display_name,
            comment=comment,
            occurred_at=utc_now(),
            status_after=rule.to_status
        )

    def _emit(self, event: TransitionEvent, submission: Submission, actor: ActorContext) -> List[str]:
        """Send audit and notifier events; failures never undo the commit"""
        errors: List[str] = []

        try:
            self.audit_writer.write_transition(event, actor)
        except Exception as e:
            errors.append(f"audit: {e}")
            logger.error(
                f"Audit emission failed: {e}",
                extra={"submission_id": event.submission_id, "action": event.action}
            )

        try:
            self.notifier.notify(event, submission)
        except Exception as e:
            errors.append(f"notifier: {e}")
            logger.error(
                f"Notification emission failed: {e}",
                extra={"submission_id": event.submission_id, "action": event.action}
            )

        return errors

    def _audit_failure(
        self,
        submission: Submission,
        action: WorkflowAction,
        actor: ActorContext,
        error: DomainError,
        correlation_id: Optional[str]
    ) -> None:
        logger.info(
            f"Transition rejected: {error.message}",
            extra={
                "submission_id": submission.submission_id,
                "actor_id": actor.user_id,
                "action": action.value,
                "status": submission.status.value,
                "error_code": error.error_code,
            }
        )
        try:
            self.audit_writer.write_failure(
                submission.submission_id,
                action.value,
                actor,
                error,
                submission=submission,
                correlation_id=correlation_id
            )
        except Exception as e:
            logger.error(
                f"Failure audit emission failed: {e}",
                extra={"submission_id": submission.submission_id, "action": action.value}
            )

