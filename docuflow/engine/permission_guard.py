"""Permission Guard - Authorization enforcement for submission transitions"""
from typing import List, Optional, Union

from ..domain.models import Submission, ActorContext
from ..domain.enums import Role, WorkflowAction, AUTHORING_ROLES
from ..domain.errors import UnauthorizedError
from ..config.settings import settings
from ..utils.logger import get_logger
from .transition_resolver import TransitionResolver

logger = get_logger(__name__)


class PermissionGuard:
    """
    Permission enforcement for submission transitions

    Rules:
    - Unknown roles and actions are denied
    - Nothing is authorized against a submission in a terminal status
    - Only the owner (or an Admin) can submit a draft
    - Admin is authorized for every other action regardless of department
    - Other roles must be listed on the edge and belong to the submission's department
    - With self-approval prevention on, the submitter cannot act past submit
    """

    def __init__(
        self,
        resolver: Optional[TransitionResolver] = None,
        prevent_self_approval: Optional[bool] = None
    ):
        self._resolver = resolver or TransitionResolver()
        if prevent_self_approval is None:
            prevent_self_approval = settings.prevent_self_approval
        self.prevent_self_approval = prevent_self_approval

    def denial_reason(
        self,
        actor: ActorContext,
        submission: Submission,
        action: Union[WorkflowAction, str]
    ) -> Optional[str]:
        """
        Explain why the actor may not perform the action, or None if allowed
        """
        role = actor.known_role
        if role is None:
            return f"Unknown role '{actor.role}'"

        try:
            action = WorkflowAction(action)
        except ValueError:
            return f"Unknown action '{action}'"

        if submission.status.is_terminal:
            return f"Submission is in terminal status '{submission.status.value}'"

        rule = self._resolver.find_rule(submission.status, action)
        if rule is None:
            return f"Action '{action.value}' is not available in status '{submission.status.value}'"

        is_owner = actor.user_id == submission.submitted_by

        if rule.owner_only:
            if role == Role.ADMIN:
                return None
            if role not in AUTHORING_ROLES:
                return f"Role '{role.value}' cannot author submissions"
            if not is_owner:
                return "Only the owner of the draft can submit it"
            if not actor.department or actor.department != submission.department:
                return "You can only act on submissions from your department"
            return None

        if self.prevent_self_approval and is_owner:
            return "Submitters cannot verify, approve or reject their own submission"

        if role == Role.ADMIN:
            return None

        if role not in rule.allowed_roles:
            return f"Role '{role.value}' cannot {action.value} in status '{submission.status.value}'"

        if not actor.department or actor.department != submission.department:
            return "You can only act on submissions from your department"

        return None

    def is_authorized(
        self,
        actor: ActorContext,
        submission: Submission,
        action: Union[WorkflowAction, str]
    ) -> bool:
        """Check if actor may perform action on submission"""
        return self.denial_reason(actor, submission, action) is None

    def require(
        self,
        actor: ActorContext,
        submission: Submission,
        action: WorkflowAction
    ) -> None:
        """
        Raise if the actor may not perform the action

        Raises:
            UnauthorizedError: With the denial reason
        """
        reason = self.denial_reason(actor, submission, action)
        if reason is None:
            return

        logger.info(
            f"Permission denied: {reason}",
            extra={
                "submission_id": submission.submission_id,
                "actor_id": actor.user_id,
                "action": getattr(action, "value", action),
                "status": submission.status.value,
                "department": submission.department,
            }
        )
        raise UnauthorizedError(
            reason,
            details={
                "action": getattr(action, "value", action),
                "role": actor.role,
                "status": submission.status.value,
            }
        )

    def get_available_actions(
        self,
        actor: ActorContext,
        submission: Submission
    ) -> List[WorkflowAction]:
        """Get list of actions actor can perform on the submission"""
        return [
            action for action in self._resolver.actions_from(submission.status)
            if self.is_authorized(actor, submission, action)
        ]

    def can_view(self, actor: ActorContext, submission: Submission) -> bool:
        """Operators see their own submissions; everyone else their department"""
        role = actor.known_role
        if role is None:
            return False
        if role == Role.ADMIN:
            return True
        if actor.department != submission.department:
            return False
        if role == Role.OPERATOR:
            return actor.user_id == submission.submitted_by
        return True

    def can_edit_draft(self, actor: ActorContext, submission: Submission) -> bool:
        """Owner or Admin can edit field data while the submission is a Draft"""
        if actor.known_role is None:
            return False
        if actor.is_admin:
            return True
        return actor.user_id == submission.submitted_by
