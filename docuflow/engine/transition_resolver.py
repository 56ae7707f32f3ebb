"""Transition Resolver - The fixed submission state table"""
from typing import Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from ..domain.enums import (
    SubmissionStatus, WorkflowAction, StepKind, StepOutcome, Role, AUTHORING_ROLES
)
from ..domain.errors import InvalidTransitionError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class TransitionRule(BaseModel):
    """One legal edge of the submission state machine"""
    model_config = ConfigDict(frozen=True)

    from_status: SubmissionStatus
    action: WorkflowAction
    to_status: SubmissionStatus
    allowed_roles: FrozenSet[Role]
    comment_required: bool = False
    step_kind: StepKind
    outcome: StepOutcome
    owner_only: bool = False


TRANSITION_RULES: Tuple[TransitionRule, ...] = (
    TransitionRule(
        from_status=SubmissionStatus.DRAFT,
        action=WorkflowAction.SUBMIT,
        to_status=SubmissionStatus.SUBMITTED,
        allowed_roles=AUTHORING_ROLES,
        step_kind=StepKind.VERIFICATION,
        outcome=StepOutcome.PENDING,
        owner_only=True,
    ),
    TransitionRule(
        from_status=SubmissionStatus.SUBMITTED,
        action=WorkflowAction.START_VERIFICATION,
        to_status=SubmissionStatus.UNDER_VERIFICATION,
        allowed_roles=frozenset({Role.SUPERVISOR, Role.ADMIN}),
        step_kind=StepKind.VERIFICATION,
        outcome=StepOutcome.PENDING,
    ),
    TransitionRule(
        from_status=SubmissionStatus.UNDER_VERIFICATION,
        action=WorkflowAction.COMPLETE_VERIFICATION,
        to_status=SubmissionStatus.VERIFIED,
        allowed_roles=frozenset({Role.SUPERVISOR, Role.ADMIN}),
        step_kind=StepKind.VERIFICATION,
        outcome=StepOutcome.APPROVED,
    ),
    TransitionRule(
        from_status=SubmissionStatus.UNDER_VERIFICATION,
        action=WorkflowAction.REJECT,
        to_status=SubmissionStatus.REJECTED,
        allowed_roles=frozenset({Role.SUPERVISOR, Role.ADMIN}),
        comment_required=True,
        step_kind=StepKind.VERIFICATION,
        outcome=StepOutcome.REJECTED,
    ),
    TransitionRule(
        from_status=SubmissionStatus.VERIFIED,
        action=WorkflowAction.APPROVE,
        to_status=SubmissionStatus.APPROVED,
        allowed_roles=frozenset({Role.ADMIN, Role.AUDITOR}),
        step_kind=StepKind.APPROVAL,
        outcome=StepOutcome.APPROVED,
    ),
    TransitionRule(
        from_status=SubmissionStatus.VERIFIED,
        action=WorkflowAction.REJECT,
        to_status=SubmissionStatus.REJECTED,
        allowed_roles=frozenset({Role.ADMIN, Role.AUDITOR}),
        comment_required=True,
        step_kind=StepKind.APPROVAL,
        outcome=StepOutcome.REJECTED,
    ),
)

_RULES_BY_EDGE: Dict[Tuple[SubmissionStatus, WorkflowAction], TransitionRule] = {
    (rule.from_status, rule.action): rule for rule in TRANSITION_RULES
}


class TransitionResolver:
    """
    Resolve (current status, action) pairs against the fixed state table

    Terminal states (Approved, Rejected) have no outgoing edges.
    """

    def find_rule(self, status: SubmissionStatus, action: WorkflowAction) -> Optional[TransitionRule]:
        """Return the rule for an edge, or None if the edge is not in the table"""
        return _RULES_BY_EDGE.get((status, action))

    def resolve(self, status: SubmissionStatus, action: WorkflowAction) -> TransitionRule:
        """
        Resolve the rule for an action taken in the given status

        Raises:
            InvalidTransitionError: If the edge is not in the table
        """
        rule = self.find_rule(status, action)
        if rule is None:
            allowed = self.actions_from(status)
            if allowed:
                message = (
                    f"Cannot {action.value} a submission in status '{status.value}'. "
                    f"Allowed actions: {', '.join(a.value for a in allowed)}"
                )
            else:
                message = f"Submission is in terminal status '{status.value}'; no further actions are allowed"
            raise InvalidTransitionError(
                message,
                details={"current_status": status.value, "action": action.value}
            )

        logger.debug(
            f"Resolved transition: {status.value} -> {rule.to_status.value}",
            extra={"action": action.value, "from_status": status.value, "to_status": rule.to_status.value}
        )
        return rule

    def actions_from(self, status: SubmissionStatus) -> List[WorkflowAction]:
        """All actions with an outgoing edge from the given status"""
        return [rule.action for rule in TRANSITION_RULES if rule.from_status == status]

    def rules_into(self, status: SubmissionStatus) -> List[TransitionRule]:
        """All rules that end in the given status"""
        return [rule for rule in TRANSITION_RULES if rule.to_status == status]

    def is_terminal(self, status: SubmissionStatus) -> bool:
        """Terminal statuses have no outgoing edges"""
        return not self.actions_from(status)
