"""Tests for the workflow engine"""
import pytest

from docuflow.domain.models import derive_status
from docuflow.domain.enums import (
    SubmissionStatus, WorkflowAction, StepKind, StepOutcome, AuditStatus, NotificationStatus
)
from docuflow.domain.errors import (
    ValidationError, InvalidTransitionError, UnauthorizedError, SubmissionNotFoundError,
    ConcurrentModificationError
)
from docuflow.engine.audit_writer import AuditWriter
from docuflow.engine.engine import WorkflowEngine
from docuflow.engine.transition_resolver import TRANSITION_RULES

from .conftest import RecordingNotifier, FailingAuditRepository


def test_full_approval_scenario(engine, make_draft, operator, supervisor, auditor):
    s1 = make_draft(operator)

    lengths = []
    for action, actor in [
        (WorkflowAction.SUBMIT, operator),
        (WorkflowAction.START_VERIFICATION, supervisor),
        (WorkflowAction.COMPLETE_VERIFICATION, supervisor),
        (WorkflowAction.APPROVE, auditor),
    ]:
        outcome = engine.apply_transition(s1.submission_id, actor, action)
        lengths.append(len(outcome.submission.workflow_history))

    assert lengths == [1, 2, 3, 4]
    final = engine.repo.load(s1.submission_id)
    assert final.status == SubmissionStatus.APPROVED
    assert final.version == 5
    assert final.completed_at is not None

    with pytest.raises(InvalidTransitionError):
        engine.reject(s1.submission_id, auditor, comment="too late")
    assert len(engine.repo.load(s1.submission_id).workflow_history) == 4


def test_outcome_reports_statuses_and_step(engine, make_draft, operator):
    draft = make_draft(operator)
    outcome = engine.submit(draft.submission_id, operator)

    assert outcome.from_status == SubmissionStatus.DRAFT
    assert outcome.to_status == SubmissionStatus.SUBMITTED
    assert outcome.step.action == WorkflowAction.SUBMIT
    assert outcome.step.step_kind == StepKind.VERIFICATION
    assert outcome.step.outcome == StepOutcome.PENDING
    assert outcome.step.actor_id == operator.user_id
    assert outcome.step.status_after == SubmissionStatus.SUBMITTED
    assert outcome.submission.submitted_at is not None
    assert outcome.emission_errors == []


@pytest.mark.parametrize("status", [
    SubmissionStatus.DRAFT,
    SubmissionStatus.SUBMITTED,
    SubmissionStatus.UNDER_VERIFICATION,
    SubmissionStatus.VERIFIED,
])
def test_actions_outside_table_are_invalid(engine, make_draft, drive, operator, admin, status):
    draft = make_draft(operator)
    before = drive(draft.submission_id, status)
    legal = {rule.action for rule in TRANSITION_RULES if rule.from_status == status}

    for action in WorkflowAction:
        if action in legal:
            continue
        with pytest.raises(InvalidTransitionError):
            engine.apply_transition(draft.submission_id, admin, action, comment="reason")

    after = engine.repo.load(draft.submission_id)
    assert after.version == before.version
    assert after.workflow_history == before.workflow_history


def test_denied_actor_leaves_no_trace(engine, make_draft, drive, operator, other_supervisor, audit_repo):
    draft = make_draft(operator)
    before = drive(draft.submission_id, SubmissionStatus.SUBMITTED)

    with pytest.raises(UnauthorizedError):
        engine.start_verification(draft.submission_id, other_supervisor)

    after = engine.repo.load(draft.submission_id)
    assert after.version == before.version
    assert len(after.workflow_history) == len(before.workflow_history)

    failures = [
        e for e in audit_repo.get_events_for_submission(draft.submission_id)
        if e.status == AuditStatus.FAILURE
    ]
    assert len(failures) == 1
    assert failures[0].actor_id == other_supervisor.user_id
    assert failures[0].details["error_code"] == "UNAUTHORIZED"


@pytest.mark.parametrize("comment", [None, "", "   "])
def test_reject_requires_comment(engine, make_draft, drive, operator, supervisor, comment):
    draft = make_draft(operator)
    drive(draft.submission_id, SubmissionStatus.UNDER_VERIFICATION)

    with pytest.raises(ValidationError):
        engine.apply_transition(draft.submission_id, supervisor, WorkflowAction.REJECT, comment=comment)
    assert engine.repo.load(draft.submission_id).status == SubmissionStatus.UNDER_VERIFICATION


def test_reject_comment_checked_before_load(engine, operator):
    # No such submission: the missing comment wins over NotFound
    with pytest.raises(ValidationError):
        engine.reject("SUB-missing", operator, comment="")


def test_oversized_comment_is_rejected(engine, make_draft, drive, operator, supervisor):
    draft = make_draft(operator)
    drive(draft.submission_id, SubmissionStatus.UNDER_VERIFICATION)
    with pytest.raises(ValidationError):
        engine.complete_verification(draft.submission_id, supervisor, comment="x" * 1001)


def test_unknown_action_is_validation_error(engine, make_draft, operator):
    draft = make_draft(operator)
    with pytest.raises(ValidationError):
        engine.apply_transition(draft.submission_id, operator, "escalate")


def test_missing_submission(engine, operator):
    with pytest.raises(SubmissionNotFoundError):
        engine.submit("SUB-missing", operator)


def test_reject_from_verification_and_approval(engine, make_draft, drive, operator, supervisor, auditor):
    first = make_draft(operator)
    drive(first.submission_id, SubmissionStatus.UNDER_VERIFICATION)
    outcome = engine.reject(first.submission_id, supervisor, comment="Readings missing")
    assert outcome.step.step_kind == StepKind.VERIFICATION
    assert outcome.step.comment == "Readings missing"
    assert outcome.submission.status == SubmissionStatus.REJECTED

    second = make_draft(operator)
    drive(second.submission_id, SubmissionStatus.VERIFIED)
    outcome = engine.reject(second.submission_id, auditor, comment="Wrong template")
    assert outcome.step.step_kind == StepKind.APPROVAL
    assert outcome.submission.status == SubmissionStatus.REJECTED


@pytest.mark.parametrize("terminal_action", ["approve", "reject"])
def test_terminal_submissions_are_immutable(engine, make_draft, drive, operator, admin, auditor, terminal_action):
    draft = make_draft(operator)
    drive(draft.submission_id, SubmissionStatus.VERIFIED)
    engine.apply_transition(draft.submission_id, auditor, terminal_action, comment="final")

    for action in WorkflowAction:
        with pytest.raises(InvalidTransitionError):
            engine.apply_transition(draft.submission_id, admin, action, comment="again")


def test_history_is_append_only_and_replayable(engine, make_draft, drive, operator, auditor):
    draft = make_draft(operator)
    snapshots = []
    drive(draft.submission_id, SubmissionStatus.VERIFIED)
    engine.approve(draft.submission_id, auditor)
    final = engine.repo.load(draft.submission_id)

    history = final.workflow_history
    for i in range(1, len(history) + 1):
        snapshots.append(derive_status(history[:i]))
        assert snapshots[-1] == history[i - 1].status_after

    assert snapshots == [
        SubmissionStatus.SUBMITTED,
        SubmissionStatus.UNDER_VERIFICATION,
        SubmissionStatus.VERIFIED,
        SubmissionStatus.APPROVED,
    ]
    assert derive_status(history) == final.status
    assert [s.occurred_at for s in history] == sorted(s.occurred_at for s in history)


def test_success_emits_audit_and_notification(engine, make_draft, operator, audit_repo, notification_repo):
    draft = make_draft(operator)
    engine.submit(draft.submission_id, operator, correlation_id="COR-test")

    events = audit_repo.get_events_for_submission(draft.submission_id)
    assert len(events) == 1
    assert events[0].action == "submit_form"
    assert events[0].status == AuditStatus.SUCCESS
    assert events[0].status_before == SubmissionStatus.DRAFT
    assert events[0].status_after == SubmissionStatus.SUBMITTED
    assert events[0].correlation_id == "COR-test"

    queued = notification_repo.get_notifications_for_submission(draft.submission_id)
    assert len(queued) == 1
    assert queued[0].new_status == SubmissionStatus.SUBMITTED
    assert queued[0].status == NotificationStatus.PENDING
    assert queued[0].recipient_roles == ["Supervisor"]


def test_emission_failures_do_not_roll_back(repo, make_draft, operator, guard):
    engine = WorkflowEngine(
        repo=repo,
        audit_writer=AuditWriter(FailingAuditRepository()),
        notifier=RecordingNotifier(fail=True),
        guard=guard
    )
    draft = make_draft(operator)

    outcome = engine.submit(draft.submission_id, operator)

    assert outcome.submission.status == SubmissionStatus.SUBMITTED
    assert repo.load(draft.submission_id).status == SubmissionStatus.SUBMITTED
    assert len(outcome.emission_errors) == 2
    assert outcome.emission_errors[0].startswith("audit:")
    assert outcome.emission_errors[1].startswith("notifier:")


def test_stale_version_is_a_concurrent_modification(repo, make_draft, operator, engine):
    draft = make_draft(operator)
    step = engine._build_step(
        engine.resolver.resolve(SubmissionStatus.DRAFT, WorkflowAction.SUBMIT), operator, None
    )
    repo.commit(draft.submission_id, 1, SubmissionStatus.SUBMITTED, step)

    with pytest.raises(ConcurrentModificationError):
        repo.commit(draft.submission_id, 1, SubmissionStatus.SUBMITTED, step)


def test_available_actions(engine, make_draft, drive, operator, supervisor, auditor):
    draft = make_draft(operator)
    submission = drive(draft.submission_id, SubmissionStatus.UNDER_VERIFICATION)

    assert engine.available_actions(submission, supervisor) == [
        WorkflowAction.COMPLETE_VERIFICATION, WorkflowAction.REJECT
    ]
    assert engine.available_actions(submission, auditor) == []
    assert engine.available_actions(submission, operator) == []


def test_department_preserved(engine, make_draft, drive, operator, auditor):
    draft = make_draft(operator)
    drive(draft.submission_id, SubmissionStatus.VERIFIED)
    outcome = engine.approve(draft.submission_id, auditor)
    assert outcome.submission.department == "QC"
    assert outcome.event.department == "QC"
