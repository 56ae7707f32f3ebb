"""
Pytest Configuration and Fixtures

This file contains shared fixtures and configuration for all tests.
"""

import os
import tempfile

# Settings are read at import time; tests never touch MongoDB or start the dispatcher
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("PREVENT_SELF_APPROVAL", "true")
os.environ.setdefault("LOGS_PATH", os.path.join(tempfile.gettempdir(), "docuflow-test-logs"))
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from typing import Any, Callable, Dict, List

from docuflow.domain.models import ActorContext, Submission, AuditEvent
from docuflow.domain.enums import Role, SubmissionStatus
from docuflow.engine.audit_writer import AuditWriter
from docuflow.engine.engine import WorkflowEngine
from docuflow.engine.permission_guard import PermissionGuard
from docuflow.repositories.memory_repo import (
    InMemorySubmissionRepository, InMemoryAuditRepository, InMemoryNotificationRepository
)
from docuflow.services.notification_service import NotificationService, LoggingTransport
from docuflow.services.submission_service import SubmissionService
from docuflow.utils.idgen import generate_submission_id
from docuflow.utils.time import utc_now


# =============================================================================
# Actors
# =============================================================================

@pytest.fixture
def operator() -> ActorContext:
    """U1: operator in QC who files submissions"""
    return ActorContext(user_id="U1", display_name="Una Operator", role=Role.OPERATOR.value, department="QC")


@pytest.fixture
def line_incharge() -> ActorContext:
    return ActorContext(user_id="U2", display_name="Lin Incharge", role=Role.LINE_INCHARGE.value, department="QC")


@pytest.fixture
def supervisor() -> ActorContext:
    return ActorContext(user_id="U3", display_name="Sid Supervisor", role=Role.SUPERVISOR.value, department="QC")


@pytest.fixture
def auditor() -> ActorContext:
    return ActorContext(user_id="U4", display_name="Aud Auditor", role=Role.AUDITOR.value, department="QC")


@pytest.fixture
def admin() -> ActorContext:
    return ActorContext(user_id="U5", display_name="Adi Admin", role=Role.ADMIN.value, department="Head Office")


@pytest.fixture
def other_supervisor() -> ActorContext:
    """Supervisor from a different department"""
    return ActorContext(user_id="U6", display_name="Pat Paint", role=Role.SUPERVISOR.value, department="Paint")


# =============================================================================
# Collaborators
# =============================================================================

class RecordingNotifier:
    """Notifier double that records every event it is handed"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.events: List[Any] = []

    def notify(self, event, submission):
        if self.fail:
            raise RuntimeError("notifier offline")
        self.events.append(event)


class FailingAuditRepository(InMemoryAuditRepository):
    """Audit store whose writes always fail"""

    def create_event(self, event: AuditEvent) -> AuditEvent:
        raise RuntimeError("audit store offline")


@pytest.fixture
def repo() -> InMemorySubmissionRepository:
    return InMemorySubmissionRepository()


@pytest.fixture
def audit_repo() -> InMemoryAuditRepository:
    return InMemoryAuditRepository()


@pytest.fixture
def notification_repo() -> InMemoryNotificationRepository:
    return InMemoryNotificationRepository()


@pytest.fixture
def notification_service(notification_repo) -> NotificationService:
    return NotificationService(notification_repo, transport=LoggingTransport())


@pytest.fixture
def guard() -> PermissionGuard:
    return PermissionGuard(prevent_self_approval=True)


@pytest.fixture
def engine(repo, audit_repo, notification_service, guard) -> WorkflowEngine:
    return WorkflowEngine(
        repo=repo,
        audit_writer=AuditWriter(audit_repo),
        notifier=notification_service,
        guard=guard
    )


@pytest.fixture
def service(repo, audit_repo, notification_service, guard) -> SubmissionService:
    return SubmissionService(
        repo=repo,
        audit_repo=audit_repo,
        notification_service=notification_service,
        guard=guard
    )


# =============================================================================
# Submissions
# =============================================================================

@pytest.fixture
def make_draft(repo) -> Callable[..., Submission]:
    """Factory storing a fresh Draft in the in-memory repository"""

    def _make(owner: ActorContext, department: str = "QC", **overrides: Dict[str, Any]) -> Submission:
        now = utc_now()
        data: Dict[str, Any] = {
            "submission_id": generate_submission_id(),
            "template_id": "TPL-1",
            "title": "Daily machine check",
            "department": department,
            "status": SubmissionStatus.DRAFT,
            "submitted_by": owner.user_id,
            "created_at": now,
            "updated_at": now,
        }
        data.update(overrides)
        return repo.create(Submission(**data))

    return _make


@pytest.fixture
def drive(engine, operator, supervisor):
    """Walk a submission to a target status using the standard actors"""
    path = {
        SubmissionStatus.DRAFT: [],
        SubmissionStatus.SUBMITTED: [("submit", operator)],
        SubmissionStatus.UNDER_VERIFICATION: [("submit", operator), ("start_verification", supervisor)],
        SubmissionStatus.VERIFIED: [
            ("submit", operator), ("start_verification", supervisor), ("complete_verification", supervisor)
        ],
    }

    def _drive(submission_id: str, target: SubmissionStatus) -> Submission:
        submission = None
        for action, actor in path[target]:
            submission = engine.apply_transition(submission_id, actor, action).submission
        return submission or engine.repo.load(submission_id)

    return _drive
