"""
Seed Data Script - Creates demo users' tokens and sample submissions
Run: python -m scripts.seed_data
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from docuflow.config.settings import settings
from docuflow.domain.enums import Priority, Role
from docuflow.domain.models import ActorContext
from docuflow.repositories.mongo_client import create_indexes
from docuflow.repositories.submission_repo import SubmissionQuery
from docuflow.services.submission_service import build_submission_service
from docuflow.utils.jwt import create_access_token


DEMO_USERS = [
    ActorContext(user_id="u-admin", display_name="Asha Admin", role=Role.ADMIN.value, department="Quality"),
    ActorContext(user_id="u-super-qc", display_name="Sam Supervisor", role=Role.SUPERVISOR.value, department="QC"),
    ActorContext(user_id="u-line-qc", display_name="Lee Line", role=Role.LINE_INCHARGE.value, department="QC"),
    ActorContext(user_id="u-op-qc", display_name="Omar Operator", role=Role.OPERATOR.value, department="QC"),
    ActorContext(user_id="u-auditor", display_name="Ada Auditor", role=Role.AUDITOR.value, department="QC"),
]


def print_tokens():
    """Print bearer tokens for the demo users"""
    print("Demo bearer tokens:")
    for user in DEMO_USERS:
        token = create_access_token(
            user.user_id,
            role=user.role,
            department=user.department,
            display_name=user.display_name
        )
        print(f"  {user.role:<14} {user.user_id:<12} {token}")
    print()


def create_sample_submissions():
    """Create one draft and walk a second one through verification"""
    if not settings.uses_memory_storage:
        create_indexes()
    service = build_submission_service()
    operator, supervisor = DEMO_USERS[3], DEMO_USERS[1]

    existing = service.repo.count_submissions(SubmissionQuery(department="QC"))
    if existing > 0:
        print("Database already has submissions. Skipping seed.")
        return

    draft = service.create_draft(
        operator,
        template_id="TPL-DAILY-CHECK",
        title="Daily machine check - Line 1",
        field_data={"machine": {"id": "M-101", "oil_level": "ok"}},
        priority=Priority.MEDIUM
    )
    print(f"Created draft {draft.submission_id}")

    sample = service.create_draft(
        operator,
        template_id="TPL-TORQUE",
        title="Torque calibration - Station 4",
        field_data={"readings": [42.1, 41.9, 42.0]},
        priority=Priority.HIGH
    )
    service.transition(sample.submission_id, operator, "submit")
    service.transition(sample.submission_id, supervisor, "start_verification")
    outcome = service.transition(sample.submission_id, supervisor, "complete_verification")
    print(f"Created {sample.submission_id} in status {outcome.to_status.value}")


if __name__ == "__main__":
    print_tokens()
    create_sample_submissions()
