"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class SubmissionStatus(str, Enum):
    """Global submission status"""
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    UNDER_VERIFICATION = "Under Verification"
    VERIFIED = "Verified"
    APPROVED = "Approved"
    REJECTED = "Rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (SubmissionStatus.APPROVED, SubmissionStatus.REJECTED)


class WorkflowAction(str, Enum):
    """Actions that drive a submission through the pipeline"""
    SUBMIT = "submit"
    START_VERIFICATION = "start_verification"
    COMPLETE_VERIFICATION = "complete_verification"
    APPROVE = "approve"
    REJECT = "reject"


class StepKind(str, Enum):
    """Stage a workflow step belongs to"""
    VERIFICATION = "verification"
    APPROVAL = "approval"


class StepOutcome(str, Enum):
    """Outcome recorded on a workflow step"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Role(str, Enum):
    """Platform roles"""
    ADMIN = "Admin"
    SUPERVISOR = "Supervisor"
    LINE_INCHARGE = "Line Incharge"
    OPERATOR = "Operator"
    AUDITOR = "Auditor"


# Roles allowed to author (create, edit, submit) submissions
AUTHORING_ROLES = frozenset({
    Role.ADMIN,
    Role.SUPERVISOR,
    Role.LINE_INCHARGE,
    Role.OPERATOR,
})


class Priority(str, Enum):
    """Submission priority"""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class AuditAction(str, Enum):
    """Audit log action names"""
    CREATE_FORM_SUBMISSION = "create_form_submission"
    UPDATE_FORM_SUBMISSION = "update_form_submission"
    CLONE_FORM_SUBMISSION = "clone_form_submission"
    SUBMIT_FORM = "submit_form"
    START_VERIFICATION = "start_verification"
    VERIFY_FORM = "verify_form"
    APPROVE_FORM = "approve_form"
    REJECT_FORM = "reject_form"


# Audit action recorded for each workflow action
WORKFLOW_AUDIT_ACTIONS = {
    WorkflowAction.SUBMIT: AuditAction.SUBMIT_FORM,
    WorkflowAction.START_VERIFICATION: AuditAction.START_VERIFICATION,
    WorkflowAction.COMPLETE_VERIFICATION: AuditAction.VERIFY_FORM,
    WorkflowAction.APPROVE: AuditAction.APPROVE_FORM,
    WorkflowAction.REJECT: AuditAction.REJECT_FORM,
}


class AuditResourceType(str, Enum):
    """Resource types referenced by audit events"""
    FORM_SUBMISSION = "form_submission"


class AuditStatus(str, Enum):
    """Audit event result"""
    SUCCESS = "success"
    FAILURE = "failure"
    WARNING = "warning"


class NotificationStatus(str, Enum):
    """Notification outbox status"""
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
