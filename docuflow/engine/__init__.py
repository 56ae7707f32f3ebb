"""Workflow Engine - Submission state machine and its guards"""
from .engine import WorkflowEngine
from .permission_guard import PermissionGuard
from .transition_resolver import TransitionResolver, TransitionRule, TRANSITION_RULES
from .audit_writer import AuditWriter

__all__ = [
    "WorkflowEngine",
    "PermissionGuard",
    "TransitionResolver",
    "TransitionRule",
    "TRANSITION_RULES",
    "AuditWriter",
]
