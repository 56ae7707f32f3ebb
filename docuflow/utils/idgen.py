"""ID Generation Utilities"""
import uuid
from datetime import datetime, timezone
from typing import Optional


def generate_id(prefix: Optional[str] = None) -> str:
    """
    Generate a unique ID with optional prefix

    Args:
        prefix: Optional prefix for the ID (e.g., 'STEP', 'AUD')

    Returns:
        Unique ID string

    Examples:
        >>> generate_id('STEP')
        'STEP-a1b2c3d4e5f6'
        >>> generate_id()
        'a1b2c3d4e5f6'
    """
    unique_part = uuid.uuid4().hex[:12]

    if prefix:
        return f"{prefix}-{unique_part}"
    return unique_part


def generate_submission_id() -> str:
    """
    Generate submission ID with the creation date embedded

    Returns:
        ID like 'SUB-20260117-1a2b3c4d'
    """
    date_part = datetime.now(timezone.utc).strftime("%Y%m%d")
    return f"SUB-{date_part}-{uuid.uuid4().hex[:8]}"


def generate_workflow_step_id() -> str:
    """Generate workflow step ID"""
    return generate_id("STEP")


def generate_audit_event_id() -> str:
    """Generate audit event ID"""
    return generate_id("AUD")


def generate_notification_id() -> str:
    """Generate notification ID"""
    return generate_id("NTF")


def generate_correlation_id() -> str:
    """
    Generate a correlation ID for request tracing

    Returns:
        Correlation ID string with timestamp prefix
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    unique_part = uuid.uuid4().hex[:8]
    return f"COR-{timestamp}-{unique_part}"
