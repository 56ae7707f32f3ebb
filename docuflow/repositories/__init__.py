"""Repository modules - Data access layer"""
from .mongo_client import get_database, get_collection
from .submission_repo import MongoSubmissionRepository, SubmissionQuery, SubmissionRepository
from .audit_repo import AuditRepository
from .notification_repo import NotificationRepository
from .memory_repo import (
    InMemorySubmissionRepository, InMemoryAuditRepository, InMemoryNotificationRepository
)

__all__ = [
    "get_database",
    "get_collection",
    "MongoSubmissionRepository",
    "SubmissionQuery",
    "SubmissionRepository",
    "AuditRepository",
    "NotificationRepository",
    "InMemorySubmissionRepository",
    "InMemoryAuditRepository",
    "InMemoryNotificationRepository",
]
