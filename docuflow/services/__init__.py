"""Service modules - Business logic layer"""
from .submission_service import SubmissionService, build_submission_service, get_submission_service
from .notification_service import NotificationService

__all__ = [
    "SubmissionService",
    "build_submission_service",
    "get_submission_service",
    "NotificationService",
]
