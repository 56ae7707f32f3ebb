"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400
    retryable: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "retryable": self.retryable,
                "details": self.details
            }
        }


# Authentication & Authorization Errors
class AuthenticationError(DomainError):
    """Token missing, invalid, or expired"""
    error_code = "AUTHENTICATION_ERROR"
    http_status = 401


class UnauthorizedError(DomainError):
    """Actor lacks role/department permission for the action"""
    error_code = "UNAUTHORIZED"
    http_status = 403


# Validation Errors
class ValidationError(DomainError):
    """Input validation failed (e.g. missing reject comment)"""
    error_code = "VALIDATION_ERROR"
    http_status = 400


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class SubmissionNotFoundError(NotFoundError):
    """Submission not found"""
    error_code = "SUBMISSION_NOT_FOUND"


# Conflict Errors
class ConflictError(DomainError):
    """Resource conflict"""
    error_code = "CONFLICT"
    http_status = 409


class InvalidTransitionError(ConflictError):
    """Action not valid for the submission's current status"""
    error_code = "INVALID_TRANSITION"


class ConcurrentModificationError(ConflictError):
    """Optimistic concurrency conflict - re-read and retry"""
    error_code = "CONCURRENT_MODIFICATION"
    retryable = True


# Infrastructure Errors
class RepositoryUnavailableError(DomainError):
    """Transient storage failure"""
    error_code = "REPOSITORY_UNAVAILABLE"
    http_status = 503
    retryable = True
