"""
Custom exceptions for the Fieldtrain platform.

Every failure the registration core can produce is a named subclass of
``FieldTrainingError`` carrying a stable ``error_code`` so the presentation
layer can map it to a localized message.
"""

from typing import Optional, Any, Dict


class FieldTrainingError(Exception):
    """Base exception for all Fieldtrain-related errors."""

    default_code = "ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Structured form used by the API layer."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(FieldTrainingError):
    """Raised when input data is malformed or out of range."""
    default_code = "VALIDATION_ERROR"


class AuthorizationError(FieldTrainingError):
    """Raised when the acting user's role does not permit the action."""
    default_code = "FORBIDDEN"


class NotFoundError(FieldTrainingError):
    """Raised when a referenced student, group, course or assignment does not exist."""
    default_code = "NOT_FOUND"


class CapacityExceededError(FieldTrainingError):
    """Raised by the ledger when a group has no free seat."""
    default_code = "CAPACITY_EXCEEDED"


class GroupFullError(CapacityExceededError):
    """Raised by the registration workflow when the target group is full."""
    default_code = "GROUP_FULL"


class DuplicateActiveAssignmentError(FieldTrainingError):
    """Raised by the ledger when a student already holds a seat in the course."""
    default_code = "DUPLICATE_ACTIVE_ASSIGNMENT"


class AlreadyRegisteredError(DuplicateActiveAssignmentError):
    """Raised by the registration workflow for a second registration in a course."""
    default_code = "ALREADY_REGISTERED"


class CourseNotOpenError(FieldTrainingError):
    """Raised when registering against a completed or cancelled course."""
    default_code = "COURSE_NOT_OPEN"


class NotRegisteredError(FieldTrainingError):
    """Raised when cancelling a registration that does not exist."""
    default_code = "NOT_REGISTERED"


class AlreadyCancelledError(FieldTrainingError):
    """Raised when cancelling an assignment that is already cancelled."""
    default_code = "ALREADY_CANCELLED"


class EvaluationLockedError(FieldTrainingError):
    """Raised when grading an assignment of an archived course."""
    default_code = "EVALUATION_LOCKED"


class ConcurrencyError(FieldTrainingError):
    """Raised when concurrency control fails."""
    default_code = "CONCURRENCY_ERROR"


class BusyError(ConcurrencyError):
    """Raised when a lock could not be acquired in time; the caller should retry."""
    default_code = "BUSY"


class PersistenceError(FieldTrainingError):
    """Raised when persistence operations fail."""
    default_code = "PERSISTENCE_ERROR"


class ConfigurationError(FieldTrainingError):
    """Raised when configuration is invalid."""
    default_code = "CONFIGURATION_ERROR"
