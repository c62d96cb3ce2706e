"""
Core module containing the domain model, error taxonomy and grading.
"""

from .entities import *
from .interfaces import *
from .exceptions import *
from .enums import *
from .grading import GradeCalculator, compute_final_grade
from .access import Actor, Permission, SYSTEM_ACTOR, authorize

__all__ = [
    # Entities
    "AbstractEntity",
    "Student",
    "Supervisor",
    "TrainingSite",
    "TrainingCourse",
    "TrainingGroup",
    "Assignment",
    "Evaluation",
    "ActivityEvent",
    "Notification",

    # Interfaces
    "Repository",
    "EventHandler",
    "ActivityLogStore",

    # Enums
    "Role",
    "CourseStatus",
    "GroupStatus",
    "AssignmentStatus",
    "ActivityAction",
    "NotificationType",
    "ActivityStoreType",
    "SEAT_OCCUPYING_STATUSES",
    "NON_CANCELLED_STATUSES",
    "OPEN_ASSIGNMENT_STATUSES",

    # Exceptions
    "FieldTrainingError",
    "ValidationError",
    "AuthorizationError",
    "NotFoundError",
    "CapacityExceededError",
    "GroupFullError",
    "DuplicateActiveAssignmentError",
    "AlreadyRegisteredError",
    "CourseNotOpenError",
    "NotRegisteredError",
    "AlreadyCancelledError",
    "EvaluationLockedError",
    "ConcurrencyError",
    "BusyError",
    "PersistenceError",
    "ConfigurationError",

    # Grading and access
    "GradeCalculator",
    "compute_final_grade",
    "Actor",
    "Permission",
    "SYSTEM_ACTOR",
    "authorize",
]
