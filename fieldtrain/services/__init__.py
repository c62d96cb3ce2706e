"""
Services module containing the registration core and its supporting services.
"""

from .concurrency_manager import ConcurrencyManager, LockType, LockInfo
from .capacity_tracker import CapacityTracker
from .assignment_ledger import AssignmentLedger
from .event_service import EventService
from .registration_workflow import RegistrationWorkflow
from .catalog_service import CatalogService
from .evaluation_service import EvaluationService
from .notification_service import NotificationService
from .course_status_service import CourseStatusUpdater

__all__ = [
    "ConcurrencyManager",
    "LockType",
    "LockInfo",
    "CapacityTracker",
    "AssignmentLedger",
    "EventService",
    "RegistrationWorkflow",
    "CatalogService",
    "EvaluationService",
    "NotificationService",
    "CourseStatusUpdater",
]
