"""
Enumerations and constants for the Fieldtrain platform.
"""

from enum import Enum
from typing import FrozenSet


class Role(Enum):
    """Roles an acting user can hold."""
    ADMIN = "admin"
    SUPERVISOR = "supervisor"
    STUDENT = "student"


class CourseStatus(Enum):
    """Lifecycle of a training course."""
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_open(self) -> bool:
        """Registration is accepted for upcoming and active courses."""
        return self in (CourseStatus.UPCOMING, CourseStatus.ACTIVE)


class GroupStatus(Enum):
    """Lifecycle of a training group."""
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AssignmentStatus(Enum):
    """Status of a student's assignment to a group."""
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses that hold a seat in a group. Completed assignments keep theirs.
SEAT_OCCUPYING_STATUSES: FrozenSet[AssignmentStatus] = frozenset({
    AssignmentStatus.PENDING,
    AssignmentStatus.ACTIVE,
    AssignmentStatus.COMPLETED,
})

# Statuses an assignment can still leave by cancel, transfer or confirm.
OPEN_ASSIGNMENT_STATUSES: FrozenSet[AssignmentStatus] = frozenset({
    AssignmentStatus.PENDING,
    AssignmentStatus.ACTIVE,
})

# Statuses that count as "registered" for the one-assignment-per-course rule.
NON_CANCELLED_STATUSES: FrozenSet[AssignmentStatus] = frozenset({
    AssignmentStatus.PENDING,
    AssignmentStatus.ACTIVE,
    AssignmentStatus.COMPLETED,
})


class ActivityAction(Enum):
    """Actions recorded in the activity log."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    DEACTIVATE = "deactivate"
    REGISTER = "register"
    CANCEL = "cancel"
    TRANSFER = "transfer"
    CONFIRM = "confirm"
    EVALUATE = "evaluate"
    COMPLETE = "complete"
    STATUS_CHANGE = "status_change"
    GROUP_ENDED = "group_ended"


class NotificationType(Enum):
    """Severity of a user notification."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"


class ActivityStoreType(Enum):
    """Supported activity log backends."""
    MEMORY = "memory"
    FILE = "file"
    DATABASE = "database"
