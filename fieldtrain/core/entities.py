"""
Core entities for the Fieldtrain platform.
"""

import uuid
from abc import ABC
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from .enums import (
    ActivityAction, AssignmentStatus, CourseStatus, GroupStatus,
    NotificationType, Role, SEAT_OCCUPYING_STATUSES,
)
from .exceptions import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class AbstractEntity(ABC):
    """Base abstract entity with universal ID, lifecycle timestamps and versioning."""

    def __init__(self, entity_id: Optional[str] = None):
        self._id = entity_id or str(uuid.uuid4())
        self._created_at = utcnow()
        self._updated_at = self._created_at
        self._version = 1
        self._metadata: Dict[str, Any] = {}

    @property
    def id(self) -> str:
        """Get the entity ID."""
        return self._id

    @property
    def created_at(self) -> datetime:
        """Get creation timestamp."""
        return self._created_at

    @property
    def updated_at(self) -> datetime:
        """Get last update timestamp."""
        return self._updated_at

    @property
    def version(self) -> int:
        """Get current version."""
        return self._version

    def update(self, **kwargs) -> None:
        """Update entity with new data."""
        for key, value in kwargs.items():
            if not hasattr(self, f"_{key}"):
                raise ValidationError(f"{self.__class__.__name__} has no field '{key}'")
            setattr(self, f"_{key}", value)
        self._updated_at = utcnow()
        self._version += 1

    def get_metadata(self, key: str) -> Any:
        """Get metadata value."""
        return self._metadata.get(key)

    def set_metadata(self, key: str, value: Any) -> None:
        """Set metadata value."""
        self._metadata[key] = value
        self.update()

    def restore_state(self, data: Dict[str, Any]) -> None:
        """Restore bookkeeping fields from a serialized dictionary."""
        self._created_at = datetime.fromisoformat(data["created_at"])
        self._updated_at = datetime.fromisoformat(data["updated_at"])
        self._version = data.get("version", 1)
        self._metadata = data.get("metadata", {})

    def to_dict(self) -> Dict[str, Any]:
        """Convert entity to dictionary."""
        return {
            'id': self._id,
            'created_at': self._created_at.isoformat(),
            'updated_at': self._updated_at.isoformat(),
            'version': self._version,
            'metadata': self._metadata
        }

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self._id})"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self._id}, version={self._version})"


class Student(AbstractEntity):
    """Student taking part in field training."""

    def __init__(self, university_id: str, name: str, email: Optional[str] = None,
                 faculty_id: Optional[str] = None, major_id: Optional[str] = None,
                 level_id: Optional[str] = None, phone: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        if not university_id or not university_id.strip():
            raise ValidationError("University ID is required")
        if not name or not name.strip():
            raise ValidationError("Student name is required")
        self._university_id = university_id.strip()
        self._name = name.strip()
        self._email = email
        self._phone = phone
        self._faculty_id = faculty_id
        self._major_id = major_id
        self._level_id = level_id
        self._active = True

    @property
    def university_id(self) -> str:
        return self._university_id

    @property
    def name(self) -> str:
        return self._name

    @property
    def email(self) -> Optional[str]:
        return self._email

    @property
    def phone(self) -> Optional[str]:
        return self._phone

    @property
    def faculty_id(self) -> Optional[str]:
        return self._faculty_id

    @property
    def major_id(self) -> Optional[str]:
        return self._major_id

    @property
    def level_id(self) -> Optional[str]:
        return self._level_id

    @property
    def active(self) -> bool:
        return self._active

    def activate(self) -> None:
        self._active = True
        self.update()

    def deactivate(self) -> None:
        """Soft-deactivate; students referenced by assignments are never deleted."""
        self._active = False
        self.update()

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'university_id': self._university_id,
            'name': self._name,
            'email': self._email,
            'phone': self._phone,
            'faculty_id': self._faculty_id,
            'major_id': self._major_id,
            'level_id': self._level_id,
            'active': self._active,
        })
        return base_dict


class Supervisor(AbstractEntity):
    """Academic supervisor responsible for training groups."""

    def __init__(self, name: str, email: Optional[str] = None, faculty_id: Optional[str] = None,
                 department: Optional[str] = None, phone: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        if not name or not name.strip():
            raise ValidationError("Supervisor name is required")
        self._name = name.strip()
        self._email = email
        self._phone = phone
        self._faculty_id = faculty_id
        self._department = department
        self._active = True

    @property
    def name(self) -> str:
        return self._name

    @property
    def email(self) -> Optional[str]:
        return self._email

    @property
    def phone(self) -> Optional[str]:
        return self._phone

    @property
    def faculty_id(self) -> Optional[str]:
        return self._faculty_id

    @property
    def department(self) -> Optional[str]:
        return self._department

    @property
    def active(self) -> bool:
        return self._active

    def deactivate(self) -> None:
        self._active = False
        self.update()

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'name': self._name,
            'email': self._email,
            'phone': self._phone,
            'faculty_id': self._faculty_id,
            'department': self._department,
            'active': self._active,
        })
        return base_dict


class TrainingSite(AbstractEntity):
    """Organisation hosting training groups."""

    def __init__(self, name: str, address: Optional[str] = None, contact_name: Optional[str] = None,
                 contact_email: Optional[str] = None, contact_phone: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        if not name or not name.strip():
            raise ValidationError("Training site name is required")
        self._name = name.strip()
        self._address = address
        self._contact_name = contact_name
        self._contact_email = contact_email
        self._contact_phone = contact_phone

    @property
    def name(self) -> str:
        return self._name

    @property
    def address(self) -> Optional[str]:
        return self._address

    @property
    def contact_name(self) -> Optional[str]:
        return self._contact_name

    @property
    def contact_email(self) -> Optional[str]:
        return self._contact_email

    @property
    def contact_phone(self) -> Optional[str]:
        return self._contact_phone

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'name': self._name,
            'address': self._address,
            'contact_name': self._contact_name,
            'contact_email': self._contact_email,
            'contact_phone': self._contact_phone,
        })
        return base_dict


class TrainingCourse(AbstractEntity):
    """Training course; students register into one of its groups."""

    def __init__(self, name: str, faculty_id: Optional[str] = None, major_id: Optional[str] = None,
                 description: str = "", status: CourseStatus = CourseStatus.UPCOMING,
                 created_by: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        if not name or not name.strip():
            raise ValidationError("Course name is required")
        self._name = name.strip()
        self._faculty_id = faculty_id
        self._major_id = major_id
        self._description = description
        self._status = status
        self._archived = False
        self._created_by = created_by

    @property
    def name(self) -> str:
        return self._name

    @property
    def faculty_id(self) -> Optional[str]:
        return self._faculty_id

    @property
    def major_id(self) -> Optional[str]:
        return self._major_id

    @property
    def description(self) -> str:
        return self._description

    @property
    def status(self) -> CourseStatus:
        return self._status

    @property
    def archived(self) -> bool:
        return self._archived

    @property
    def created_by(self) -> Optional[str]:
        return self._created_by

    def set_status(self, status: CourseStatus) -> None:
        self._status = status
        self.update()

    def archive(self) -> None:
        """Freeze the course; evaluations can no longer change."""
        self._archived = True
        self.update()

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'name': self._name,
            'faculty_id': self._faculty_id,
            'major_id': self._major_id,
            'description': self._description,
            'status': self._status.value,
            'archived': self._archived,
            'created_by': self._created_by,
        })
        return base_dict


class TrainingGroup(AbstractEntity):
    """Capacity-bounded offering of a course at a site, supervisor and date range."""

    def __init__(self, course_id: str, group_name: str, site_id: str, supervisor_id: str,
                 start_date: date, end_date: date, capacity: int = 10,
                 location: Optional[str] = None, status: GroupStatus = GroupStatus.UPCOMING,
                 created_by: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        if not group_name or not group_name.strip():
            raise ValidationError("Group name is required")
        self._validate_capacity(capacity)
        if start_date >= end_date:
            raise ValidationError(
                "Group start date must be before its end date",
                details={'start_date': start_date.isoformat(), 'end_date': end_date.isoformat()}
            )
        self._course_id = course_id
        self._group_name = group_name.strip()
        self._site_id = site_id
        self._supervisor_id = supervisor_id
        self._start_date = start_date
        self._end_date = end_date
        self._capacity = capacity
        self._location = location
        self._status = status
        self._created_by = created_by

    @staticmethod
    def _validate_capacity(capacity: int) -> None:
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
            raise ValidationError("Group capacity must be a positive integer",
                                  details={'capacity': capacity})

    @property
    def course_id(self) -> str:
        return self._course_id

    @property
    def group_name(self) -> str:
        return self._group_name

    @property
    def site_id(self) -> str:
        return self._site_id

    @property
    def supervisor_id(self) -> str:
        return self._supervisor_id

    @property
    def start_date(self) -> date:
        return self._start_date

    @property
    def end_date(self) -> date:
        return self._end_date

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def location(self) -> Optional[str]:
        return self._location

    @property
    def status(self) -> GroupStatus:
        return self._status

    @property
    def created_by(self) -> Optional[str]:
        return self._created_by

    def set_capacity(self, capacity: int) -> None:
        self._validate_capacity(capacity)
        self._capacity = capacity
        self.update()

    def set_status(self, status: GroupStatus) -> None:
        self._status = status
        self.update()

    def status_on(self, day: date) -> GroupStatus:
        """Status implied by the half-open date range [start_date, end_date)."""
        if self._status == GroupStatus.CANCELLED:
            return GroupStatus.CANCELLED
        if day < self._start_date:
            return GroupStatus.UPCOMING
        if day < self._end_date:
            return GroupStatus.ACTIVE
        return GroupStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'course_id': self._course_id,
            'group_name': self._group_name,
            'site_id': self._site_id,
            'supervisor_id': self._supervisor_id,
            'start_date': self._start_date.isoformat(),
            'end_date': self._end_date.isoformat(),
            'capacity': self._capacity,
            'location': self._location,
            'status': self._status.value,
            'created_by': self._created_by,
        })
        return base_dict


class Assignment(AbstractEntity):
    """A student's registration into a training group.

    Assignments are never deleted; cancellation and completion are status
    transitions so that the history stays auditable.
    """

    def __init__(self, student_id: str, group_id: str, course_id: str,
                 status: AssignmentStatus = AssignmentStatus.PENDING,
                 assigned_by: Optional[str] = None, transferred_from: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self._student_id = student_id
        self._group_id = group_id
        self._course_id = course_id
        self._status = status
        self._confirmed = False
        self._assigned_by = assigned_by
        self._assigned_at = self._created_at
        self._cancelled_at: Optional[datetime] = None
        self._completed_at: Optional[datetime] = None
        self._transferred_from = transferred_from
        self._replaced_by: Optional[str] = None

    @property
    def student_id(self) -> str:
        return self._student_id

    @property
    def group_id(self) -> str:
        return self._group_id

    @property
    def course_id(self) -> str:
        return self._course_id

    @property
    def status(self) -> AssignmentStatus:
        return self._status

    @property
    def confirmed(self) -> bool:
        return self._confirmed

    @property
    def assigned_by(self) -> Optional[str]:
        return self._assigned_by

    @property
    def assigned_at(self) -> datetime:
        return self._assigned_at

    @property
    def cancelled_at(self) -> Optional[datetime]:
        return self._cancelled_at

    @property
    def completed_at(self) -> Optional[datetime]:
        return self._completed_at

    @property
    def transferred_from(self) -> Optional[str]:
        return self._transferred_from

    @property
    def replaced_by(self) -> Optional[str]:
        return self._replaced_by

    @property
    def is_cancelled(self) -> bool:
        return self._status == AssignmentStatus.CANCELLED

    @property
    def occupies_seat(self) -> bool:
        return self._status in SEAT_OCCUPYING_STATUSES

    def cancel(self, replaced_by: Optional[str] = None) -> None:
        self.update(status=AssignmentStatus.CANCELLED, cancelled_at=utcnow(), replaced_by=replaced_by)

    def confirm(self) -> None:
        self.update(status=AssignmentStatus.ACTIVE, confirmed=True)

    def complete(self) -> None:
        self.update(status=AssignmentStatus.COMPLETED, completed_at=utcnow())

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'student_id': self._student_id,
            'group_id': self._group_id,
            'course_id': self._course_id,
            'status': self._status.value,
            'confirmed': self._confirmed,
            'assigned_by': self._assigned_by,
            'assigned_at': self._assigned_at.isoformat(),
            'cancelled_at': _isoformat(self._cancelled_at),
            'completed_at': _isoformat(self._completed_at),
            'transferred_from': self._transferred_from,
            'replaced_by': self._replaced_by,
        })
        return base_dict

    def restore_state(self, data: Dict[str, Any]) -> None:
        super().restore_state(data)
        self._confirmed = data.get('confirmed', False)
        self._assigned_at = datetime.fromisoformat(data['assigned_at'])
        self._cancelled_at = _parse_datetime(data.get('cancelled_at'))
        self._completed_at = _parse_datetime(data.get('completed_at'))
        self._replaced_by = data.get('replaced_by')


class Evaluation(AbstractEntity):
    """Graded outcome of an assignment."""

    def __init__(self, assignment_id: str, attendance_grade: float, behavior_grade: float,
                 final_exam_grade: float, final_grade: float, evaluator_id: Optional[str] = None,
                 comments: str = "", **kwargs):
        super().__init__(**kwargs)
        self._assignment_id = assignment_id
        self._attendance_grade = attendance_grade
        self._behavior_grade = behavior_grade
        self._final_exam_grade = final_exam_grade
        self._final_grade = final_grade
        self._evaluator_id = evaluator_id
        self._comments = comments
        self._evaluated_at = self._created_at

    @property
    def assignment_id(self) -> str:
        return self._assignment_id

    @property
    def attendance_grade(self) -> float:
        return self._attendance_grade

    @property
    def behavior_grade(self) -> float:
        return self._behavior_grade

    @property
    def final_exam_grade(self) -> float:
        return self._final_exam_grade

    @property
    def final_grade(self) -> float:
        return self._final_grade

    @property
    def evaluator_id(self) -> Optional[str]:
        return self._evaluator_id

    @property
    def comments(self) -> str:
        return self._comments

    @property
    def evaluated_at(self) -> datetime:
        return self._evaluated_at

    def set_grades(self, attendance_grade: float, behavior_grade: float, final_exam_grade: float,
                   final_grade: float, evaluator_id: Optional[str], comments: str) -> None:
        self.update(
            attendance_grade=attendance_grade,
            behavior_grade=behavior_grade,
            final_exam_grade=final_exam_grade,
            final_grade=final_grade,
            evaluator_id=evaluator_id,
            comments=comments,
            evaluated_at=utcnow(),
        )

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'assignment_id': self._assignment_id,
            'attendance_grade': self._attendance_grade,
            'behavior_grade': self._behavior_grade,
            'final_exam_grade': self._final_exam_grade,
            'final_grade': self._final_grade,
            'evaluator_id': self._evaluator_id,
            'comments': self._comments,
            'evaluated_at': self._evaluated_at.isoformat(),
        })
        return base_dict

    def restore_state(self, data: Dict[str, Any]) -> None:
        super().restore_state(data)
        self._evaluated_at = datetime.fromisoformat(data['evaluated_at'])


class ActivityEvent(AbstractEntity):
    """One successful state transition, as recorded in the activity log."""

    def __init__(self, action: ActivityAction, resource_type: str, resource_id: Optional[str],
                 actor_id: Optional[str] = None, actor_role: Optional[Role] = None,
                 details: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(**kwargs)
        self._action = action
        self._resource_type = resource_type
        self._resource_id = resource_id
        self._actor_id = actor_id
        self._actor_role = actor_role
        self._details = details or {}

    @property
    def action(self) -> ActivityAction:
        return self._action

    @property
    def resource_type(self) -> str:
        return self._resource_type

    @property
    def resource_id(self) -> Optional[str]:
        return self._resource_id

    @property
    def actor_id(self) -> Optional[str]:
        return self._actor_id

    @property
    def actor_role(self) -> Optional[Role]:
        return self._actor_role

    @property
    def details(self) -> Dict[str, Any]:
        return self._details.copy()

    @property
    def timestamp(self) -> datetime:
        return self._created_at

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'action': self._action.value,
            'resource_type': self._resource_type,
            'resource_id': self._resource_id,
            'actor_id': self._actor_id,
            'actor_role': self._actor_role.value if self._actor_role else None,
            'details': self._details,
            'timestamp': self._created_at.isoformat(),
        })
        return base_dict

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ActivityEvent':
        event = cls(
            action=ActivityAction(data['action']),
            resource_type=data['resource_type'],
            resource_id=data.get('resource_id'),
            actor_id=data.get('actor_id'),
            actor_role=Role(data['actor_role']) if data.get('actor_role') else None,
            details=data.get('details'),
            entity_id=data['id'],
        )
        event.restore_state(data)
        return event


class Notification(AbstractEntity):
    """Message addressed to a single user."""

    def __init__(self, user_id: str, title: str, message: str,
                 notification_type: NotificationType = NotificationType.INFO, **kwargs):
        super().__init__(**kwargs)
        self._user_id = user_id
        self._title = title
        self._message = message
        self._notification_type = notification_type
        self._read = False

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def title(self) -> str:
        return self._title

    @property
    def message(self) -> str:
        return self._message

    @property
    def notification_type(self) -> NotificationType:
        return self._notification_type

    @property
    def read(self) -> bool:
        return self._read

    def mark_read(self) -> None:
        self._read = True
        self.update()

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            'user_id': self._user_id,
            'title': self._title,
            'message': self._message,
            'notification_type': self._notification_type.value,
            'read': self._read,
        })
        return base_dict
