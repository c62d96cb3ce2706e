"""
Registration workflow with per-group locking and activity events.

A student's lifecycle in a course is Unregistered -> Active ->
{Completed, Cancelled}, with Active -> Active on transfer. Every operation
checks its preconditions under the locks of the groups it touches and of
the (student, course) pair, then delegates the write to the ledger.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from ..core.access import Actor, Permission, SYSTEM_ACTOR, authorize
from ..core.entities import Assignment, Student, TrainingCourse, TrainingGroup
from ..core.enums import ActivityAction, AssignmentStatus, GroupStatus, Role
from ..core.exceptions import (
    AlreadyRegisteredError, AuthorizationError, CapacityExceededError, CourseNotOpenError,
    DuplicateActiveAssignmentError, GroupFullError, NotFoundError, NotRegisteredError,
    ValidationError,
)
from ..persistence.repositories import CourseRepository, GroupRepository, StudentRepository
from .assignment_ledger import AssignmentLedger
from .concurrency_manager import ConcurrencyManager, enrollment_lock_key, group_lock_key
from .event_service import EventService


logger = logging.getLogger(__name__)


class RegistrationWorkflow:
    """Register, cancel, transfer, confirm and complete student assignments."""

    def __init__(self, ledger: AssignmentLedger, student_repository: StudentRepository,
                 group_repository: GroupRepository, course_repository: CourseRepository,
                 concurrency_manager: ConcurrencyManager, event_service: Optional[EventService] = None,
                 lock_timeout: Optional[float] = None):
        self._ledger = ledger
        self._students = student_repository
        self._groups = group_repository
        self._courses = course_repository
        self._concurrency_manager = concurrency_manager
        self._event_service = event_service or EventService()
        self._lock_timeout = lock_timeout

    @property
    def ledger(self) -> AssignmentLedger:
        return self._ledger

    def _require_student(self, student_id: str) -> Student:
        student = self._students.find_by_id(student_id)
        if student is None:
            raise NotFoundError(f"Student {student_id} not found", details={'student_id': student_id})
        return student

    def _require_group(self, group_id: str) -> TrainingGroup:
        group = self._groups.find_by_id(group_id)
        if group is None:
            raise NotFoundError(f"Training group {group_id} not found", details={'group_id': group_id})
        return group

    def _require_course(self, course_id: str) -> TrainingCourse:
        course = self._courses.find_by_id(course_id)
        if course is None:
            raise NotFoundError(f"Training course {course_id} not found", details={'course_id': course_id})
        return course

    def _ensure_open(self, course: TrainingCourse, *groups: TrainingGroup) -> None:
        if not course.status.is_open:
            raise CourseNotOpenError(
                f"Course {course.name} is {course.status.value}",
                details={'course_id': course.id, 'status': course.status.value}
            )
        for group in groups:
            if group.status in (GroupStatus.CANCELLED, GroupStatus.COMPLETED):
                raise CourseNotOpenError(
                    f"Group {group.group_name} is {group.status.value}",
                    details={'group_id': group.id, 'status': group.status.value}
                )

    def _locks(self, student_id: str, course_id: str, *group_ids: str):
        keys = [group_lock_key(group_id) for group_id in group_ids]
        keys.append(enrollment_lock_key(student_id, course_id))
        return self._concurrency_manager.lock_many(keys, timeout=self._lock_timeout)

    def _emit(self, action: ActivityAction, assignment: Assignment, actor: Actor, **details: Any) -> None:
        details.setdefault('student_id', assignment.student_id)
        details.setdefault('group_id', assignment.group_id)
        details.setdefault('course_id', assignment.course_id)
        self._event_service.record(action, "assignment", assignment.id, actor, **details)

    def register(self, student_id: str, group_id: str, actor: Optional[Actor] = None) -> Assignment:
        """Register a student into a group."""
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.REGISTER)

        student = self._require_student(student_id)
        if not student.active:
            raise ValidationError(f"Student {student.university_id} is deactivated",
                                  details={'student_id': student_id})
        group = self._require_group(group_id)

        with self._locks(student_id, group.course_id, group_id):
            # Re-read under the lock; status may have moved since the first look
            group = self._require_group(group_id)
            course = self._require_course(group.course_id)
            self._ensure_open(course, group)

            existing = self._ledger.find_active_for_student_in_course(student_id, course.id)
            if existing is not None:
                raise AlreadyRegisteredError(
                    "Student is already registered in this course",
                    details={'student_id': student_id, 'course_id': course.id,
                             'assignment_id': existing.id, 'group_id': existing.group_id}
                )
            if not self._ledger.capacity.has_capacity(group):
                raise GroupFullError(
                    f"Group {group.group_name} is full",
                    details={'group_id': group.id, 'capacity': group.capacity}
                )

            try:
                assignment = self._ledger.create(student_id, group_id, actor_id=actor.user_id)
            except CapacityExceededError as e:
                raise GroupFullError(e.message, details=e.details)
            except DuplicateActiveAssignmentError as e:
                raise AlreadyRegisteredError(e.message, details=e.details)

        self._emit(ActivityAction.REGISTER, assignment, actor, supervisor_id=group.supervisor_id)
        return assignment

    def cancel(self, student_id: str, group_id: str, actor: Optional[Actor] = None) -> Assignment:
        """Cancel a student's registration in a group."""
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.CANCEL)
        group = self._require_group(group_id)

        with self._locks(student_id, group.course_id, group_id):
            assignment = self._ledger.find_active_for_student_in_group(student_id, group_id)
            if assignment is None:
                raise NotRegisteredError(
                    "Student is not registered in this group",
                    details={'student_id': student_id, 'group_id': group_id}
                )
            cancelled = self._ledger.cancel(assignment.id)

        self._emit(ActivityAction.CANCEL, cancelled, actor)
        return cancelled

    def cancel_assignment(self, assignment_id: str, actor: Optional[Actor] = None) -> Assignment:
        """Cancel by assignment id; a second cancel raises AlreadyCancelledError."""
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.CANCEL)
        assignment = self._ledger.get(assignment_id)

        with self._locks(assignment.student_id, assignment.course_id, assignment.group_id):
            cancelled = self._ledger.cancel(assignment_id)

        self._emit(ActivityAction.CANCEL, cancelled, actor)
        return cancelled

    def transfer(self, student_id: str, from_group_id: str, to_group_id: str,
                 actor: Optional[Actor] = None) -> Tuple[Assignment, Assignment]:
        """Move a student between two groups of the same course.

        Either the student ends up in the destination group with the source
        assignment cancelled, or nothing changes.
        """
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.TRANSFER)
        if from_group_id == to_group_id:
            raise ValidationError("Source and destination groups are the same",
                                  details={'group_id': to_group_id})

        source_group = self._require_group(from_group_id)
        destination_group = self._require_group(to_group_id)
        if source_group.course_id != destination_group.course_id:
            raise ValidationError(
                "Transfers are only allowed between groups of the same course",
                details={'from_group_id': from_group_id, 'to_group_id': to_group_id}
            )

        with self._locks(student_id, source_group.course_id, from_group_id, to_group_id):
            destination_group = self._require_group(to_group_id)
            course = self._require_course(destination_group.course_id)
            self._ensure_open(course, destination_group)

            assignment = self._ledger.find_active_for_student_in_group(student_id, from_group_id)
            if assignment is None:
                raise NotRegisteredError(
                    "Student is not registered in the source group",
                    details={'student_id': student_id, 'group_id': from_group_id}
                )
            if not self._ledger.capacity.has_capacity(destination_group):
                raise GroupFullError(
                    f"Group {destination_group.group_name} is full",
                    details={'group_id': to_group_id, 'capacity': destination_group.capacity}
                )

            try:
                source, replacement = self._ledger.transfer(assignment.id, to_group_id,
                                                            actor_id=actor.user_id)
            except CapacityExceededError as e:
                raise GroupFullError(e.message, details=e.details)

        self._emit(ActivityAction.TRANSFER, replacement, actor,
                   from_group_id=from_group_id, replaced_assignment_id=source.id,
                   supervisor_id=destination_group.supervisor_id)
        return source, replacement

    def confirm(self, assignment_id: str, actor: Actor) -> Assignment:
        """Student confirmation of their own assignment."""
        authorize(actor, Permission.CONFIRM_ASSIGNMENT)
        assignment = self._ledger.get(assignment_id)
        if actor.role == Role.STUDENT and actor.user_id != assignment.student_id:
            raise AuthorizationError("Students can only confirm their own assignments",
                                     details={'assignment_id': assignment_id})

        with self._locks(assignment.student_id, assignment.course_id, assignment.group_id):
            confirmed = self._ledger.confirm(assignment_id)

        self._emit(ActivityAction.CONFIRM, confirmed, actor)
        return confirmed

    def complete_course(self, course_id: str, actor: Optional[Actor] = None) -> List[Assignment]:
        """Complete every active assignment of a course that has ended."""
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_COURSES)
        course = self._require_course(course_id)

        keys = [group_lock_key(group.id) for group in self._groups.find_by_course(course_id)]
        with self._concurrency_manager.lock_many(keys, timeout=self._lock_timeout):
            completed = self._ledger.complete_course(course_id)

        self._event_service.record(
            ActivityAction.COMPLETE, "training_course", course.id, actor,
            completed_assignments=[a.id for a in completed],
        )
        return completed

    def get_student_assignments(self, student_id: str) -> List[Assignment]:
        self._require_student(student_id)
        return self._ledger.list(student_id=student_id)

    def get_statistics(self) -> Dict[str, Any]:
        assignments = self._ledger.list()
        stats = {status.value: 0 for status in AssignmentStatus}
        for assignment in assignments:
            stats[assignment.status.value] += 1
        stats['total'] = len(assignments)
        return stats
