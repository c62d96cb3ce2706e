"""
Assignment ledger: the only component that creates or changes assignments.
"""

import copy
import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from ..core.entities import Assignment, TrainingCourse, TrainingGroup
from ..core.enums import (
    AssignmentStatus, CourseStatus, NON_CANCELLED_STATUSES, OPEN_ASSIGNMENT_STATUSES,
    SEAT_OCCUPYING_STATUSES,
)
from ..core.exceptions import (
    AlreadyCancelledError, CapacityExceededError, DuplicateActiveAssignmentError,
    NotFoundError, ValidationError,
)
from ..persistence.repositories import AssignmentRepository, CourseRepository, GroupRepository
from .capacity_tracker import CapacityTracker


logger = logging.getLogger(__name__)


class AssignmentLedger:
    """Authoritative store of student-to-group assignments.

    Every check-and-write runs under the ledger lock, and every write goes
    to the repository in a single transaction before the in-memory index is
    updated. A failed check or a failed write leaves both untouched.
    """

    def __init__(self, assignment_repository: AssignmentRepository, group_repository: GroupRepository,
                 course_repository: CourseRepository):
        self._repository = assignment_repository
        self._groups = group_repository
        self._courses = course_repository
        self._lock = threading.RLock()
        self._assignments: Dict[str, Assignment] = {
            assignment.id: assignment for assignment in assignment_repository.find_all()
        }
        self._capacity = CapacityTracker(self)
        logger.info("Assignment ledger loaded %d assignments", len(self._assignments))

    @property
    def capacity(self) -> CapacityTracker:
        return self._capacity

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

    def _require_assignment(self, assignment_id: str) -> Assignment:
        assignment = self._assignments.get(assignment_id)
        if assignment is None:
            raise NotFoundError(f"Assignment {assignment_id} not found",
                                details={'assignment_id': assignment_id})
        return assignment

    def _ensure_capacity(self, group: TrainingGroup) -> None:
        if not self._capacity.has_capacity(group):
            raise CapacityExceededError(
                f"Group {group.group_name} has no free seat",
                details={'group_id': group.id, 'capacity': group.capacity}
            )

    def _ensure_no_duplicate(self, student_id: str, course_id: str, ignore_id: Optional[str] = None) -> None:
        existing = self.find_active_for_student_in_course(student_id, course_id)
        if existing is not None and existing.id != ignore_id:
            raise DuplicateActiveAssignmentError(
                "Student already holds an assignment in this course",
                details={'student_id': student_id, 'course_id': course_id,
                         'assignment_id': existing.id}
            )

    def _commit(self, assignments: List[Assignment]) -> None:
        self._repository.save_all(assignments)
        for assignment in assignments:
            self._assignments[assignment.id] = assignment

    def create(self, student_id: str, group_id: str, actor_id: Optional[str] = None) -> Assignment:
        """Assign a student to a group, taking one seat."""
        with self._lock:
            group = self._require_group(group_id)
            course = self._require_course(group.course_id)
            self._ensure_capacity(group)
            self._ensure_no_duplicate(student_id, group.course_id)

            status = AssignmentStatus.ACTIVE if course.status == CourseStatus.ACTIVE else AssignmentStatus.PENDING
            assignment = Assignment(
                student_id=student_id,
                group_id=group.id,
                course_id=group.course_id,
                status=status,
                assigned_by=actor_id,
            )
            self._commit([assignment])
            logger.info("Assigned student %s to group %s (%s)", student_id, group.id, status.value)
            return assignment

    def cancel(self, assignment_id: str) -> Assignment:
        """Cancel an assignment; the record is kept with status cancelled."""
        with self._lock:
            current = self._require_assignment(assignment_id)
            if current.is_cancelled:
                raise AlreadyCancelledError(f"Assignment {assignment_id} is already cancelled",
                                            details={'assignment_id': assignment_id})
            if current.status not in OPEN_ASSIGNMENT_STATUSES:
                raise ValidationError(f"A {current.status.value} assignment cannot be cancelled",
                                      details={'assignment_id': assignment_id, 'status': current.status.value})
            cancelled = copy.deepcopy(current)
            cancelled.cancel()
            self._commit([cancelled])
            logger.info("Cancelled assignment %s", assignment_id)
            return cancelled

    def transfer(self, assignment_id: str, to_group_id: str,
                 actor_id: Optional[str] = None) -> Tuple[Assignment, Assignment]:
        """Move an assignment to another group of the same course in one step.

        Returns the cancelled source and the new destination assignment.
        """
        with self._lock:
            current = self._require_assignment(assignment_id)
            if current.is_cancelled:
                raise AlreadyCancelledError(f"Assignment {assignment_id} is already cancelled",
                                            details={'assignment_id': assignment_id})
            if current.status not in OPEN_ASSIGNMENT_STATUSES:
                raise ValidationError(f"A {current.status.value} assignment cannot be transferred",
                                      details={'assignment_id': assignment_id, 'status': current.status.value})
            if current.group_id == to_group_id:
                raise ValidationError("Source and destination groups are the same",
                                      details={'group_id': to_group_id})

            destination = self._require_group(to_group_id)
            if destination.course_id != current.course_id:
                raise ValidationError(
                    "Transfers are only allowed between groups of the same course",
                    details={'from_course_id': current.course_id, 'to_course_id': destination.course_id}
                )
            self._ensure_capacity(destination)
            self._ensure_no_duplicate(current.student_id, current.course_id, ignore_id=current.id)

            replacement = Assignment(
                student_id=current.student_id,
                group_id=destination.id,
                course_id=destination.course_id,
                status=current.status,
                assigned_by=actor_id,
                transferred_from=current.id,
            )
            replacement._confirmed = current.confirmed
            source = copy.deepcopy(current)
            source.cancel(replaced_by=replacement.id)

            self._commit([source, replacement])
            logger.info("Transferred student %s from group %s to group %s",
                        current.student_id, current.group_id, destination.id)
            return source, replacement

    def confirm(self, assignment_id: str) -> Assignment:
        """Mark an assignment as confirmed by the student; pending becomes active."""
        with self._lock:
            current = self._require_assignment(assignment_id)
            if current.is_cancelled:
                raise AlreadyCancelledError(f"Assignment {assignment_id} is cancelled",
                                            details={'assignment_id': assignment_id})
            if current.status not in OPEN_ASSIGNMENT_STATUSES:
                raise ValidationError(f"A {current.status.value} assignment cannot be confirmed",
                                      details={'assignment_id': assignment_id, 'status': current.status.value})
            confirmed = copy.deepcopy(current)
            confirmed.confirm()
            self._commit([confirmed])
            return confirmed

    def complete_course(self, course_id: str) -> List[Assignment]:
        """Move every active assignment of the course to completed."""
        with self._lock:
            completed = []
            for assignment in self._assignments.values():
                if assignment.course_id == course_id and assignment.status == AssignmentStatus.ACTIVE:
                    updated = copy.deepcopy(assignment)
                    updated.complete()
                    completed.append(updated)
            if completed:
                self._commit(completed)
            logger.info("Completed %d assignments of course %s", len(completed), course_id)
            return completed

    def get(self, assignment_id: str) -> Assignment:
        with self._lock:
            return self._require_assignment(assignment_id)

    def find_by_id(self, assignment_id: str) -> Optional[Assignment]:
        with self._lock:
            return self._assignments.get(assignment_id)

    def find_active_for_student_in_course(self, student_id: str, course_id: str) -> Optional[Assignment]:
        """The student's non-cancelled assignment in the course, if any."""
        with self._lock:
            for assignment in self._assignments.values():
                if (assignment.student_id == student_id and assignment.course_id == course_id
                        and assignment.status in NON_CANCELLED_STATUSES):
                    return assignment
            return None

    def find_active_for_student_in_group(self, student_id: str, group_id: str) -> Optional[Assignment]:
        """The student's pending or active assignment in the group, if any."""
        with self._lock:
            for assignment in self._assignments.values():
                if (assignment.student_id == student_id and assignment.group_id == group_id
                        and assignment.status in OPEN_ASSIGNMENT_STATUSES):
                    return assignment
            return None

    def list(self, student_id: Optional[str] = None, course_id: Optional[str] = None,
             group_id: Optional[str] = None,
             statuses: Optional[Iterable[AssignmentStatus]] = None) -> List[Assignment]:
        """Assignments matching every given filter, oldest first."""
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            matches = [
                a for a in self._assignments.values()
                if (student_id is None or a.student_id == student_id)
                and (course_id is None or a.course_id == course_id)
                and (group_id is None or a.group_id == group_id)
                and (wanted is None or a.status in wanted)
            ]
        return sorted(matches, key=lambda a: a.assigned_at)

    def count_for_group(self, group_id: str,
                        statuses: Iterable[AssignmentStatus] = SEAT_OCCUPYING_STATUSES) -> int:
        wanted = set(statuses)
        with self._lock:
            return sum(1 for a in self._assignments.values()
                       if a.group_id == group_id and a.status in wanted)

    def references_student(self, student_id: str) -> bool:
        with self._lock:
            return any(a.student_id == student_id for a in self._assignments.values())

    def references_group(self, group_id: str) -> bool:
        with self._lock:
            return any(a.group_id == group_id for a in self._assignments.values())
