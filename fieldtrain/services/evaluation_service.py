"""
Evaluation service: supervisor grading of assignments.
"""

import logging
from typing import Any, Dict, List, Optional

from ..core.access import Actor, Permission, authorize
from ..core.entities import Evaluation
from ..core.enums import ActivityAction, AssignmentStatus
from ..core.exceptions import EvaluationLockedError, NotFoundError, ValidationError
from ..core.grading import GradeCalculator
from ..persistence.repositories import CourseRepository, EvaluationRepository, StudentRepository
from .assignment_ledger import AssignmentLedger
from .concurrency_manager import ConcurrencyManager, evaluation_lock_key
from .event_service import EventService


logger = logging.getLogger(__name__)

_GRADABLE = frozenset({AssignmentStatus.ACTIVE, AssignmentStatus.COMPLETED})


class EvaluationService:
    """Creates and updates the single evaluation of an assignment."""

    def __init__(self, evaluation_repository: EvaluationRepository, ledger: AssignmentLedger,
                 course_repository: CourseRepository, student_repository: StudentRepository,
                 concurrency_manager: ConcurrencyManager, event_service: Optional[EventService] = None,
                 calculator: Optional[GradeCalculator] = None, lock_timeout: Optional[float] = None):
        self._evaluations = evaluation_repository
        self._ledger = ledger
        self._courses = course_repository
        self._students = student_repository
        self._concurrency_manager = concurrency_manager
        self._event_service = event_service or EventService()
        self._calculator = calculator or GradeCalculator()
        self._lock_timeout = lock_timeout

    @property
    def calculator(self) -> GradeCalculator:
        return self._calculator

    def evaluate(self, assignment_id: str, attendance: float, behavior: float, final_exam: float,
                 actor: Actor, comments: str = "") -> Evaluation:
        """Record grades for an assignment, replacing any previous evaluation."""
        authorize(actor, Permission.EVALUATE)
        final_grade = self._calculator.compute_final_grade(attendance, behavior, final_exam)

        with self._concurrency_manager.lock(evaluation_lock_key(assignment_id), timeout=self._lock_timeout):
            assignment = self._ledger.get(assignment_id)
            if assignment.status not in _GRADABLE:
                raise ValidationError(
                    f"A {assignment.status.value} assignment cannot be evaluated",
                    details={'assignment_id': assignment_id, 'status': assignment.status.value}
                )
            course = self._courses.find_by_id(assignment.course_id)
            if course is None:
                raise NotFoundError(f"Training course {assignment.course_id} not found",
                                    details={'course_id': assignment.course_id})
            if course.archived:
                raise EvaluationLockedError(
                    f"Course {course.name} is archived; evaluations are read-only",
                    details={'course_id': course.id, 'assignment_id': assignment_id}
                )

            evaluation = self._evaluations.find_by_assignment(assignment_id)
            created = evaluation is None
            if created:
                evaluation = Evaluation(
                    assignment_id=assignment_id,
                    attendance_grade=float(attendance),
                    behavior_grade=float(behavior),
                    final_exam_grade=float(final_exam),
                    final_grade=final_grade,
                    evaluator_id=actor.user_id,
                    comments=comments,
                )
            else:
                evaluation.set_grades(float(attendance), float(behavior), float(final_exam),
                                      final_grade, actor.user_id, comments)
            self._evaluations.save(evaluation)

        self._event_service.record(
            ActivityAction.EVALUATE, "evaluation", evaluation.id, actor,
            assignment_id=assignment_id,
            student_id=assignment.student_id,
            group_id=assignment.group_id,
            course_id=assignment.course_id,
            final_grade=final_grade,
            passed=self._calculator.is_passing(final_grade),
            created=created,
        )
        logger.info("Evaluated assignment %s: final grade %.2f", assignment_id, final_grade)
        return evaluation

    def get_for_assignment(self, assignment_id: str) -> Evaluation:
        self._ledger.get(assignment_id)
        evaluation = self._evaluations.find_by_assignment(assignment_id)
        if evaluation is None:
            raise NotFoundError(f"Assignment {assignment_id} has no evaluation",
                                details={'assignment_id': assignment_id})
        return evaluation

    def list(self, group_id: Optional[str] = None, course_id: Optional[str] = None) -> List[Evaluation]:
        if group_id is None and course_id is None:
            return self._evaluations.find_all()
        assignment_ids = {a.id for a in self._ledger.list(group_id=group_id, course_id=course_id)}
        return [e for e in self._evaluations.find_all() if e.assignment_id in assignment_ids]

    def students_without_grades(self, group_id: str) -> List[Dict[str, Any]]:
        """Active or completed assignments of a group that have no evaluation yet."""
        graded = {e.assignment_id for e in self._evaluations.find_all()}
        missing = []
        for assignment in self._ledger.list(group_id=group_id, statuses=_GRADABLE):
            if assignment.id in graded:
                continue
            student = self._students.find_by_id(assignment.student_id)
            missing.append({
                'assignment_id': assignment.id,
                'student_id': assignment.student_id,
                'student_name': student.name if student else None,
                'university_id': student.university_id if student else None,
            })
        return missing

    def summary(self, evaluation: Evaluation) -> Dict[str, Any]:
        data = evaluation.to_dict()
        data['passed'] = self._calculator.is_passing(evaluation.final_grade)
        return data
