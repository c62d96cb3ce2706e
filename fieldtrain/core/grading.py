"""
Final grade computation for training evaluations.
"""

from numbers import Real
from typing import Any

from .exceptions import ValidationError


ATTENDANCE_WEIGHT = 0.20
BEHAVIOR_WEIGHT = 0.30
FINAL_EXAM_WEIGHT = 0.50

MIN_SCORE = 0
MAX_SCORE = 100
PASSING_GRADE = 60


def _validate_score(name: str, value: Any) -> float:
    # bool is a Real subclass; a checkbox value is never a grade
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValidationError(f"{name} must be a number", details={name: value})
    if value != value or not MIN_SCORE <= value <= MAX_SCORE:
        raise ValidationError(
            f"{name} must be between {MIN_SCORE} and {MAX_SCORE}",
            details={name: value}
        )
    return float(value)


class GradeCalculator:
    """Weighted final grade: 20% attendance, 30% behavior, 50% final exam.

    Out-of-range sub-scores are rejected rather than clamped so that
    data-entry mistakes surface to the supervisor. The result is not
    rounded; display precision belongs to the presentation layer.
    """

    def __init__(self, passing_grade: float = PASSING_GRADE):
        self._passing_grade = passing_grade

    @property
    def passing_grade(self) -> float:
        return self._passing_grade

    def compute_final_grade(self, attendance: float, behavior: float, final_exam: float) -> float:
        attendance = _validate_score("attendance_grade", attendance)
        behavior = _validate_score("behavior_grade", behavior)
        final_exam = _validate_score("final_exam_grade", final_exam)
        return (attendance * ATTENDANCE_WEIGHT
                + behavior * BEHAVIOR_WEIGHT
                + final_exam * FINAL_EXAM_WEIGHT)

    def is_passing(self, final_grade: float) -> bool:
        return final_grade >= self._passing_grade


_default_calculator = GradeCalculator()


def compute_final_grade(attendance: float, behavior: float, final_exam: float) -> float:
    """Module-level shortcut using the default weights."""
    return _default_calculator.compute_final_grade(attendance, behavior, final_exam)
