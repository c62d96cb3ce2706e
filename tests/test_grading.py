import pytest

from fieldtrain.core.exceptions import ValidationError
from fieldtrain.core.grading import GradeCalculator, compute_final_grade


def test_weighted_final_grade():
    assert compute_final_grade(20, 25, 42) == pytest.approx(32.5)


def test_full_marks():
    assert compute_final_grade(100, 100, 100) == pytest.approx(100.0)


def test_result_is_deterministic():
    results = {compute_final_grade(73.5, 88, 91.25) for _ in range(10)}
    assert len(results) == 1


@pytest.mark.parametrize("scores", [(-1, 50, 50), (50, 100.5, 50), (50, 50, float("nan"))])
def test_out_of_range_scores_rejected(scores):
    with pytest.raises(ValidationError):
        compute_final_grade(*scores)


@pytest.mark.parametrize("value", [True, "80", None])
def test_non_numeric_scores_rejected(value):
    with pytest.raises(ValidationError) as exc_info:
        compute_final_grade(value, 50, 50)
    assert "attendance_grade" in exc_info.value.message


def test_passing_threshold():
    calculator = GradeCalculator(passing_grade=50)
    assert calculator.is_passing(50)
    assert not calculator.is_passing(49.99)
