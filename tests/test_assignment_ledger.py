import pytest

from fieldtrain.core.enums import AssignmentStatus, CourseStatus
from fieldtrain.core.exceptions import (
    AlreadyCancelledError, CapacityExceededError, DuplicateActiveAssignmentError, NotFoundError,
    ValidationError,
)
from fieldtrain.persistence.repositories import AssignmentRepository, CourseRepository, GroupRepository
from fieldtrain.services import AssignmentLedger


@pytest.fixture
def ledger(platform):
    return platform.registration.ledger


def test_create_takes_a_seat(ledger, catalog):
    s1 = catalog['students'][0]
    assignment = ledger.create(s1.id, catalog['g1'].id, actor_id="admin-1")
    assert assignment.status == AssignmentStatus.ACTIVE
    assert assignment.course_id == catalog['course'].id
    assert ledger.capacity.current_enrollment(catalog['g1']) == 1
    assert ledger.capacity.available_seats(catalog['g1']) == 1


def test_pending_when_course_not_started(platform, ledger, catalog):
    course = platform.catalog.create_course("Clinical Practice II")
    group = platform.catalog.create_group(course.id, "A", catalog['site'].id, catalog['supervisor'].id,
                                          "2026-04-01", "2026-05-01", capacity=1)
    assignment = ledger.create(catalog['students'][0].id, group.id)
    assert course.status == CourseStatus.UPCOMING
    assert assignment.status == AssignmentStatus.PENDING


def test_capacity_and_duplicates_enforced(ledger, catalog):
    s1, s2, s3 = catalog['students'][:3]
    ledger.create(s1.id, catalog['g2'].id)
    with pytest.raises(CapacityExceededError):
        ledger.create(s2.id, catalog['g2'].id)
    with pytest.raises(DuplicateActiveAssignmentError):
        ledger.create(s1.id, catalog['g1'].id)
    assert ledger.count_for_group(catalog['g1'].id) == 0
    with pytest.raises(NotFoundError):
        ledger.create(s3.id, "missing-group")


def test_cancel_frees_the_seat_once(ledger, catalog):
    assignment = ledger.create(catalog['students'][0].id, catalog['g2'].id)
    cancelled = ledger.cancel(assignment.id)
    assert cancelled.status == AssignmentStatus.CANCELLED
    assert cancelled.cancelled_at is not None
    assert ledger.capacity.has_capacity(catalog['g2'])

    with pytest.raises(AlreadyCancelledError):
        ledger.cancel(assignment.id)
    assert ledger.get(assignment.id).version == cancelled.version


def test_transfer_moves_the_seat(ledger, catalog):
    s1 = catalog['students'][0]
    original = ledger.create(s1.id, catalog['g1'].id)
    ledger.confirm(original.id)

    source, replacement = ledger.transfer(original.id, catalog['g2'].id, actor_id="admin-1")

    assert source.status == AssignmentStatus.CANCELLED
    assert source.replaced_by == replacement.id
    assert replacement.transferred_from == original.id
    assert replacement.group_id == catalog['g2'].id
    assert replacement.confirmed is True
    assert ledger.count_for_group(catalog['g1'].id) == 0
    assert ledger.count_for_group(catalog['g2'].id) == 1
    assert ledger.find_active_for_student_in_course(s1.id, catalog['course'].id).id == replacement.id


def test_transfer_into_full_group_changes_nothing(ledger, catalog):
    s1, s2 = catalog['students'][:2]
    ledger.create(s2.id, catalog['g2'].id)
    original = ledger.create(s1.id, catalog['g1'].id)

    with pytest.raises(CapacityExceededError):
        ledger.transfer(original.id, catalog['g2'].id)

    assert ledger.get(original.id).status == AssignmentStatus.ACTIVE
    assert len(ledger.list(student_id=s1.id)) == 1


def test_transfer_rejects_same_group(ledger, catalog):
    original = ledger.create(catalog['students'][0].id, catalog['g1'].id)
    with pytest.raises(ValidationError):
        ledger.transfer(original.id, catalog['g1'].id)


def test_complete_course_completes_active_assignments(ledger, catalog):
    first = ledger.create(catalog['students'][0].id, catalog['g1'].id)
    second = ledger.create(catalog['students'][1].id, catalog['g1'].id)
    ledger.cancel(second.id)

    completed = ledger.complete_course(catalog['course'].id)

    assert [a.id for a in completed] == [first.id]
    assert ledger.get(first.id).status == AssignmentStatus.COMPLETED
    # Completed assignments keep their seat
    assert ledger.count_for_group(catalog['g1'].id) == 1


def test_ledger_reloads_from_repository(platform, ledger, catalog):
    assignment = ledger.create(catalog['students'][0].id, catalog['g1'].id)
    database = platform.database

    reloaded = AssignmentLedger(AssignmentRepository(database), GroupRepository(database),
                                CourseRepository(database))
    assert reloaded.get(assignment.id).student_id == assignment.student_id


def test_get_unknown_assignment(ledger):
    with pytest.raises(NotFoundError):
        ledger.get("nope")
    assert ledger.find_by_id("nope") is None
