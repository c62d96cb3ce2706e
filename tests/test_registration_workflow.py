import threading
from datetime import date, timedelta

import pytest

from fieldtrain.core.access import Actor
from fieldtrain.core.enums import ActivityAction, AssignmentStatus, CourseStatus, GroupStatus, Role
from fieldtrain.core.exceptions import (
    AlreadyCancelledError, AlreadyRegisteredError, AuthorizationError, BusyError, CourseNotOpenError,
    GroupFullError, NotFoundError, NotRegisteredError, ValidationError,
)
from fieldtrain.services.concurrency_manager import group_lock_key


TODAY = date(2026, 3, 1)


@pytest.fixture
def workflow(platform):
    return platform.registration


def test_group_fills_up(workflow, catalog):
    s1, s2, s3 = catalog['students'][:3]
    g1 = catalog['g1']
    workflow.register(s1.id, g1.id)
    workflow.register(s2.id, g1.id)

    with pytest.raises(GroupFullError) as exc_info:
        workflow.register(s3.id, g1.id)

    assert exc_info.value.error_code == "GROUP_FULL"
    assert workflow.ledger.capacity.current_enrollment(g1) == 2
    assert workflow.get_student_assignments(s3.id) == []


def test_one_assignment_per_course(workflow, catalog):
    s1 = catalog['students'][0]
    workflow.register(s1.id, catalog['g1'].id)

    with pytest.raises(AlreadyRegisteredError):
        workflow.register(s1.id, catalog['g2'].id)
    assert workflow.ledger.count_for_group(catalog['g2'].id) == 0


def test_transfer_into_full_group_keeps_registration(workflow, catalog):
    s1, s2 = catalog['students'][:2]
    original = workflow.register(s1.id, catalog['g1'].id)
    workflow.register(s2.id, catalog['g2'].id)

    with pytest.raises(GroupFullError):
        workflow.transfer(s1.id, catalog['g1'].id, catalog['g2'].id)

    current = workflow.ledger.find_active_for_student_in_course(s1.id, catalog['course'].id)
    assert current.id == original.id
    assert current.group_id == catalog['g1'].id


def test_transfer_moves_student(platform, workflow, catalog):
    s1 = catalog['students'][0]
    workflow.register(s1.id, catalog['g1'].id)

    source, replacement = workflow.transfer(s1.id, catalog['g1'].id, catalog['g2'].id)

    assert source.status == AssignmentStatus.CANCELLED
    assert replacement.group_id == catalog['g2'].id
    events = platform.events.get_events("assignment", replacement.id)
    assert events[-1].action == ActivityAction.TRANSFER
    assert events[-1].details['from_group_id'] == catalog['g1'].id


def test_transfer_without_registration(workflow, catalog):
    with pytest.raises(NotRegisteredError):
        workflow.transfer(catalog['students'][0].id, catalog['g1'].id, catalog['g2'].id)


def test_transfer_to_same_group_rejected(workflow, catalog):
    with pytest.raises(ValidationError):
        workflow.transfer(catalog['students'][0].id, catalog['g1'].id, catalog['g1'].id)


def test_cancel_unknown_assignment(workflow):
    with pytest.raises(NotFoundError):
        workflow.cancel_assignment("does-not-exist")


def test_second_cancel_is_rejected(platform, workflow, catalog):
    assignment = workflow.register(catalog['students'][0].id, catalog['g2'].id)
    workflow.cancel_assignment(assignment.id)
    events_before = platform.events.get_statistics()['stored_events']

    with pytest.raises(AlreadyCancelledError):
        workflow.cancel_assignment(assignment.id)

    assert platform.events.get_statistics()['stored_events'] == events_before
    assert workflow.ledger.capacity.has_capacity(catalog['g2'])


def test_cancel_by_student_and_group(workflow, catalog):
    s1 = catalog['students'][0]
    workflow.register(s1.id, catalog['g1'].id)
    cancelled = workflow.cancel(s1.id, catalog['g1'].id)
    assert cancelled.status == AssignmentStatus.CANCELLED

    with pytest.raises(NotRegisteredError):
        workflow.cancel(s1.id, catalog['g1'].id)
    # A cancelled registration does not block a new one
    workflow.register(s1.id, catalog['g2'].id)


def test_register_unknown_or_inactive_student(platform, workflow, catalog):
    with pytest.raises(NotFoundError):
        workflow.register("ghost", catalog['g1'].id)

    s1 = catalog['students'][0]
    platform.catalog.deactivate_student(s1.id)
    with pytest.raises(ValidationError):
        workflow.register(s1.id, catalog['g1'].id)


def test_register_into_closed_course(platform, workflow, catalog):
    platform.catalog.set_course_status(catalog['course'].id, CourseStatus.CANCELLED)
    with pytest.raises(CourseNotOpenError):
        workflow.register(catalog['students'][0].id, catalog['g1'].id)


def test_students_cannot_register(workflow, catalog, student_actor):
    with pytest.raises(AuthorizationError):
        workflow.register(catalog['students'][0].id, catalog['g1'].id, actor=student_actor)


def test_student_confirms_own_assignment_only(workflow, catalog):
    s1, s2 = catalog['students'][:2]
    assignment = workflow.register(s1.id, catalog['g1'].id)

    with pytest.raises(AuthorizationError):
        workflow.confirm(assignment.id, Actor(s2.id, Role.STUDENT))

    confirmed = workflow.confirm(assignment.id, Actor(s1.id, Role.STUDENT))
    assert confirmed.confirmed is True


def test_register_waits_then_reports_busy(platform, workflow, catalog):
    manager = platform.concurrency_manager
    lock_id = manager.acquire_lock(group_lock_key(catalog['g1'].id), holder_id="someone-else")
    try:
        with pytest.raises(BusyError):
            workflow.register(catalog['students'][0].id, catalog['g1'].id)
    finally:
        manager.release_lock(lock_id)
    assert workflow.ledger.count_for_group(catalog['g1'].id) == 0


def test_concurrent_registrations_respect_capacity(platform, workflow, catalog):
    students = [platform.catalog.create_student(f"3000{i:02d}", f"Racer {i}") for i in range(12)]
    g1 = catalog['g1']
    outcomes = []
    outcomes_lock = threading.Lock()
    start = threading.Barrier(len(students))

    def attempt(student_id):
        start.wait()
        try:
            workflow.register(student_id, g1.id)
            result = "ok"
        except GroupFullError:
            result = "full"
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt, args=(s.id,)) for s in students]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert outcomes.count("ok") == g1.capacity
    assert outcomes.count("full") == len(students) - g1.capacity
    assert workflow.ledger.count_for_group(g1.id) == g1.capacity


def test_complete_course(platform, workflow, catalog):
    assignment = workflow.register(catalog['students'][0].id, catalog['g1'].id)
    completed = workflow.complete_course(catalog['course'].id)
    assert [a.id for a in completed] == [assignment.id]
    assert workflow.get_statistics()['completed'] == 1


def test_completed_assignment_cannot_be_cancelled(workflow, catalog):
    s1 = catalog['students'][0]
    g1 = catalog['g1']
    assignment = workflow.register(s1.id, g1.id)
    workflow.complete_course(catalog['course'].id)

    with pytest.raises(NotRegisteredError):
        workflow.cancel(s1.id, g1.id)
    with pytest.raises(ValidationError):
        workflow.cancel_assignment(assignment.id)

    assert workflow.ledger.get(assignment.id).status == AssignmentStatus.COMPLETED
    assert workflow.ledger.capacity.current_enrollment(g1) == 1
    with pytest.raises(AlreadyRegisteredError):
        workflow.register(s1.id, catalog['g2'].id)


def test_completed_assignment_cannot_be_transferred(workflow, catalog):
    s1 = catalog['students'][0]
    workflow.register(s1.id, catalog['g1'].id)
    workflow.complete_course(catalog['course'].id)

    with pytest.raises(NotRegisteredError):
        workflow.transfer(s1.id, catalog['g1'].id, catalog['g2'].id)


@pytest.fixture
def ended_group(platform, catalog):
    group = platform.catalog.create_group(catalog['course'].id, "Short", catalog['site'].id,
                                          catalog['supervisor'].id, TODAY, TODAY + timedelta(days=2),
                                          capacity=5)
    platform.course_status_updater.update_course_statuses(TODAY + timedelta(days=5))
    return platform.catalog.get_group(group.id)


def test_register_into_ended_group_rejected(platform, workflow, catalog, ended_group):
    assert ended_group.status == GroupStatus.COMPLETED
    assert platform.catalog.get_course(catalog['course'].id).status == CourseStatus.ACTIVE

    with pytest.raises(CourseNotOpenError):
        workflow.register(catalog['students'][0].id, ended_group.id)
    assert workflow.ledger.count_for_group(ended_group.id) == 0


def test_transfer_into_ended_group_rejected(workflow, catalog, ended_group):
    s1 = catalog['students'][0]
    original = workflow.register(s1.id, catalog['g1'].id)

    with pytest.raises(CourseNotOpenError):
        workflow.transfer(s1.id, catalog['g1'].id, ended_group.id)
    assert workflow.ledger.get(original.id).status == AssignmentStatus.ACTIVE


def test_ended_group_not_listed_as_available(platform, catalog, ended_group):
    available = [entry['group'].id for entry in platform.catalog.list_groups_with_available_seats()]
    assert ended_group.id not in available
    assert catalog['g1'].id in available
