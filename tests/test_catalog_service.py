from datetime import date

import pytest

from fieldtrain.core.enums import ActivityAction, AssignmentStatus, CourseStatus, GroupStatus
from fieldtrain.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from fieldtrain.services.catalog_service import coerce_date


@pytest.fixture
def service(platform):
    return platform.catalog


def test_university_id_is_unique(service, catalog):
    with pytest.raises(ValidationError) as exc_info:
        service.create_student(catalog['students'][0].university_id, "Someone Else")
    assert exc_info.value.details == {'university_id': catalog['students'][0].university_id}


def test_unknown_student_fields_rejected(service):
    with pytest.raises(ValidationError):
        service.create_student("9999", "Zed", shoe_size=44)


def test_students_cannot_manage_catalog(service, student_actor):
    with pytest.raises(AuthorizationError):
        service.create_student("9999", "Zed", actor=student_actor)


def test_import_students_reports_bad_rows(service, catalog):
    result = service.import_students([
        {'university_id': "40001", 'name': "New One"},
        {'university_id': catalog['students'][0].university_id, 'name': "Duplicate"},
        {'university_id': "40002"},
    ])
    assert [s.university_id for s in result['created']] == ["40001"]
    assert [e['index'] for e in result['errors']] == [1, 2]


def test_list_students_filters(service, catalog):
    service.deactivate_student(catalog['students'][0].id)
    active = service.list_students(faculty_id="medicine", active=True)
    assert catalog['students'][0].id not in {s.id for s in active}
    assert len(active) == len(catalog['students']) - 1


def test_student_with_assignments_cannot_be_deleted(platform, service, catalog):
    s1, s2 = catalog['students'][:2]
    platform.registration.register(s1.id, catalog['g1'].id)
    with pytest.raises(ValidationError):
        service.delete_student(s1.id)

    service.delete_student(s2.id)
    with pytest.raises(NotFoundError):
        service.get_student(s2.id)


def test_supervisor_and_site_in_use_cannot_be_deleted(service, catalog):
    with pytest.raises(ValidationError):
        service.delete_supervisor(catalog['supervisor'].id)
    with pytest.raises(ValidationError):
        service.delete_site(catalog['site'].id)


def test_create_course_with_groups(platform, service, catalog):
    result = service.create_course_with_groups(
        {'name': "Community Health", 'status': "active"},
        [
            {'group_name': "North", 'site_id': catalog['site'].id, 'supervisor_id': catalog['supervisor'].id,
             'start_date': "2026-03-01", 'end_date': "2026-04-01", 'capacity': 5},
            {'group_name': "South", 'site_id': catalog['site'].id, 'supervisor_id': catalog['supervisor'].id,
             'start_date': date(2026, 3, 1), 'end_date': date(2026, 4, 1)},
        ],
    )
    course = result['course']
    assert course.status == CourseStatus.ACTIVE
    assert [g.group_name for g in service.list_groups(course.id)] == ["North", "South"]
    assert service.list_groups(course.id)[1].capacity == 10


def test_course_with_invalid_group_creates_nothing(service, catalog):
    courses_before = len(service.list_courses())
    with pytest.raises(ValidationError):
        service.create_course_with_groups(
            {'name': "Broken"},
            [
                {'group_name': "A", 'site_id': catalog['site'].id, 'supervisor_id': catalog['supervisor'].id,
                 'start_date': "2026-03-01", 'end_date': "2026-04-01"},
                {'group_name': "a", 'site_id': catalog['site'].id, 'supervisor_id': catalog['supervisor'].id,
                 'start_date': "2026-03-01", 'end_date': "2026-04-01"},
            ],
        )
    assert len(service.list_courses()) == courses_before


def test_missing_group_fields(service):
    with pytest.raises(ValidationError) as exc_info:
        service.create_course_with_groups({'name': "X"}, [{'group_name': "A"}])
    assert exc_info.value.details['fields'] == ['end_date', 'site_id', 'start_date', 'supervisor_id']


def test_group_name_unique_per_course(service, catalog):
    with pytest.raises(ValidationError):
        service.create_group(catalog['course'].id, "g1", catalog['site'].id, catalog['supervisor'].id,
                             "2026-03-01", "2026-04-01")


def test_group_dates_validated(service, catalog):
    with pytest.raises(ValidationError):
        service.create_group(catalog['course'].id, "G3", catalog['site'].id, catalog['supervisor'].id,
                             "2026-04-01", "2026-03-01")
    with pytest.raises(ValidationError):
        coerce_date("first of May", "start_date")


def test_capacity_cannot_drop_below_enrollment(platform, service, catalog):
    s1, s2 = catalog['students'][:2]
    platform.registration.register(s1.id, catalog['g1'].id)
    platform.registration.register(s2.id, catalog['g1'].id)

    with pytest.raises(ValidationError):
        service.update_group(catalog['g1'].id, capacity=1)

    group = service.update_group(catalog['g1'].id, capacity=3, location="Ward 4")
    assert group.capacity == 3
    assert group.location == "Ward 4"


def test_group_with_assignments_cannot_be_deleted(platform, service, catalog):
    platform.registration.register(catalog['students'][0].id, catalog['g1'].id)
    with pytest.raises(ValidationError):
        service.delete_group(catalog['g1'].id)
    service.delete_group(catalog['g2'].id)
    assert [g.id for g in service.list_groups(catalog['course'].id)] == [catalog['g1'].id]


def test_available_seats_listing(platform, service, catalog):
    platform.registration.register(catalog['students'][0].id, catalog['g2'].id)
    entries = service.list_groups_with_available_seats(faculty_id="medicine")
    assert [e['group'].id for e in entries] == [catalog['g1'].id]
    assert entries[0]['available_seats'] == 2

    service.set_group_status(catalog['g1'].id, GroupStatus.CANCELLED)
    assert service.list_groups_with_available_seats() == []


def test_group_detail_lists_students(platform, service, catalog):
    s1 = catalog['students'][0]
    assignment = platform.registration.register(s1.id, catalog['g1'].id)
    detail = service.group_detail(catalog['g1'].id)
    assert detail['course'].id == catalog['course'].id
    assert detail['capacity']['current_enrollment'] == 1
    assert detail['students'][0]['assignment_id'] == assignment.id
    assert detail['students'][0]['student']['university_id'] == s1.university_id


def test_completing_course_completes_assignments(platform, service, catalog):
    assignment = platform.registration.register(catalog['students'][0].id, catalog['g1'].id)
    service.set_course_status(catalog['course'].id, CourseStatus.COMPLETED)

    assert platform.registration.ledger.get(assignment.id).status == AssignmentStatus.COMPLETED
    actions = [e.action for e in platform.events.get_events("training_course", catalog['course'].id)]
    assert actions[-2:] == [ActivityAction.STATUS_CHANGE, ActivityAction.COMPLETE]


def test_archive_requires_finished_course(service, catalog):
    with pytest.raises(ValidationError):
        service.archive_course(catalog['course'].id)
    service.set_course_status(catalog['course'].id, CourseStatus.CANCELLED)
    assert service.archive_course(catalog['course'].id).archived is True


def test_unknown_course_status(service, catalog):
    with pytest.raises(ValidationError):
        service.set_course_status(catalog['course'].id, "paused")


def test_statistics(service, catalog):
    stats = service.get_statistics()
    assert stats == {'students': 4, 'supervisors': 2, 'training_sites': 1, 'courses': 1, 'groups': 2}
