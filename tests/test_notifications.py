import pytest

from fieldtrain.core.access import Actor
from fieldtrain.core.entities import ActivityEvent
from fieldtrain.core.enums import ActivityAction, Role
from fieldtrain.core.exceptions import AuthorizationError, NotFoundError
from fieldtrain.services.notification_service import role_audience


@pytest.fixture
def service(platform):
    return platform.notifications


def test_group_creation_notifies_supervisor(service, catalog, supervisor_actor):
    titles = [n.title for n in service.list_for_user(supervisor_actor)]
    assert titles == ["New training group"]


def test_registration_notifies_supervisor(platform, service, catalog, supervisor_actor):
    platform.registration.register(catalog['students'][0].id, catalog['g1'].id)
    assert service.unread_count(supervisor_actor) == 2


def test_evaluation_notifies_student_and_admins(platform, service, catalog, supervisor_actor, admin):
    student = catalog['students'][0]
    assignment = platform.registration.register(student.id, catalog['g1'].id)
    platform.evaluations.evaluate(assignment.id, 80, 80, 80, supervisor_actor)

    student_actor = Actor(student.id, Role.STUDENT)
    assert [n.title for n in service.list_for_user(student_actor)] == ["Training grades added"]
    assert [n.title for n in service.list_for_user(admin)] == ["Grades added"]


def test_mark_read(platform, service, catalog, supervisor_actor):
    notification = service.list_for_user(supervisor_actor)[0]
    service.mark_read(notification.id, supervisor_actor)
    assert service.list_for_user(supervisor_actor, unread_only=True) == []


def test_mark_read_checks_owner(service, catalog, supervisor_actor):
    notification = service.list_for_user(supervisor_actor)[0]
    with pytest.raises(AuthorizationError):
        service.mark_read(notification.id, Actor("someone", Role.SUPERVISOR))
    with pytest.raises(NotFoundError):
        service.mark_read("missing", supervisor_actor)


def test_group_ended_without_students_warns_admins(service, admin):
    service.handle_event(ActivityEvent(
        ActivityAction.GROUP_ENDED, "training_group", "g-9",
        details={'group_name': "G9", 'supervisor_id': "sup-9", 'enrolled': 0, 'missing_grades': 0},
    ))
    assert [n.user_id for n in service.list_for_user(admin)] == [role_audience(Role.ADMIN)]
    assert service.list_for_user(Actor("sup-9", Role.SUPERVISOR)) == []


def test_handler_failure_does_not_undo_registration(platform, catalog):
    def broken(event):
        raise RuntimeError("mail server down")

    platform.events.subscribe("mailer", {ActivityAction.REGISTER}, broken)
    assignment = platform.registration.register(catalog['students'][0].id, catalog['g1'].id)

    assert platform.registration.ledger.get(assignment.id).id == assignment.id
    assert platform.events.get_statistics()['handler_errors'] == 1
