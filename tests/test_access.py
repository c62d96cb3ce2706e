import pytest

from fieldtrain.core.access import (
    Actor, Permission, SYSTEM_ACTOR, authorize, check_role_permissions, permissions_for,
)
from fieldtrain.core.enums import Role
from fieldtrain.core.exceptions import AuthorizationError, ConfigurationError, ValidationError


def test_actor_from_header_values():
    actor = Actor.from_values("u-1", "supervisor")
    assert actor == Actor(user_id="u-1", role=Role.SUPERVISOR)


def test_missing_user_is_not_authorized():
    with pytest.raises(AuthorizationError):
        Actor.from_values(None, "admin")


def test_unknown_role_is_rejected():
    with pytest.raises(ValidationError):
        Actor.from_values("u-1", "janitor")


def test_every_role_has_permissions():
    for role in Role:
        assert Permission.VIEW_RECORDS in permissions_for(role)


def test_permission_table_missing_a_role():
    table = {role: permissions_for(role) for role in Role if role != Role.STUDENT}
    with pytest.raises(ConfigurationError) as exc_info:
        check_role_permissions(table)
    assert exc_info.value.details == {'roles': ["student"]}


def test_students_cannot_register_others():
    with pytest.raises(AuthorizationError) as exc_info:
        authorize(Actor("s-1", Role.STUDENT), Permission.REGISTER)
    assert exc_info.value.details == {'role': 'student', 'permission': 'register'}


def test_only_supervisors_evaluate():
    authorize(Actor("sup-1", Role.SUPERVISOR), Permission.EVALUATE)
    with pytest.raises(AuthorizationError):
        authorize(Actor("adm-1", Role.ADMIN), Permission.EVALUATE)


def test_system_actor_manages_courses():
    authorize(SYSTEM_ACTOR, Permission.MANAGE_COURSES)
