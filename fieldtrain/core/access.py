"""
Role-based authorization for acting users.

The auth/session layer identifies the actor; this module only decides
whether that actor's role may perform an action.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from .enums import Role
from .exceptions import AuthorizationError, ConfigurationError, ValidationError


class Permission(Enum):
    """Actions guarded at the authorization boundary."""
    MANAGE_CATALOG = "manage_catalog"
    MANAGE_COURSES = "manage_courses"
    REGISTER = "register"
    CANCEL = "cancel"
    TRANSFER = "transfer"
    CONFIRM_ASSIGNMENT = "confirm_assignment"
    EVALUATE = "evaluate"
    VIEW_ACTIVITY_LOG = "view_activity_log"
    VIEW_RECORDS = "view_records"


_ROLE_PERMISSIONS: Dict[Role, FrozenSet[Permission]] = {
    Role.ADMIN: frozenset({
        Permission.MANAGE_CATALOG,
        Permission.MANAGE_COURSES,
        Permission.REGISTER,
        Permission.CANCEL,
        Permission.TRANSFER,
        Permission.VIEW_ACTIVITY_LOG,
        Permission.VIEW_RECORDS,
    }),
    Role.SUPERVISOR: frozenset({
        Permission.MANAGE_COURSES,
        Permission.REGISTER,
        Permission.CANCEL,
        Permission.TRANSFER,
        Permission.EVALUATE,
        Permission.VIEW_RECORDS,
    }),
    Role.STUDENT: frozenset({
        Permission.CONFIRM_ASSIGNMENT,
        Permission.VIEW_RECORDS,
    }),
}


def check_role_permissions(table: Dict[Role, FrozenSet[Permission]]) -> None:
    """Raise ConfigurationError if a role has no permission entry."""
    missing = [role.value for role in Role if role not in table]
    if missing:
        raise ConfigurationError(f"No permissions defined for roles: {', '.join(missing)}",
                                 details={'roles': missing})


check_role_permissions(_ROLE_PERMISSIONS)


@dataclass(frozen=True)
class Actor:
    """The authenticated user on whose behalf an operation runs."""
    user_id: str
    role: Role

    @classmethod
    def from_values(cls, user_id: Optional[str], role: Optional[str]) -> 'Actor':
        if not user_id:
            raise AuthorizationError("Acting user is not identified")
        try:
            parsed_role = Role(role)
        except ValueError:
            raise ValidationError(f"Unknown role: {role}", details={'role': role})
        return cls(user_id=user_id, role=parsed_role)

    def can(self, permission: Permission) -> bool:
        return permission in _ROLE_PERMISSIONS[self.role]


SYSTEM_ACTOR = Actor(user_id="system", role=Role.ADMIN)


def permissions_for(role: Role) -> FrozenSet[Permission]:
    return _ROLE_PERMISSIONS[role]


def authorize(actor: Actor, permission: Permission) -> None:
    """Raise AuthorizationError unless the actor's role grants the permission."""
    if not actor.can(permission):
        raise AuthorizationError(
            f"Role '{actor.role.value}' is not allowed to {permission.value}",
            details={'role': actor.role.value, 'permission': permission.value}
        )
