"""
Notifications derived from activity events.
"""

import logging
from typing import List, Optional

from ..core.access import Actor
from ..core.entities import ActivityEvent, Notification
from ..core.enums import ActivityAction, NotificationType, Role
from ..core.exceptions import AuthorizationError, NotFoundError
from ..core.interfaces import EventHandler
from ..persistence.repositories import NotificationRepository


logger = logging.getLogger(__name__)


def role_audience(role: Role) -> str:
    """Recipient id for notifications addressed to every user of a role."""
    return f"role:{role.value}"


class NotificationService(EventHandler):
    """Turns activity events into per-user notifications.

    - register / transfer: the group's supervisor
    - confirm: the student
    - evaluate: the student, and admins
    - group created: the group's supervisor
    - group ended: admins when nobody was enrolled, the supervisor when grades are missing
    """

    _HANDLED = frozenset({
        ActivityAction.REGISTER.value,
        ActivityAction.TRANSFER.value,
        ActivityAction.CONFIRM.value,
        ActivityAction.EVALUATE.value,
        ActivityAction.CREATE.value,
        ActivityAction.GROUP_ENDED.value,
    })

    def __init__(self, repository: NotificationRepository):
        self._repository = repository

    def can_handle(self, action: str) -> bool:
        return action in self._HANDLED

    def handle_event(self, event: ActivityEvent) -> None:
        details = event.details
        action = event.action

        if action == ActivityAction.REGISTER:
            self._notify(details.get('supervisor_id'), "New student registration",
                         f"Student {details.get('student_id')} registered in group {details.get('group_id')}")
        elif action == ActivityAction.TRANSFER:
            self._notify(details.get('supervisor_id'), "Student transferred to your group",
                         f"Student {details.get('student_id')} moved from group "
                         f"{details.get('from_group_id')} to group {details.get('group_id')}")
        elif action == ActivityAction.CONFIRM:
            self._notify(details.get('student_id'), "Assignment confirmed",
                         f"Your training assignment in group {details.get('group_id')} is confirmed",
                         NotificationType.SUCCESS)
        elif action == ActivityAction.EVALUATE:
            grade = details.get('final_grade')
            verb = "added" if details.get('created') else "updated"
            self._notify(details.get('student_id'), f"Training grades {verb}",
                         f"Your final training grade is {grade:.2f}", NotificationType.SUCCESS)
            self._notify(role_audience(Role.ADMIN), f"Grades {verb}",
                         f"Grades {verb} for assignment {details.get('assignment_id')} "
                         f"by {event.actor_id}")
        elif action == ActivityAction.CREATE and event.resource_type == "training_group":
            self._notify(details.get('supervisor_id'), "New training group",
                         f"You supervise the new training group {event.resource_id}")
        elif action == ActivityAction.GROUP_ENDED:
            if details.get('enrolled', 0) == 0:
                self._notify(role_audience(Role.ADMIN), "Training group ended without students",
                             f"Group {details.get('group_name')} ended with no students enrolled",
                             NotificationType.WARNING)
            if details.get('missing_grades'):
                self._notify(details.get('supervisor_id'), "Grades missing",
                             f"Group {details.get('group_name')} ended with "
                             f"{details['missing_grades']} students without grades",
                             NotificationType.WARNING)

    def _notify(self, user_id: Optional[str], title: str, message: str,
                notification_type: NotificationType = NotificationType.INFO) -> Optional[Notification]:
        if not user_id:
            return None
        notification = Notification(user_id=user_id, title=title, message=message,
                                    notification_type=notification_type)
        self._repository.save(notification)
        logger.debug("Notification for %s: %s", user_id, title)
        return notification

    def list_for_user(self, actor: Actor, unread_only: bool = False) -> List[Notification]:
        """Notifications addressed to the actor or to the actor's role, oldest first."""
        personal = self._repository.find_by_user(actor.user_id, unread_only)
        broadcast = self._repository.find_by_user(role_audience(actor.role), unread_only)
        return sorted(personal + broadcast, key=lambda n: n.created_at)

    def unread_count(self, actor: Actor) -> int:
        return len(self.list_for_user(actor, unread_only=True))

    def mark_read(self, notification_id: str, actor: Actor) -> Notification:
        notification = self._repository.find_by_id(notification_id)
        if notification is None:
            raise NotFoundError(f"Notification {notification_id} not found",
                                details={'notification_id': notification_id})
        if notification.user_id not in (actor.user_id, role_audience(actor.role)):
            raise AuthorizationError("Notification belongs to another user",
                                     details={'notification_id': notification_id})
        if not notification.read:
            notification.mark_read()
            self._repository.save(notification)
        return notification
