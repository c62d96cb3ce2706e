"""
Date-driven course and group status updates.
"""

import logging
import threading
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from ..core.access import SYSTEM_ACTOR
from ..core.entities import TrainingCourse, TrainingGroup
from ..core.enums import ActivityAction, CourseStatus, GroupStatus, SEAT_OCCUPYING_STATUSES
from ..persistence.repositories import CourseRepository, GroupRepository
from .assignment_ledger import AssignmentLedger
from .concurrency_manager import ConcurrencyManager, course_lock_key, group_lock_key
from .evaluation_service import EvaluationService
from .event_service import EventService
from .registration_workflow import RegistrationWorkflow


logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 24 * 60 * 60


def derive_course_status(group_statuses: List[GroupStatus]) -> Optional[CourseStatus]:
    """Active if any group is active, else upcoming if any is upcoming, else completed.

    Returns None when the course has no live groups to derive from.
    """
    live = [status for status in group_statuses if status != GroupStatus.CANCELLED]
    if not live:
        return None
    if GroupStatus.ACTIVE in live:
        return CourseStatus.ACTIVE
    if GroupStatus.UPCOMING in live:
        return CourseStatus.UPCOMING
    return CourseStatus.COMPLETED


class CourseStatusUpdater:
    """Keeps group and course statuses in line with the calendar.

    Runs once per day on a daemon thread. A course that becomes completed
    has its active assignments completed through the registration workflow,
    and every group that ends emits one ``group_ended`` event.
    """

    def __init__(self, course_repository: CourseRepository, group_repository: GroupRepository,
                 ledger: AssignmentLedger, registration_workflow: RegistrationWorkflow,
                 evaluation_service: EvaluationService, concurrency_manager: ConcurrencyManager,
                 event_service: Optional[EventService] = None,
                 interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
                 clock: Callable[[], date] = date.today):
        self._courses = course_repository
        self._groups = group_repository
        self._ledger = ledger
        self._workflow = registration_workflow
        self._evaluations = evaluation_service
        self._concurrency_manager = concurrency_manager
        self._event_service = event_service or EventService()
        self._interval_seconds = interval_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._last_update_date: Optional[date] = None
        self._last_result: Optional[Dict[str, Any]] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def last_update_date(self) -> Optional[date]:
        return self._last_update_date

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def update_course_statuses(self, today: Optional[date] = None) -> Dict[str, Any]:
        """Recompute every group and course status for ``today``."""
        today = today or self._clock()
        result: Dict[str, Any] = {
            'date': today.isoformat(),
            'updated_groups': [],
            'ended_groups': [],
            'updated_courses': [],
            'completed_courses': [],
        }

        with self._lock:
            for course in self._courses.find_all():
                if course.status == CourseStatus.CANCELLED or course.archived:
                    continue
                self._update_course(course, today, result)

            self._last_update_date = today
            self._last_result = result

        logger.info("Course statuses updated for %s: %d groups, %d courses changed",
                    today.isoformat(), len(result['updated_groups']), len(result['updated_courses']))
        return result

    def _update_course(self, course: TrainingCourse, today: date, result: Dict[str, Any]) -> None:
        groups = self._groups.find_by_course(course.id)
        for group in groups:
            if self._update_group(group, today):
                result['updated_groups'].append(group.id)
                if group.status == GroupStatus.COMPLETED:
                    result['ended_groups'].append(group.id)
                    self._emit_group_ended(group)

        new_status = derive_course_status([g.status for g in groups])
        if new_status is None:
            return

        with self._concurrency_manager.lock(course_lock_key(course.id)):
            current = self._courses.find_by_id(course.id)
            if current is None or current.status == new_status:
                return
            previous = current.status
            current.set_status(new_status)
            self._courses.save(current)

        result['updated_courses'].append(course.id)
        self._event_service.record(ActivityAction.STATUS_CHANGE, "training_course", course.id,
                                   SYSTEM_ACTOR, previous=previous.value, status=new_status.value)
        if new_status == CourseStatus.COMPLETED:
            self._workflow.complete_course(course.id, actor=SYSTEM_ACTOR)
            result['completed_courses'].append(course.id)

    def _update_group(self, group: TrainingGroup, today: date) -> bool:
        new_status = group.status_on(today)
        if new_status == group.status:
            return False
        with self._concurrency_manager.lock(group_lock_key(group.id)):
            group.set_status(new_status)
            self._groups.save(group)
        return True

    def _emit_group_ended(self, group: TrainingGroup) -> None:
        enrolled = self._ledger.count_for_group(group.id, SEAT_OCCUPYING_STATUSES)
        missing = len(self._evaluations.students_without_grades(group.id))
        self._event_service.record(
            ActivityAction.GROUP_ENDED, "training_group", group.id, SYSTEM_ACTOR,
            group_name=group.group_name,
            course_id=group.course_id,
            supervisor_id=group.supervisor_id,
            enrolled=enrolled,
            missing_grades=missing,
        )

    def update_if_needed(self, today: Optional[date] = None) -> Optional[Dict[str, Any]]:
        """Run the update unless it already ran for ``today``."""
        today = today or self._clock()
        with self._lock:
            if self._last_update_date == today:
                return None
            return self.update_course_statuses(today)

    def status_info(self) -> Dict[str, Any]:
        return {
            'last_update_date': self._last_update_date.isoformat() if self._last_update_date else None,
            'running': self.running,
            'interval_seconds': self._interval_seconds,
            'last_result': self._last_result,
        }

    def start(self) -> None:
        """Start the background updater; the first run happens immediately."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="course-status-updater", daemon=True)
        self._thread.start()
        logger.info("Course status updater started (every %ss)", self._interval_seconds)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Course status updater stopped")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.update_if_needed()
            except Exception:
                # The thread must survive a bad run; the next tick retries
                logger.exception("Course status update failed")
            self._stop_event.wait(self._interval_seconds)
