"""
Catalog service: students, supervisors, training sites, courses and groups.
"""

import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from ..core.access import Actor, Permission, SYSTEM_ACTOR, authorize
from ..core.entities import Student, Supervisor, TrainingCourse, TrainingGroup, TrainingSite
from ..core.enums import ActivityAction, CourseStatus, GroupStatus, SEAT_OCCUPYING_STATUSES
from ..core.exceptions import NotFoundError, ValidationError
from ..persistence.database import DatabaseManager
from ..persistence.repositories import (
    CourseRepository, GroupRepository, StudentRepository, SupervisorRepository,
    TrainingSiteRepository,
)
from .assignment_ledger import AssignmentLedger
from .concurrency_manager import ConcurrencyManager, course_lock_key, group_lock_key
from .event_service import EventService


logger = logging.getLogger(__name__)

STUDENT_FIELDS = ('university_id', 'name', 'email', 'phone', 'faculty_id', 'major_id', 'level_id')
SUPERVISOR_FIELDS = ('name', 'email', 'phone', 'faculty_id', 'department')
SITE_FIELDS = ('name', 'address', 'contact_name', 'contact_email', 'contact_phone')
COURSE_FIELDS = ('name', 'description', 'faculty_id', 'major_id')
GROUP_FIELDS = ('group_name', 'site_id', 'supervisor_id', 'location', 'start_date', 'end_date')
REQUIRED_GROUP_FIELDS = ('group_name', 'site_id', 'supervisor_id', 'start_date', 'end_date')


def coerce_date(value: Any, field_name: str) -> date:
    """Accept a date or an ISO ``YYYY-MM-DD`` string."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError(f"{field_name} must be a date (YYYY-MM-DD)", details={field_name: value})


def _reject_unknown(changes: Dict[str, Any], allowed: Iterable[str]) -> None:
    unknown = sorted(set(changes) - set(allowed))
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(unknown)}", details={'fields': unknown})


def _require_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required", details={field_name: value})
    return value.strip()


class CatalogService:
    """CRUD for the reference data the registration workflow runs against."""

    def __init__(self, database: DatabaseManager, student_repository: StudentRepository,
                 supervisor_repository: SupervisorRepository, site_repository: TrainingSiteRepository,
                 course_repository: CourseRepository, group_repository: GroupRepository,
                 ledger: AssignmentLedger, concurrency_manager: ConcurrencyManager,
                 event_service: Optional[EventService] = None, registration_workflow=None):
        self._database = database
        self._students = student_repository
        self._supervisors = supervisor_repository
        self._sites = site_repository
        self._courses = course_repository
        self._groups = group_repository
        self._ledger = ledger
        self._concurrency_manager = concurrency_manager
        self._event_service = event_service or EventService()
        self._registration_workflow = registration_workflow

    def attach_workflow(self, registration_workflow) -> None:
        """Workflow used to complete assignments when a course is completed."""
        self._registration_workflow = registration_workflow

    def _emit(self, action: ActivityAction, resource_type: str, resource_id: str,
              actor: Actor, **details: Any) -> None:
        self._event_service.record(action, resource_type, resource_id, actor, **details)

    # Students

    def create_student(self, university_id: str, name: str, actor: Optional[Actor] = None,
                       **fields: Any) -> Student:
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_CATALOG)
        _reject_unknown(fields, STUDENT_FIELDS)

        with self._concurrency_manager.lock("catalog:students"):
            university_id = _require_text(university_id, 'university_id')
            if self._students.find_by_university_id(university_id) is not None:
                raise ValidationError(f"A student with university ID {university_id} already exists",
                                      details={'university_id': university_id})
            student = Student(university_id=university_id, name=name, **fields)
            self._students.save(student)

        self._emit(ActivityAction.CREATE, "student", student.id, actor, university_id=university_id)
        return student

    def import_students(self, records: List[Dict[str, Any]], actor: Optional[Actor] = None) -> Dict[str, Any]:
        """Create students from plain records; bad rows are reported, good rows kept."""
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_CATALOG)

        created: List[Student] = []
        errors: List[Dict[str, Any]] = []
        for index, record in enumerate(records):
            record = dict(record)
            try:
                student = self.create_student(record.pop('university_id', None), record.pop('name', None),
                                              actor=actor, **record)
            except ValidationError as e:
                errors.append({'index': index, 'error': e.error_code, 'message': e.message})
                continue
            created.append(student)

        logger.info("Imported %d students, %d rejected", len(created), len(errors))
        return {'created': created, 'errors': errors}

    def get_student(self, student_id: str) -> Student:
        student = self._students.find_by_id(student_id)
        if student is None:
            raise NotFoundError(f"Student {student_id} not found", details={'student_id': student_id})
        return student

    def list_students(self, faculty_id: Optional[str] = None, major_id: Optional[str] = None,
                      active: Optional[bool] = None) -> List[Student]:
        filters: Dict[str, Any] = {}
        if faculty_id is not None:
            filters['faculty_id'] = faculty_id
        if major_id is not None:
            filters['major_id'] = major_id
        if active is not None:
            filters['active'] = active
        return self._students.find_all(filters)

    def update_student(self, student_id: str, actor: Optional[Actor] = None, **changes: Any) -> Student:
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_CATALOG)
        _reject_unknown(changes, STUDENT_FIELDS)

        with self._concurrency_manager.lock("catalog:students"):
            student = self.get_student(student_id)
            if 'name' in changes:
                changes['name'] = _require_text(changes['name'], 'name')
            if 'university_id' in changes:
                university_id = _require_text(changes['university_id'], 'university_id')
                other = self._students.find_by_university_id(university_id)
                if other is not None and other.id != student_id:
                    raise ValidationError(f"A student with university ID {university_id} already exists",
                                          details={'university_id': university_id})
                changes['university_id'] = university_id
            student.update(**changes)
            self._students.save(student)

        self._emit(ActivityAction.UPDATE, "student", student.id, actor, fields=sorted(changes))
        return student

    def deactivate_student(self, student_id: str, actor: Optional[Actor] = None) -> Student:
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_CATALOG)
        student = self.get_student(student_id)
        student.deactivate()
        self._students.save(student)
        self._emit(ActivityAction.DEACTIVATE, "student", student.id, actor)
        return student

    def delete_student(self, student_id: str, actor: Optional[Actor] = None) -> None:
        """Delete a student that no assignment references."""
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_CATALOG)
        student = self.get_student(student_id)
        if self._ledger.references_student(student_id):
            raise ValidationError("Student has assignments; deactivate instead of deleting",
                                  details={'student_id': student_id})
        self._students.delete(student.id)
        self._emit(ActivityAction.DELETE, "student", student.id, actor)

    # Supervisors

    def create_supervisor(self, name: str, actor: Optional[Actor] = None, **fields: Any) -> Supervisor:
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_CATALOG)
        _reject_unknown(fields, SUPERVISOR_FIELDS)
        supervisor = Supervisor(name=name, **fields)
        self._supervisors.save(supervisor)
        self._emit(ActivityAction.CREATE, "supervisor", supervisor.id, actor)
        return supervisor

    def get_supervisor(self, supervisor_id: str) -> Supervisor:
        supervisor = self._supervisors.find_by_id(supervisor_id)
        if supervisor is None:
            raise NotFoundError(f"Supervisor {supervisor_id} not found",
                                details={'supervisor_id': supervisor_id})
        return supervisor

    def list_supervisors(self, faculty_id: Optional[str] = None) -> List[Supervisor]:
        return self._supervisors.find_all({'faculty_id': faculty_id} if faculty_id else None)

    def update_supervisor(self, supervisor_id: str, actor: Optional[Actor] = None, **changes: Any) -> Supervisor:
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_CATALOG)
        _reject_unknown(changes, SUPERVISOR_FIELDS)
        supervisor = self.get_supervisor(supervisor_id)
        if 'name' in changes:
            changes['name'] = _require_text(changes['name'], 'name')
        supervisor.update(**changes)
        self._supervisors.save(supervisor)
        self._emit(ActivityAction.UPDATE, "supervisor", supervisor.id, actor, fields=sorted(changes))
        return supervisor

    def deactivate_supervisor(self, supervisor_id: str, actor: Optional[Actor] = None) -> Supervisor:
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_CATALOG)
        supervisor = self.get_supervisor(supervisor_id)
        supervisor.deactivate()
        self._supervisors.save(supervisor)
        self._emit(ActivityAction.DEACTIVATE, "supervisor", supervisor.id, actor)
        return supervisor

    def delete_supervisor(self, supervisor_id: str, actor: Optional[Actor] = None) -> None:
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_CATALOG)
        supervisor = self.get_supervisor(supervisor_id)
        if self._groups.find_by_supervisor(supervisor_id):
            raise ValidationError("Supervisor is assigned to training groups",
                                  details={'supervisor_id': supervisor_id})
        self._supervisors.delete(supervisor.id)
        self._emit(ActivityAction.DELETE, "supervisor", supervisor.id, actor)

    # Training sites

    def create_site(self, name: str, actor: Optional[Actor] = None, **fields: Any) -> TrainingSite:
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_CATALOG)
        _reject_unknown(fields, SITE_FIELDS)
        site = TrainingSite(name=name, **fields)
        self._sites.save(site)
        self._emit(ActivityAction.CREATE, "training_site", site.id, actor)
        return site

    def get_site(self, site_id: str) -> TrainingSite:
        site = self._sites.find_by_id(site_id)
        if site is None:
            raise NotFoundError(f"Training site {site_id} not found", details={'site_id': site_id})
        return site

    def list_sites(self) -> List[TrainingSite]:
        return self._sites.find_all()

    def update_site(self, site_id: str, actor: Optional[Actor] = None, **changes: Any) -> TrainingSite:
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_CATALOG)
        _reject_unknown(changes, SITE_FIELDS)
        site = self.get_site(site_id)
        if 'name' in changes:
            changes['name'] = _require_text(changes['name'], 'name')
        site.update(**changes)
        self._sites.save(site)
        self._emit(ActivityAction.UPDATE, "training_site", site.id, actor, fields=sorted(changes))
        return site

    def delete_site(self, site_id: str, actor: Optional[Actor] = None) -> None:
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_CATALOG)
        site = self.get_site(site_id)
        if self._groups.find_by_site(site_id):
            raise ValidationError("Training site hosts training groups", details={'site_id': site_id})
        self._sites.delete(site.id)
        self._emit(ActivityAction.DELETE, "training_site", site.id, actor)

    # Courses

    def _build_course(self, name: str, actor: Actor, fields: Dict[str, Any]) -> TrainingCourse:
        _reject_unknown(fields, COURSE_FIELDS + ('status',))
        status = fields.pop('status', CourseStatus.UPCOMING)
        try:
            status = CourseStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown course status: {status}", details={'status': status})
        return TrainingCourse(name=name, status=status, created_by=actor.user_id, **fields)

    def _build_group(self, course: TrainingCourse, actor: Actor, group_name: str, site_id: str,
                     supervisor_id: str, start_date: Any, end_date: Any, capacity: int = 10,
                     location: Optional[str] = None,
                     pending_names: Iterable[str] = ()) -> TrainingGroup:
        self.get_site(site_id)
        self.get_supervisor(supervisor_id)
        name = _require_text(group_name, 'group_name')
        existing = {g.group_name.lower() for g in self._groups.find_by_course(course.id)}
        existing.update(n.lower() for n in pending_names)
        if name.lower() in existing:
            raise ValidationError(f"Group name '{name}' is already used in this course",
                                  details={'course_id': course.id, 'group_name': name})
        return TrainingGroup(
            course_id=course.id,
            group_name=name,
            site_id=site_id,
            supervisor_id=supervisor_id,
            start_date=coerce_date(start_date, 'start_date'),
            end_date=coerce_date(end_date, 'end_date'),
            capacity=capacity,
            location=location,
            created_by=actor.user_id,
        )

    def create_course(self, name: str, actor: Optional[Actor] = None, **fields: Any) -> TrainingCourse:
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_COURSES)
        course = self._build_course(name, actor, dict(fields))
        self._courses.save(course)
        self._emit(ActivityAction.CREATE, "training_course", course.id, actor)
        return course

    def create_course_with_groups(self, course_data: Dict[str, Any], groups_data: List[Dict[str, Any]],
                                  actor: Optional[Actor] = None) -> Dict[str, Any]:
        """Create a course and its groups in one transaction; any invalid group aborts all."""
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_COURSES)

        course_fields = dict(course_data)
        course = self._build_course(course_fields.pop('name', None), actor, course_fields)

        groups: List[TrainingGroup] = []
        for group_data in groups_data:
            group_fields = dict(group_data)
            group_fields.pop('course_id', None)
            _reject_unknown(group_fields, GROUP_FIELDS + ('capacity',))
            missing = sorted(set(REQUIRED_GROUP_FIELDS) - set(group_fields))
            if missing:
                raise ValidationError(f"Missing group fields: {', '.join(missing)}",
                                      details={'fields': missing})
            groups.append(self._build_group(course, actor, pending_names=[g.group_name for g in groups],
                                            **group_fields))

        statements = [self._courses.upsert_statement(course)]
        statements.extend(self._groups.upsert_statement(group) for group in groups)
        self._database.execute_transaction(statements)

        self._emit(ActivityAction.CREATE, "training_course", course.id, actor,
                   group_ids=[g.id for g in groups])
        logger.info("Created course %s with %d groups", course.id, len(groups))
        return {'course': course, 'groups': groups}

    def get_course(self, course_id: str) -> TrainingCourse:
        course = self._courses.find_by_id(course_id)
        if course is None:
            raise NotFoundError(f"Training course {course_id} not found", details={'course_id': course_id})
        return course

    def list_courses(self, status: Optional[CourseStatus] = None, faculty_id: Optional[str] = None,
                     major_id: Optional[str] = None) -> List[TrainingCourse]:
        filters: Dict[str, Any] = {}
        if status is not None:
            filters['status'] = CourseStatus(status)
        if faculty_id is not None:
            filters['faculty_id'] = faculty_id
        if major_id is not None:
            filters['major_id'] = major_id
        return self._courses.find_all(filters)

    def update_course(self, course_id: str, actor: Optional[Actor] = None, **changes: Any) -> TrainingCourse:
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_COURSES)
        _reject_unknown(changes, COURSE_FIELDS)
        with self._concurrency_manager.lock(course_lock_key(course_id)):
            course = self.get_course(course_id)
            if 'name' in changes:
                changes['name'] = _require_text(changes['name'], 'name')
            course.update(**changes)
            self._courses.save(course)
        self._emit(ActivityAction.UPDATE, "training_course", course.id, actor, fields=sorted(changes))
        return course

    def set_course_status(self, course_id: str, status: CourseStatus,
                          actor: Optional[Actor] = None) -> TrainingCourse:
        """Change a course's status; moving to completed completes its assignments."""
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_COURSES)
        try:
            status = CourseStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown course status: {status}", details={'status': status})

        with self._concurrency_manager.lock(course_lock_key(course_id)):
            course = self.get_course(course_id)
            previous = course.status
            if previous == status:
                return course
            course.set_status(status)
            self._courses.save(course)

        self._emit(ActivityAction.STATUS_CHANGE, "training_course", course.id, actor,
                   previous=previous.value, status=status.value)
        if status == CourseStatus.COMPLETED and self._registration_workflow is not None:
            self._registration_workflow.complete_course(course.id, actor=actor)
        return course

    def archive_course(self, course_id: str, actor: Optional[Actor] = None) -> TrainingCourse:
        """Freeze a finished course; its evaluations become read-only."""
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_COURSES)
        with self._concurrency_manager.lock(course_lock_key(course_id)):
            course = self.get_course(course_id)
            if course.status not in (CourseStatus.COMPLETED, CourseStatus.CANCELLED):
                raise ValidationError("Only completed or cancelled courses can be archived",
                                      details={'course_id': course_id, 'status': course.status.value})
            if not course.archived:
                course.archive()
                self._courses.save(course)
        self._emit(ActivityAction.UPDATE, "training_course", course.id, actor, archived=True)
        return course

    # Groups

    def create_group(self, course_id: str, group_name: str, site_id: str, supervisor_id: str,
                     start_date: Any, end_date: Any, capacity: int = 10, location: Optional[str] = None,
                     actor: Optional[Actor] = None) -> TrainingGroup:
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_COURSES)

        # Serializes name-uniqueness checks per course
        with self._concurrency_manager.lock(course_lock_key(course_id)):
            course = self.get_course(course_id)
            group = self._build_group(course, actor, group_name, site_id, supervisor_id,
                                      start_date, end_date, capacity, location)
            self._groups.save(group)

        self._emit(ActivityAction.CREATE, "training_group", group.id, actor, course_id=course_id,
                   supervisor_id=supervisor_id)
        return group

    def get_group(self, group_id: str) -> TrainingGroup:
        group = self._groups.find_by_id(group_id)
        if group is None:
            raise NotFoundError(f"Training group {group_id} not found", details={'group_id': group_id})
        return group

    def list_groups(self, course_id: Optional[str] = None) -> List[TrainingGroup]:
        if course_id is not None:
            self.get_course(course_id)
            return self._groups.find_by_course(course_id)
        return self._groups.find_all()

    def update_group(self, group_id: str, actor: Optional[Actor] = None, **changes: Any) -> TrainingGroup:
        """Update group fields; capacity may not drop below current enrollment."""
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_COURSES)
        _reject_unknown(changes, GROUP_FIELDS + ('capacity',))

        with self._concurrency_manager.lock(group_lock_key(group_id)):
            group = self.get_group(group_id)
            if 'capacity' in changes:
                enrolled = self._ledger.capacity.current_enrollment(group)
                group._validate_capacity(changes['capacity'])
                if changes['capacity'] < enrolled:
                    raise ValidationError(
                        "Capacity cannot be lower than the current enrollment",
                        details={'capacity': changes['capacity'], 'current_enrollment': enrolled}
                    )
            if 'group_name' in changes:
                name = _require_text(changes['group_name'], 'group_name')
                clash = [g for g in self._groups.find_by_course(group.course_id)
                         if g.id != group.id and g.group_name.lower() == name.lower()]
                if clash:
                    raise ValidationError(f"Group name '{name}' is already used in this course",
                                          details={'group_name': name})
                changes['group_name'] = name
            if 'site_id' in changes:
                self.get_site(changes['site_id'])
            if 'supervisor_id' in changes:
                self.get_supervisor(changes['supervisor_id'])
            for field_name in ('start_date', 'end_date'):
                if field_name in changes:
                    changes[field_name] = coerce_date(changes[field_name], field_name)
            start = changes.get('start_date', group.start_date)
            end = changes.get('end_date', group.end_date)
            if start >= end:
                raise ValidationError("Group start date must be before its end date",
                                      details={'start_date': start.isoformat(), 'end_date': end.isoformat()})

            group.update(**changes)
            self._groups.save(group)

        self._emit(ActivityAction.UPDATE, "training_group", group.id, actor, fields=sorted(changes))
        return group

    def set_group_status(self, group_id: str, status: GroupStatus, actor: Optional[Actor] = None) -> TrainingGroup:
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_COURSES)
        try:
            status = GroupStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown group status: {status}", details={'status': status})
        with self._concurrency_manager.lock(group_lock_key(group_id)):
            group = self.get_group(group_id)
            previous = group.status
            group.set_status(status)
            self._groups.save(group)
        self._emit(ActivityAction.STATUS_CHANGE, "training_group", group.id, actor,
                   previous=previous.value, status=status.value)
        return group

    def delete_group(self, group_id: str, actor: Optional[Actor] = None) -> None:
        actor = actor or SYSTEM_ACTOR
        authorize(actor, Permission.MANAGE_COURSES)
        with self._concurrency_manager.lock(group_lock_key(group_id)):
            group = self.get_group(group_id)
            if self._ledger.references_group(group_id):
                raise ValidationError("Group has assignments; cancel it instead of deleting",
                                      details={'group_id': group_id})
            self._groups.delete(group.id)
        self._emit(ActivityAction.DELETE, "training_group", group.id, actor)

    def list_groups_with_available_seats(self, faculty_id: Optional[str] = None,
                                         major_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Open groups with at least one free seat, optionally filtered by the course's faculty/major."""
        results = []
        for course in self._courses.find_all():
            if not course.status.is_open:
                continue
            if faculty_id is not None and course.faculty_id != faculty_id:
                continue
            if major_id is not None and course.major_id != major_id:
                continue
            for group in self._groups.find_by_course(course.id):
                if group.status in (GroupStatus.CANCELLED, GroupStatus.COMPLETED):
                    continue
                snapshot = self._ledger.capacity.snapshot(group)
                if snapshot['available_seats'] > 0:
                    results.append({'group': group, 'course': course, **snapshot})
        return results

    def group_detail(self, group_id: str) -> Dict[str, Any]:
        """Group with its course, seat snapshot and enrolled students."""
        group = self.get_group(group_id)
        course = self.get_course(group.course_id)
        students = []
        for assignment in self._ledger.list(group_id=group_id, statuses=SEAT_OCCUPYING_STATUSES):
            student = self._students.find_by_id(assignment.student_id)
            students.append({
                'assignment_id': assignment.id,
                'status': assignment.status.value,
                'confirmed': assignment.confirmed,
                'student': student.to_dict() if student else {'id': assignment.student_id},
            })
        return {
            'group': group,
            'course': course,
            'capacity': self._ledger.capacity.snapshot(group),
            'students': students,
        }

    def get_statistics(self) -> Dict[str, int]:
        return {
            'students': self._students.count(),
            'supervisors': self._supervisors.count(),
            'training_sites': self._sites.count(),
            'courses': self._courses.count(),
            'groups': self._groups.count(),
        }
