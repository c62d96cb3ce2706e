"""
Repository pattern implementations for data access.
"""

import json
import logging
import threading
from abc import abstractmethod
from datetime import date, datetime, timezone
from typing import Any, Dict, Generic, List, Optional, TypeVar

from ..core.entities import (
    AbstractEntity, Assignment, Evaluation, Notification, Student, Supervisor,
    TrainingCourse, TrainingGroup, TrainingSite,
)
from ..core.enums import AssignmentStatus, CourseStatus, GroupStatus, NotificationType
from ..core.interfaces import Repository
from ..core.exceptions import PersistenceError
from .database import DatabaseManager


logger = logging.getLogger(__name__)

T = TypeVar('T', bound=AbstractEntity)

_UPSERT = """
    INSERT INTO entities (id, type, data, created_at, updated_at, version, status)
    VALUES (?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(id) DO UPDATE SET
        data = excluded.data,
        updated_at = excluded.updated_at,
        version = excluded.version,
        status = excluded.status
"""


class BaseRepository(Repository[T], Generic[T]):
    """Base repository storing each entity as a JSON document in the entities table."""

    def __init__(self, database: DatabaseManager, entity_type: str):
        self._database = database
        self._entity_type = entity_type
        self._lock = threading.RLock()

    @property
    def entity_type(self) -> str:
        return self._entity_type

    def upsert_statement(self, entity: T) -> tuple:
        data = entity.to_dict()
        status = data.get('status')
        if isinstance(status, bool) or status is None:
            status = None
        params = (
            entity.id,
            self._entity_type,
            json.dumps(data),
            entity.created_at.isoformat(),
            datetime.now(timezone.utc).isoformat(),
            entity.version,
            status,
        )
        return _UPSERT, params

    def save(self, entity: T) -> T:
        """Insert or update an entity."""
        with self._lock:
            query, params = self.upsert_statement(entity)
            try:
                self._database.execute_update(query, params)
            except PersistenceError:
                raise
            except Exception as e:
                raise PersistenceError(f"Failed to save {self._entity_type}: {str(e)}")
            return entity

    def save_all(self, entities: List[T]) -> List[T]:
        """Save several entities in a single transaction."""
        with self._lock:
            statements = [self.upsert_statement(entity) for entity in entities]
            self._database.execute_transaction(statements)
            return entities

    def find_by_id(self, entity_id: str) -> Optional[T]:
        """Find entity by ID."""
        with self._lock:
            query = "SELECT data FROM entities WHERE id = ? AND type = ?"
            results = self._database.execute_query(query, (entity_id, self._entity_type))
            if results:
                return self._entity_from_dict(json.loads(results[0]["data"]))
            return None

    def find_all(self, filters: Optional[Dict[str, Any]] = None) -> List[T]:
        """Find all entities matching filters, oldest first.

        ``status`` is matched in SQL; any other key is compared against the
        entity's serialized field of the same name.
        """
        filters = dict(filters or {})
        with self._lock:
            query = "SELECT data FROM entities WHERE type = ?"
            params: List[Any] = [self._entity_type]

            status = filters.pop("status", None)
            if status is not None:
                query += " AND status = ?"
                params.append(status.value if hasattr(status, 'value') else status)

            query += " ORDER BY created_at ASC"
            results = self._database.execute_query(query, tuple(params))

        entities = []
        for row in results:
            data = json.loads(row["data"])
            if all(data.get(key) == value for key, value in filters.items()):
                entities.append(self._entity_from_dict(data))
        return entities

    def delete(self, entity_id: str) -> bool:
        """Delete an entity by ID."""
        with self._lock:
            query = "DELETE FROM entities WHERE id = ? AND type = ?"
            return self._database.execute_update(query, (entity_id, self._entity_type)) > 0

    def count(self, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count entities matching filters."""
        return len(self.find_all(filters))

    @abstractmethod
    def _entity_from_dict(self, data: Dict[str, Any]) -> T:
        """Convert dictionary to entity instance."""
        pass


class StudentRepository(BaseRepository[Student]):
    """Repository for Student entities."""

    def __init__(self, database: DatabaseManager):
        super().__init__(database, "student")

    def _entity_from_dict(self, data: Dict[str, Any]) -> Student:
        student = Student(
            university_id=data["university_id"],
            name=data["name"],
            email=data.get("email"),
            faculty_id=data.get("faculty_id"),
            major_id=data.get("major_id"),
            level_id=data.get("level_id"),
            phone=data.get("phone"),
            entity_id=data["id"],
        )
        student._active = data.get("active", True)
        student.restore_state(data)
        return student

    def find_by_university_id(self, university_id: str) -> Optional[Student]:
        matches = self.find_all({"university_id": university_id})
        return matches[0] if matches else None

    def find_by_faculty(self, faculty_id: str) -> List[Student]:
        return self.find_all({"faculty_id": faculty_id})


class SupervisorRepository(BaseRepository[Supervisor]):
    """Repository for Supervisor entities."""

    def __init__(self, database: DatabaseManager):
        super().__init__(database, "supervisor")

    def _entity_from_dict(self, data: Dict[str, Any]) -> Supervisor:
        supervisor = Supervisor(
            name=data["name"],
            email=data.get("email"),
            faculty_id=data.get("faculty_id"),
            department=data.get("department"),
            phone=data.get("phone"),
            entity_id=data["id"],
        )
        supervisor._active = data.get("active", True)
        supervisor.restore_state(data)
        return supervisor


class TrainingSiteRepository(BaseRepository[TrainingSite]):
    """Repository for TrainingSite entities."""

    def __init__(self, database: DatabaseManager):
        super().__init__(database, "training_site")

    def _entity_from_dict(self, data: Dict[str, Any]) -> TrainingSite:
        site = TrainingSite(
            name=data["name"],
            address=data.get("address"),
            contact_name=data.get("contact_name"),
            contact_email=data.get("contact_email"),
            contact_phone=data.get("contact_phone"),
            entity_id=data["id"],
        )
        site.restore_state(data)
        return site


class CourseRepository(BaseRepository[TrainingCourse]):
    """Repository for TrainingCourse entities."""

    def __init__(self, database: DatabaseManager):
        super().__init__(database, "training_course")

    def _entity_from_dict(self, data: Dict[str, Any]) -> TrainingCourse:
        course = TrainingCourse(
            name=data["name"],
            faculty_id=data.get("faculty_id"),
            major_id=data.get("major_id"),
            description=data.get("description", ""),
            status=CourseStatus(data["status"]),
            created_by=data.get("created_by"),
            entity_id=data["id"],
        )
        course._archived = data.get("archived", False)
        course.restore_state(data)
        return course

    def find_by_major(self, major_id: str) -> List[TrainingCourse]:
        return self.find_all({"major_id": major_id})


class GroupRepository(BaseRepository[TrainingGroup]):
    """Repository for TrainingGroup entities."""

    def __init__(self, database: DatabaseManager):
        super().__init__(database, "training_group")

    def _entity_from_dict(self, data: Dict[str, Any]) -> TrainingGroup:
        group = TrainingGroup(
            course_id=data["course_id"],
            group_name=data["group_name"],
            site_id=data["site_id"],
            supervisor_id=data["supervisor_id"],
            start_date=date.fromisoformat(data["start_date"]),
            end_date=date.fromisoformat(data["end_date"]),
            capacity=data["capacity"],
            location=data.get("location"),
            status=GroupStatus(data["status"]),
            created_by=data.get("created_by"),
            entity_id=data["id"],
        )
        group.restore_state(data)
        return group

    def find_by_course(self, course_id: str) -> List[TrainingGroup]:
        return self.find_all({"course_id": course_id})

    def find_by_supervisor(self, supervisor_id: str) -> List[TrainingGroup]:
        return self.find_all({"supervisor_id": supervisor_id})

    def find_by_site(self, site_id: str) -> List[TrainingGroup]:
        return self.find_all({"site_id": site_id})


class AssignmentRepository(BaseRepository[Assignment]):
    """Repository for Assignment entities."""

    def __init__(self, database: DatabaseManager):
        super().__init__(database, "assignment")

    def _entity_from_dict(self, data: Dict[str, Any]) -> Assignment:
        assignment = Assignment(
            student_id=data["student_id"],
            group_id=data["group_id"],
            course_id=data["course_id"],
            status=AssignmentStatus(data["status"]),
            assigned_by=data.get("assigned_by"),
            transferred_from=data.get("transferred_from"),
            entity_id=data["id"],
        )
        assignment.restore_state(data)
        return assignment

    def find_by_student(self, student_id: str) -> List[Assignment]:
        return self.find_all({"student_id": student_id})

    def find_by_group(self, group_id: str) -> List[Assignment]:
        return self.find_all({"group_id": group_id})


class EvaluationRepository(BaseRepository[Evaluation]):
    """Repository for Evaluation entities."""

    def __init__(self, database: DatabaseManager):
        super().__init__(database, "evaluation")

    def _entity_from_dict(self, data: Dict[str, Any]) -> Evaluation:
        evaluation = Evaluation(
            assignment_id=data["assignment_id"],
            attendance_grade=data["attendance_grade"],
            behavior_grade=data["behavior_grade"],
            final_exam_grade=data["final_exam_grade"],
            final_grade=data["final_grade"],
            evaluator_id=data.get("evaluator_id"),
            comments=data.get("comments", ""),
            entity_id=data["id"],
        )
        evaluation.restore_state(data)
        return evaluation

    def find_by_assignment(self, assignment_id: str) -> Optional[Evaluation]:
        matches = self.find_all({"assignment_id": assignment_id})
        return matches[0] if matches else None


class NotificationRepository(BaseRepository[Notification]):
    """Repository for Notification entities."""

    def __init__(self, database: DatabaseManager):
        super().__init__(database, "notification")

    def _entity_from_dict(self, data: Dict[str, Any]) -> Notification:
        notification = Notification(
            user_id=data["user_id"],
            title=data["title"],
            message=data["message"],
            notification_type=NotificationType(data["notification_type"]),
            entity_id=data["id"],
        )
        notification._read = data.get("read", False)
        notification.restore_state(data)
        return notification

    def find_by_user(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        filters: Dict[str, Any] = {"user_id": user_id}
        if unread_only:
            filters["read"] = False
        return self.find_all(filters)
