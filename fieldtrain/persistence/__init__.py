"""
Persistence module for entity storage and the activity log.
"""

from .database import DatabaseManager, SQLiteDatabase, DatabaseFactory, MEMORY_DATABASE
from .activity_store import (
    InMemoryActivityLogStore, FileActivityLogStore, DatabaseActivityLogStore,
    ActivityLogStoreFactory,
)
from .repositories import (
    BaseRepository, StudentRepository, SupervisorRepository, TrainingSiteRepository,
    CourseRepository, GroupRepository, AssignmentRepository, EvaluationRepository,
    NotificationRepository,
)

__all__ = [
    "DatabaseManager",
    "SQLiteDatabase",
    "DatabaseFactory",
    "MEMORY_DATABASE",
    "InMemoryActivityLogStore",
    "FileActivityLogStore",
    "DatabaseActivityLogStore",
    "ActivityLogStoreFactory",
    "BaseRepository",
    "StudentRepository",
    "SupervisorRepository",
    "TrainingSiteRepository",
    "CourseRepository",
    "GroupRepository",
    "AssignmentRepository",
    "EvaluationRepository",
    "NotificationRepository",
]
