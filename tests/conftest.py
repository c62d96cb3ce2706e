"""
Shared fixtures: an in-memory platform and a small catalog to register into.
"""

from datetime import date, timedelta

import pytest

from fieldtrain.config import PlatformSettings
from fieldtrain.core.access import Actor
from fieldtrain.core.enums import ActivityStoreType, CourseStatus, Role
from fieldtrain.main import FieldTrainingPlatform


TODAY = date(2026, 3, 1)


@pytest.fixture
def settings():
    return PlatformSettings(
        database_path=":memory:",
        activity_store_type=ActivityStoreType.MEMORY,
        enable_course_status_updater=False,
        lock_timeout_seconds=1.0,
    )


@pytest.fixture
def platform(settings):
    return FieldTrainingPlatform(settings)


@pytest.fixture
def admin():
    return Actor(user_id="admin-1", role=Role.ADMIN)


@pytest.fixture
def student_actor():
    return Actor(user_id="student-user", role=Role.STUDENT)


@pytest.fixture
def catalog(platform):
    """Supervisor, two sites, an active course with G1 (capacity 2) and G2 (capacity 1), and students."""
    service = platform.catalog
    supervisor = service.create_supervisor("Dr. Hana Saleh", faculty_id="medicine")
    other_supervisor = service.create_supervisor("Dr. Omar Nasser", faculty_id="medicine")
    site = service.create_site("City Hospital")
    course = service.create_course("Clinical Practice I", faculty_id="medicine", major_id="nursing",
                                   status=CourseStatus.ACTIVE)
    g1 = service.create_group(course.id, "G1", site.id, supervisor.id,
                              TODAY, TODAY + timedelta(days=30), capacity=2)
    g2 = service.create_group(course.id, "G2", site.id, other_supervisor.id,
                              TODAY, TODAY + timedelta(days=30), capacity=1)
    students = [
        service.create_student(f"2021000{i}", f"Student {i}", faculty_id="medicine", major_id="nursing")
        for i in range(1, 5)
    ]
    return {
        'supervisor': supervisor,
        'other_supervisor': other_supervisor,
        'site': site,
        'course': course,
        'g1': g1,
        'g2': g2,
        'students': students,
    }


@pytest.fixture
def supervisor_actor(catalog):
    return Actor(user_id=catalog['supervisor'].id, role=Role.SUPERVISOR)
