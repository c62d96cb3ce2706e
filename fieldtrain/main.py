"""
Main entry point for the Fieldtrain platform.
"""

import argparse
import logging
import sys
import threading
import time
from datetime import date, timedelta
from typing import Optional

import uvicorn

from .api.rest_api import FieldTrainingRestAPI
from .config import PlatformSettings, load_settings
from .core.access import Actor
from .core.enums import ActivityStoreType, CourseStatus, Role
from .core.exceptions import FieldTrainingError
from .logging_config import setup_logging
from .persistence import ActivityLogStoreFactory, DatabaseFactory
from .persistence.repositories import (
    StudentRepository, SupervisorRepository, TrainingSiteRepository, CourseRepository,
    GroupRepository, AssignmentRepository, EvaluationRepository, NotificationRepository,
)
from .services import (
    AssignmentLedger, CatalogService, ConcurrencyManager, CourseStatusUpdater, EvaluationService,
    EventService, NotificationService, RegistrationWorkflow,
)


logger = logging.getLogger(__name__)


class FieldTrainingPlatform:
    """Main platform class that wires storage, services and the REST API."""

    def __init__(self, settings: Optional[PlatformSettings] = None):
        self._settings = settings or PlatformSettings()
        self._rest_thread: Optional[threading.Thread] = None
        self._running = False

        self._initialize_platform()

    def _initialize_platform(self):
        """Initialize the platform with all services."""
        settings = self._settings
        logger.info("Initializing Fieldtrain platform...")

        self._database = DatabaseFactory.create_database("sqlite", database_path=settings.database_path)
        logger.info("Database initialized: %s", settings.database_path)

        if settings.activity_store_type == ActivityStoreType.DATABASE:
            store_config = {'database': self._database}
        elif settings.activity_store_type == ActivityStoreType.FILE:
            store_config = {'base_path': settings.activity_store_path}
        else:
            store_config = {}
        self._activity_store = ActivityLogStoreFactory.create_store(settings.activity_store_type, **store_config)
        logger.info("Activity log store initialized: %s", settings.activity_store_type.value)

        self._concurrency_manager = ConcurrencyManager(default_timeout=settings.lock_timeout_seconds)
        self._event_service = EventService(self._activity_store)

        self._repositories = {
            'student': StudentRepository(self._database),
            'supervisor': SupervisorRepository(self._database),
            'site': TrainingSiteRepository(self._database),
            'course': CourseRepository(self._database),
            'group': GroupRepository(self._database),
            'assignment': AssignmentRepository(self._database),
            'evaluation': EvaluationRepository(self._database),
            'notification': NotificationRepository(self._database),
        }
        repos = self._repositories

        self._ledger = AssignmentLedger(repos['assignment'], repos['group'], repos['course'])
        self._registration_workflow = RegistrationWorkflow(
            self._ledger, repos['student'], repos['group'], repos['course'],
            self._concurrency_manager, self._event_service,
        )
        self._catalog_service = CatalogService(
            self._database, repos['student'], repos['supervisor'], repos['site'], repos['course'],
            repos['group'], self._ledger, self._concurrency_manager, self._event_service,
        )
        self._catalog_service.attach_workflow(self._registration_workflow)
        self._evaluation_service = EvaluationService(
            repos['evaluation'], self._ledger, repos['course'], repos['student'],
            self._concurrency_manager, self._event_service,
        )
        self._notification_service = NotificationService(repos['notification'])
        self._event_service.add_event_handler(self._notification_service)

        self._course_status_updater = CourseStatusUpdater(
            repos['course'], repos['group'], self._ledger, self._registration_workflow,
            self._evaluation_service, self._concurrency_manager, self._event_service,
            interval_seconds=settings.course_status_interval_seconds,
        )
        logger.info("Services initialized")

        self._rest_api = FieldTrainingRestAPI(
            self._catalog_service,
            self._registration_workflow,
            self._evaluation_service,
            self._notification_service,
            self._event_service,
            self._course_status_updater,
        )
        logger.info("Fieldtrain platform initialized successfully")

    @property
    def settings(self) -> PlatformSettings:
        return self._settings

    @property
    def database(self):
        return self._database

    @property
    def concurrency_manager(self) -> ConcurrencyManager:
        return self._concurrency_manager

    @property
    def app(self):
        return self._rest_api.app

    @property
    def catalog(self) -> CatalogService:
        return self._catalog_service

    @property
    def registration(self) -> RegistrationWorkflow:
        return self._registration_workflow

    @property
    def evaluations(self) -> EvaluationService:
        return self._evaluation_service

    @property
    def notifications(self) -> NotificationService:
        return self._notification_service

    @property
    def events(self) -> EventService:
        return self._event_service

    @property
    def course_status_updater(self) -> CourseStatusUpdater:
        return self._course_status_updater

    @property
    def running(self) -> bool:
        return self._running

    def start_rest_server(self, host: Optional[str] = None, port: Optional[int] = None):
        """Start the REST server on a background thread."""
        if self._rest_thread is not None:
            logger.warning("REST server already running")
            return

        host = host or self._settings.host
        port = port or self._settings.port

        def run_server():
            uvicorn.run(
                self._rest_api.app,
                host=host,
                port=port,
                log_level=self._settings.log_level.lower()
            )

        self._rest_thread = threading.Thread(target=run_server, name="fieldtrain-rest", daemon=True)
        self._rest_thread.start()
        logger.info("REST server started on %s:%d", host, port)

    def start_platform(self, host: Optional[str] = None, port: Optional[int] = None):
        """Start the entire platform."""
        if self._running:
            logger.warning("Platform already running")
            return

        if self._settings.enable_course_status_updater:
            self._course_status_updater.start()
        self.start_rest_server(host, port)

        self._running = True
        port = port or self._settings.port
        logger.info("Fieldtrain platform started: REST API http://localhost:%d, docs http://localhost:%d/docs",
                    port, port)

    def stop_platform(self):
        """Stop the platform."""
        if not self._running:
            logger.warning("Platform not running")
            return

        logger.info("Stopping Fieldtrain platform...")
        self._course_status_updater.stop()
        self._database.close()
        self._running = False
        logger.info("Fieldtrain platform stopped")

    def create_sample_data(self, today: Optional[date] = None) -> dict:
        """Create sample catalog data for demonstration."""
        today = today or date.today()
        catalog = self._catalog_service

        supervisor = catalog.create_supervisor("Dr. Hana Saleh", faculty_id="medicine")
        hospital = catalog.create_site("City Hospital", address="12 Main St")
        clinic = catalog.create_site("North Clinic", address="3 Hill Rd")

        result = catalog.create_course_with_groups(
            {'name': "Clinical Practice I", 'faculty_id': "medicine", 'major_id': "nursing",
             'status': CourseStatus.ACTIVE},
            [
                {'group_name': "Group A", 'site_id': hospital.id, 'supervisor_id': supervisor.id,
                 'start_date': today, 'end_date': today + timedelta(days=60), 'capacity': 2},
                {'group_name': "Group B", 'site_id': clinic.id, 'supervisor_id': supervisor.id,
                 'start_date': today, 'end_date': today + timedelta(days=60), 'capacity': 1},
            ],
        )

        students = [
            catalog.create_student("20210001", "Alice Johnson", faculty_id="medicine", major_id="nursing"),
            catalog.create_student("20210002", "Bob Smith", faculty_id="medicine", major_id="nursing"),
            catalog.create_student("20210003", "Carol Davis", faculty_id="medicine", major_id="nursing"),
        ]

        logger.info("Sample data created")
        return {'supervisor': supervisor, 'course': result['course'], 'groups': result['groups'],
                'students': students}

    def run_demo(self):
        """Run a demonstration of the platform."""
        print("Running Fieldtrain platform demonstration...")
        data = self.create_sample_data()
        group_a, group_b = data['groups']
        alice, bob, carol = data['students']
        supervisor = Actor(user_id=data['supervisor'].id, role=Role.SUPERVISOR)

        print("\n=== Registration Demo ===")
        for student in (alice, bob, carol):
            try:
                assignment = self._registration_workflow.register(student.id, group_a.id)
                print(f"Registered {student.name} in {group_a.group_name}: {assignment.status.value}")
            except FieldTrainingError as e:
                print(f"Could not register {student.name} in {group_a.group_name}: {e.error_code}")

        print("\n=== Transfer Demo ===")
        _, moved = self._registration_workflow.transfer(bob.id, group_a.id, group_b.id)
        print(f"Transferred {bob.name} to {group_b.group_name}")
        carol_assignment = self._registration_workflow.register(carol.id, group_a.id)
        print(f"Registered {carol.name} in {group_a.group_name} after the transfer")

        print("\n=== Evaluation Demo ===")
        for assignment in (moved, carol_assignment):
            evaluation = self._evaluation_service.evaluate(assignment.id, 18, 22, 40, supervisor)
            print(f"Assignment {assignment.id}: final grade {evaluation.final_grade}")

        print("\n=== Platform Statistics ===")
        print(f"Catalog: {self._catalog_service.get_statistics()}")
        print(f"Assignments: {self._registration_workflow.get_statistics()}")
        print(f"Events: {self._event_service.get_statistics()}")
        print("\nDemo completed")


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Fieldtrain field-training management platform")
    parser.add_argument("--host", type=str, help="REST server host")
    parser.add_argument("--port", type=int, help="REST server port")
    parser.add_argument("--config", type=str, help="Configuration file path (JSON)")
    parser.add_argument("--demo", action="store_true", help="Run demo mode against an in-memory database")
    parser.add_argument("--seed", type=str, metavar="URL", help="Seed sample data into a running server")

    args = parser.parse_args(argv)

    if args.seed:
        from .client import main as seed_main
        return seed_main(args.seed)

    overrides = {'host': args.host, 'port': args.port}
    if args.demo:
        overrides.update(database_path=":memory:", activity_store_type=ActivityStoreType.MEMORY,
                         enable_course_status_updater=False)

    try:
        settings = load_settings(args.config, **overrides)
    except FieldTrainingError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 2

    setup_logging(settings.log_level, settings.log_format)
    platform = FieldTrainingPlatform(settings)

    try:
        if args.demo:
            platform.run_demo()
        else:
            platform.start_platform()

            # Keep running
            print("\nPlatform is running. Press Ctrl+C to stop.")
            while True:
                time.sleep(1)

    except KeyboardInterrupt:
        print("\nShutting down...")
        platform.stop_platform()
    return 0


if __name__ == "__main__":
    sys.exit(main())
