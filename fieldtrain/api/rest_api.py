"""
REST API implementation for the Fieldtrain platform using FastAPI.

Routes are plain ``def`` functions so FastAPI runs them in its threadpool;
the registration core blocks on per-group locks and must not run on the
event loop.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, Query, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .. import __version__
from ..core.access import Actor, Permission, authorize
from ..core.enums import AssignmentStatus, CourseStatus, GroupStatus
from ..core.exceptions import (
    AlreadyCancelledError, AuthorizationError, BusyError, CapacityExceededError,
    CourseNotOpenError, DuplicateActiveAssignmentError, EvaluationLockedError,
    FieldTrainingError, NotFoundError, NotRegisteredError, PersistenceError, ValidationError,
)
from ..services import (
    AssignmentLedger, CatalogService, CourseStatusUpdater, EvaluationService, EventService,
    NotificationService, RegistrationWorkflow,
)


logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = "1"

# Most specific class first; lookup walks the exception's MRO
ERROR_STATUS_CODES = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    AuthorizationError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    NotRegisteredError: status.HTTP_404_NOT_FOUND,
    CapacityExceededError: status.HTTP_409_CONFLICT,
    DuplicateActiveAssignmentError: status.HTTP_409_CONFLICT,
    CourseNotOpenError: status.HTTP_409_CONFLICT,
    AlreadyCancelledError: status.HTTP_409_CONFLICT,
    EvaluationLockedError: status.HTTP_409_CONFLICT,
    BusyError: status.HTTP_503_SERVICE_UNAVAILABLE,
    PersistenceError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_code_for(error: FieldTrainingError) -> int:
    for cls in type(error).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def get_actor(x_actor_id: Optional[str] = Header(None),
              x_actor_role: Optional[str] = Header(None)) -> Actor:
    """Acting user, as identified by the auth layer in front of this API."""
    return Actor.from_values(x_actor_id, x_actor_role)


# Pydantic models for API
class StudentCreate(BaseModel):
    university_id: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = Field(None, pattern=r'^[^@]+@[^@]+\.[^@]+$')
    phone: Optional[str] = None
    faculty_id: Optional[str] = None
    major_id: Optional[str] = None
    level_id: Optional[str] = None


class StudentUpdate(BaseModel):
    university_id: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[str] = Field(None, pattern=r'^[^@]+@[^@]+\.[^@]+$')
    phone: Optional[str] = None
    faculty_id: Optional[str] = None
    major_id: Optional[str] = None
    level_id: Optional[str] = None


class StudentImport(BaseModel):
    students: List[Dict[str, Any]] = Field(..., min_length=1)


class StudentResponse(BaseModel):
    id: str
    university_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    faculty_id: Optional[str] = None
    major_id: Optional[str] = None
    level_id: Optional[str] = None
    active: bool
    created_at: datetime
    updated_at: datetime
    version: int


class SupervisorCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = Field(None, pattern=r'^[^@]+@[^@]+\.[^@]+$')
    phone: Optional[str] = None
    faculty_id: Optional[str] = None
    department: Optional[str] = None


class SupervisorUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[str] = Field(None, pattern=r'^[^@]+@[^@]+\.[^@]+$')
    phone: Optional[str] = None
    faculty_id: Optional[str] = None
    department: Optional[str] = None


class SiteCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    address: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None


class SiteUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    address: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None


class CourseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=2000)
    faculty_id: Optional[str] = None
    major_id: Optional[str] = None
    status: CourseStatus = CourseStatus.UPCOMING


class CourseUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    faculty_id: Optional[str] = None
    major_id: Optional[str] = None


class CourseStatusUpdate(BaseModel):
    status: CourseStatus


class CourseResponse(BaseModel):
    id: str
    name: str
    description: str
    faculty_id: Optional[str] = None
    major_id: Optional[str] = None
    status: CourseStatus
    archived: bool
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    version: int


class GroupCreate(BaseModel):
    group_name: str = Field(..., min_length=1, max_length=100)
    site_id: str = Field(..., min_length=1)
    supervisor_id: str = Field(..., min_length=1)
    start_date: date
    end_date: date
    capacity: int = Field(10, ge=1, le=1000)
    location: Optional[str] = None


class GroupUpdate(BaseModel):
    group_name: Optional[str] = Field(None, min_length=1, max_length=100)
    site_id: Optional[str] = None
    supervisor_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    capacity: Optional[int] = Field(None, ge=1, le=1000)
    location: Optional[str] = None


class CourseWithGroupsCreate(BaseModel):
    course: CourseCreate
    groups: List[GroupCreate] = Field(default_factory=list)


class GroupResponse(BaseModel):
    id: str
    course_id: str
    group_name: str
    site_id: str
    supervisor_id: str
    start_date: date
    end_date: date
    capacity: int
    current_enrollment: int
    available_seats: int
    is_full: bool
    location: Optional[str] = None
    status: GroupStatus
    created_at: datetime
    updated_at: datetime
    version: int


class RegistrationRequest(BaseModel):
    student_id: str = Field(..., min_length=1)
    group_id: str = Field(..., min_length=1)


class TransferRequest(BaseModel):
    student_id: str = Field(..., min_length=1)
    from_group_id: str = Field(..., min_length=1)
    to_group_id: str = Field(..., min_length=1)


class AssignmentResponse(BaseModel):
    id: str
    student_id: str
    group_id: str
    course_id: str
    status: AssignmentStatus
    confirmed: bool
    assigned_by: Optional[str] = None
    assigned_at: datetime
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    transferred_from: Optional[str] = None
    replaced_by: Optional[str] = None
    version: int


class TransferResponse(BaseModel):
    cancelled: AssignmentResponse
    assignment: AssignmentResponse


class EvaluationRequest(BaseModel):
    attendance_grade: float = Field(..., ge=0, le=100)
    behavior_grade: float = Field(..., ge=0, le=100)
    final_exam_grade: float = Field(..., ge=0, le=100)
    comments: str = Field("", max_length=2000)


class EvaluationResponse(BaseModel):
    id: str
    assignment_id: str
    attendance_grade: float
    behavior_grade: float
    final_exam_grade: float
    final_grade: float
    passed: bool
    evaluator_id: Optional[str] = None
    comments: str
    evaluated_at: datetime
    version: int


class NotificationResponse(BaseModel):
    id: str
    user_id: str
    title: str
    message: str
    notification_type: str
    read: bool
    created_at: datetime


class StatisticsResponse(BaseModel):
    success: bool
    message: str
    statistics: Dict[str, Any]


class FieldTrainingRestAPI:
    """REST API implementation for the Fieldtrain platform."""

    def __init__(self, catalog_service: CatalogService, registration_workflow: RegistrationWorkflow,
                 evaluation_service: EvaluationService, notification_service: NotificationService,
                 event_service: EventService, course_status_updater: Optional[CourseStatusUpdater] = None):
        self._catalog = catalog_service
        self._workflow = registration_workflow
        self._ledger: AssignmentLedger = registration_workflow.ledger
        self._evaluations = evaluation_service
        self._notifications = notification_service
        self._event_service = event_service
        self._course_status_updater = course_status_updater

        self.app = FastAPI(
            title="Fieldtrain API",
            description="Field-training course, group and assignment management",
            version=__version__,
            docs_url="/docs",
            redoc_url="/redoc"
        )

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self._setup_exception_handlers()
        self._setup_routes()

    def _setup_exception_handlers(self):
        @self.app.exception_handler(FieldTrainingError)
        async def handle_domain_error(request, exc: FieldTrainingError):
            status_code = status_code_for(exc)
            headers = {"Retry-After": RETRY_AFTER_SECONDS} if isinstance(exc, BusyError) else None
            if status_code >= 500:
                logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
            return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)

        @self.app.exception_handler(RequestValidationError)
        async def handle_request_validation(request, exc: RequestValidationError):
            error = ValidationError("Request validation failed",
                                    details={'errors': [
                                        {'loc': list(e.get('loc', ())), 'msg': e.get('msg')}
                                        for e in exc.errors()
                                    ]})
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error.to_dict())

    def _setup_routes(self):
        """Setup API routes."""
        app = self.app

        @app.get("/", response_model=Dict[str, str])
        def root():
            """Root endpoint."""
            return {
                "message": "Fieldtrain API",
                "version": __version__,
                "docs": "/docs"
            }

        @app.get("/health", response_model=Dict[str, str])
        def health_check():
            """Health check endpoint."""
            return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

        # Student endpoints
        @app.post("/students", response_model=StudentResponse, status_code=status.HTTP_201_CREATED)
        def create_student(data: StudentCreate, actor: Actor = Depends(get_actor)):
            fields = data.model_dump(exclude_none=True)
            student = self._catalog.create_student(fields.pop('university_id'), fields.pop('name'),
                                                   actor=actor, **fields)
            return StudentResponse(**student.to_dict())

        @app.post("/students/import", response_model=Dict[str, Any])
        def import_students(data: StudentImport, actor: Actor = Depends(get_actor)):
            result = self._catalog.import_students(data.students, actor=actor)
            return {
                "created": [s.to_dict() for s in result['created']],
                "errors": result['errors'],
            }

        @app.get("/students", response_model=List[StudentResponse])
        def list_students(faculty_id: Optional[str] = None, major_id: Optional[str] = None,
                          active: Optional[bool] = None, skip: int = 0, limit: int = 100,
                          actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_RECORDS)
            students = self._catalog.list_students(faculty_id, major_id, active)
            return [StudentResponse(**s.to_dict()) for s in students[skip:skip + limit]]

        @app.get("/students/{student_id}", response_model=StudentResponse)
        def get_student(student_id: str, actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_RECORDS)
            return StudentResponse(**self._catalog.get_student(student_id).to_dict())

        @app.patch("/students/{student_id}", response_model=StudentResponse)
        def update_student(student_id: str, data: StudentUpdate, actor: Actor = Depends(get_actor)):
            student = self._catalog.update_student(student_id, actor=actor,
                                                   **data.model_dump(exclude_unset=True))
            return StudentResponse(**student.to_dict())

        @app.post("/students/{student_id}/deactivate", response_model=StudentResponse)
        def deactivate_student(student_id: str, actor: Actor = Depends(get_actor)):
            return StudentResponse(**self._catalog.deactivate_student(student_id, actor=actor).to_dict())

        @app.delete("/students/{student_id}", status_code=status.HTTP_204_NO_CONTENT)
        def delete_student(student_id: str, actor: Actor = Depends(get_actor)):
            self._catalog.delete_student(student_id, actor=actor)
            return Response(status_code=status.HTTP_204_NO_CONTENT)

        @app.get("/students/{student_id}/assignments", response_model=List[AssignmentResponse])
        def get_student_assignments(student_id: str, actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_RECORDS)
            return [self._assignment_response(a) for a in self._workflow.get_student_assignments(student_id)]

        # Supervisor endpoints
        @app.post("/supervisors", response_model=Dict[str, Any], status_code=status.HTTP_201_CREATED)
        def create_supervisor(data: SupervisorCreate, actor: Actor = Depends(get_actor)):
            fields = data.model_dump(exclude_none=True)
            return self._catalog.create_supervisor(fields.pop('name'), actor=actor, **fields).to_dict()

        @app.get("/supervisors", response_model=List[Dict[str, Any]])
        def list_supervisors(faculty_id: Optional[str] = None, actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_RECORDS)
            return [s.to_dict() for s in self._catalog.list_supervisors(faculty_id)]

        @app.get("/supervisors/{supervisor_id}", response_model=Dict[str, Any])
        def get_supervisor(supervisor_id: str, actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_RECORDS)
            return self._catalog.get_supervisor(supervisor_id).to_dict()

        @app.patch("/supervisors/{supervisor_id}", response_model=Dict[str, Any])
        def update_supervisor(supervisor_id: str, data: SupervisorUpdate, actor: Actor = Depends(get_actor)):
            return self._catalog.update_supervisor(supervisor_id, actor=actor,
                                                   **data.model_dump(exclude_unset=True)).to_dict()

        @app.post("/supervisors/{supervisor_id}/deactivate", response_model=Dict[str, Any])
        def deactivate_supervisor(supervisor_id: str, actor: Actor = Depends(get_actor)):
            return self._catalog.deactivate_supervisor(supervisor_id, actor=actor).to_dict()

        @app.delete("/supervisors/{supervisor_id}", status_code=status.HTTP_204_NO_CONTENT)
        def delete_supervisor(supervisor_id: str, actor: Actor = Depends(get_actor)):
            self._catalog.delete_supervisor(supervisor_id, actor=actor)
            return Response(status_code=status.HTTP_204_NO_CONTENT)

        # Training site endpoints
        @app.post("/sites", response_model=Dict[str, Any], status_code=status.HTTP_201_CREATED)
        def create_site(data: SiteCreate, actor: Actor = Depends(get_actor)):
            fields = data.model_dump(exclude_none=True)
            return self._catalog.create_site(fields.pop('name'), actor=actor, **fields).to_dict()

        @app.get("/sites", response_model=List[Dict[str, Any]])
        def list_sites(actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_RECORDS)
            return [s.to_dict() for s in self._catalog.list_sites()]

        @app.get("/sites/{site_id}", response_model=Dict[str, Any])
        def get_site(site_id: str, actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_RECORDS)
            return self._catalog.get_site(site_id).to_dict()

        @app.patch("/sites/{site_id}", response_model=Dict[str, Any])
        def update_site(site_id: str, data: SiteUpdate, actor: Actor = Depends(get_actor)):
            return self._catalog.update_site(site_id, actor=actor,
                                             **data.model_dump(exclude_unset=True)).to_dict()

        @app.delete("/sites/{site_id}", status_code=status.HTTP_204_NO_CONTENT)
        def delete_site(site_id: str, actor: Actor = Depends(get_actor)):
            self._catalog.delete_site(site_id, actor=actor)
            return Response(status_code=status.HTTP_204_NO_CONTENT)

        # Course endpoints
        @app.post("/courses", response_model=CourseResponse, status_code=status.HTTP_201_CREATED)
        def create_course(data: CourseCreate, actor: Actor = Depends(get_actor)):
            fields = data.model_dump(exclude_none=True)
            course = self._catalog.create_course(fields.pop('name'), actor=actor, **fields)
            return CourseResponse(**course.to_dict())

        @app.post("/courses/with-groups", response_model=Dict[str, Any], status_code=status.HTTP_201_CREATED)
        def create_course_with_groups(data: CourseWithGroupsCreate, actor: Actor = Depends(get_actor)):
            result = self._catalog.create_course_with_groups(
                data.course.model_dump(exclude_none=True),
                [g.model_dump(exclude_none=True) for g in data.groups],
                actor=actor,
            )
            return {
                "course": CourseResponse(**result['course'].to_dict()).model_dump(mode="json"),
                "groups": [self._group_response(g).model_dump(mode="json") for g in result['groups']],
            }

        @app.get("/courses", response_model=List[CourseResponse])
        def list_courses(status_filter: Optional[CourseStatus] = Query(None, alias="status"), faculty_id: Optional[str] = None,
                         major_id: Optional[str] = None, actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_RECORDS)
            courses = self._catalog.list_courses(status_filter, faculty_id, major_id)
            return [CourseResponse(**c.to_dict()) for c in courses]

        @app.get("/courses/{course_id}", response_model=CourseResponse)
        def get_course(course_id: str, actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_RECORDS)
            return CourseResponse(**self._catalog.get_course(course_id).to_dict())

        @app.patch("/courses/{course_id}", response_model=CourseResponse)
        def update_course(course_id: str, data: CourseUpdate, actor: Actor = Depends(get_actor)):
            course = self._catalog.update_course(course_id, actor=actor, **data.model_dump(exclude_unset=True))
            return CourseResponse(**course.to_dict())

        @app.put("/courses/{course_id}/status", response_model=CourseResponse)
        def set_course_status(course_id: str, data: CourseStatusUpdate, actor: Actor = Depends(get_actor)):
            course = self._catalog.set_course_status(course_id, data.status, actor=actor)
            return CourseResponse(**course.to_dict())

        @app.post("/courses/{course_id}/archive", response_model=CourseResponse)
        def archive_course(course_id: str, actor: Actor = Depends(get_actor)):
            return CourseResponse(**self._catalog.archive_course(course_id, actor=actor).to_dict())

        @app.post("/courses/{course_id}/complete", response_model=List[AssignmentResponse])
        def complete_course(course_id: str, actor: Actor = Depends(get_actor)):
            return [self._assignment_response(a) for a in self._workflow.complete_course(course_id, actor=actor)]

        # Group endpoints
        @app.post("/courses/{course_id}/groups", response_model=GroupResponse,
                  status_code=status.HTTP_201_CREATED)
        def create_group(course_id: str, data: GroupCreate, actor: Actor = Depends(get_actor)):
            group = self._catalog.create_group(course_id, actor=actor, **data.model_dump())
            return self._group_response(group)

        @app.get("/groups", response_model=List[GroupResponse])
        def list_groups(course_id: Optional[str] = None, actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_RECORDS)
            return [self._group_response(g) for g in self._catalog.list_groups(course_id)]

        @app.get("/groups/available", response_model=List[GroupResponse])
        def list_available_groups(faculty_id: Optional[str] = None, major_id: Optional[str] = None,
                                  actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_RECORDS)
            entries = self._catalog.list_groups_with_available_seats(faculty_id, major_id)
            return [self._group_response(entry['group']) for entry in entries]

        @app.get("/groups/{group_id}", response_model=Dict[str, Any])
        def get_group(group_id: str, actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_RECORDS)
            detail = self._catalog.group_detail(group_id)
            return {
                "group": self._group_response(detail['group']).model_dump(mode="json"),
                "course": CourseResponse(**detail['course'].to_dict()).model_dump(mode="json"),
                "students": detail['students'],
            }

        @app.patch("/groups/{group_id}", response_model=GroupResponse)
        def update_group(group_id: str, data: GroupUpdate, actor: Actor = Depends(get_actor)):
            group = self._catalog.update_group(group_id, actor=actor, **data.model_dump(exclude_unset=True))
            return self._group_response(group)

        @app.delete("/groups/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
        def delete_group(group_id: str, actor: Actor = Depends(get_actor)):
            self._catalog.delete_group(group_id, actor=actor)
            return Response(status_code=status.HTTP_204_NO_CONTENT)

        @app.get("/groups/{group_id}/students-without-grades", response_model=List[Dict[str, Any]])
        def students_without_grades(group_id: str, actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_RECORDS)
            self._catalog.get_group(group_id)
            return self._evaluations.students_without_grades(group_id)

        @app.get("/groups/{group_id}/evaluations", response_model=List[EvaluationResponse])
        def list_group_evaluations(group_id: str, actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_RECORDS)
            self._catalog.get_group(group_id)
            return [EvaluationResponse(**self._evaluations.summary(e))
                    for e in self._evaluations.list(group_id=group_id)]

        # Registration endpoints
        @app.post("/registrations", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
        def register(data: RegistrationRequest, actor: Actor = Depends(get_actor)):
            assignment = self._workflow.register(data.student_id, data.group_id, actor=actor)
            return self._assignment_response(assignment)

        @app.post("/registrations/cancel", response_model=AssignmentResponse)
        def cancel_registration(data: RegistrationRequest, actor: Actor = Depends(get_actor)):
            assignment = self._workflow.cancel(data.student_id, data.group_id, actor=actor)
            return self._assignment_response(assignment)

        @app.post("/registrations/transfer", response_model=TransferResponse)
        def transfer(data: TransferRequest, actor: Actor = Depends(get_actor)):
            cancelled, assignment = self._workflow.transfer(
                data.student_id, data.from_group_id, data.to_group_id, actor=actor)
            return TransferResponse(cancelled=self._assignment_response(cancelled),
                                    assignment=self._assignment_response(assignment))

        # Assignment endpoints
        @app.get("/assignments", response_model=List[AssignmentResponse])
        def list_assignments(student_id: Optional[str] = None, course_id: Optional[str] = None,
                             group_id: Optional[str] = None,
                             status_filter: Optional[AssignmentStatus] = Query(None, alias="status"),
                             actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_RECORDS)
            statuses = [status_filter] if status_filter else None
            assignments = self._ledger.list(student_id=student_id, course_id=course_id,
                                            group_id=group_id, statuses=statuses)
            return [self._assignment_response(a) for a in assignments]

        @app.get("/assignments/{assignment_id}", response_model=AssignmentResponse)
        def get_assignment(assignment_id: str, actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_RECORDS)
            return self._assignment_response(self._ledger.get(assignment_id))

        @app.post("/assignments/{assignment_id}/cancel", response_model=AssignmentResponse)
        def cancel_assignment(assignment_id: str, actor: Actor = Depends(get_actor)):
            return self._assignment_response(self._workflow.cancel_assignment(assignment_id, actor=actor))

        @app.post("/assignments/{assignment_id}/confirm", response_model=AssignmentResponse)
        def confirm_assignment(assignment_id: str, actor: Actor = Depends(get_actor)):
            return self._assignment_response(self._workflow.confirm(assignment_id, actor))

        # Evaluation endpoints
        @app.put("/assignments/{assignment_id}/evaluation", response_model=EvaluationResponse)
        def evaluate(assignment_id: str, data: EvaluationRequest, actor: Actor = Depends(get_actor)):
            evaluation = self._evaluations.evaluate(
                assignment_id, data.attendance_grade, data.behavior_grade, data.final_exam_grade,
                actor, comments=data.comments)
            return EvaluationResponse(**self._evaluations.summary(evaluation))

        @app.get("/assignments/{assignment_id}/evaluation", response_model=EvaluationResponse)
        def get_evaluation(assignment_id: str, actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_RECORDS)
            evaluation = self._evaluations.get_for_assignment(assignment_id)
            return EvaluationResponse(**self._evaluations.summary(evaluation))

        # Activity log and notifications
        @app.get("/activity", response_model=List[Dict[str, Any]])
        def list_activity(resource_type: Optional[str] = None, resource_id: Optional[str] = None,
                          skip: int = 0, limit: int = 100, actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_ACTIVITY_LOG)
            events = self._event_service.get_events(resource_type, resource_id)
            return [e.to_dict() for e in events[skip:skip + limit]]

        @app.get("/notifications", response_model=List[NotificationResponse])
        def list_notifications(unread_only: bool = False, actor: Actor = Depends(get_actor)):
            return [NotificationResponse(**n.to_dict())
                    for n in self._notifications.list_for_user(actor, unread_only)]

        @app.post("/notifications/{notification_id}/read", response_model=NotificationResponse)
        def mark_notification_read(notification_id: str, actor: Actor = Depends(get_actor)):
            return NotificationResponse(**self._notifications.mark_read(notification_id, actor).to_dict())

        # Course status updater
        @app.get("/course-status", response_model=Dict[str, Any])
        def course_status_info(actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_RECORDS)
            if self._course_status_updater is None:
                return {"enabled": False}
            return {"enabled": True, **self._course_status_updater.status_info()}

        @app.post("/course-status/run", response_model=Dict[str, Any])
        def run_course_status_update(actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.MANAGE_COURSES)
            if self._course_status_updater is None:
                raise ValidationError("Course status updater is not configured")
            return self._course_status_updater.update_course_statuses()

        # Statistics endpoints
        @app.get("/statistics", response_model=StatisticsResponse)
        def get_statistics(actor: Actor = Depends(get_actor)):
            authorize(actor, Permission.VIEW_ACTIVITY_LOG)
            statistics = {
                "catalog": self._catalog.get_statistics(),
                "assignments": self._workflow.get_statistics(),
                "events": self._event_service.get_statistics(),
            }
            return StatisticsResponse(
                success=True,
                message="Statistics retrieved successfully",
                statistics=statistics
            )

    def _assignment_response(self, assignment) -> AssignmentResponse:
        return AssignmentResponse(**assignment.to_dict())

    def _group_response(self, group) -> GroupResponse:
        """Convert a TrainingGroup to its response model, with live seat counts."""
        snapshot = self._ledger.capacity.snapshot(group)
        data = group.to_dict()
        data.update(
            current_enrollment=snapshot['current_enrollment'],
            available_seats=snapshot['available_seats'],
            is_full=snapshot['is_full'],
        )
        return GroupResponse(**data)
