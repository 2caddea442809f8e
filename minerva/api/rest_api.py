"""
REST API implementation for the Minerva platform using FastAPI.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Dict, List

from pydantic import BaseModel, Field

from fastapi import FastAPI, Depends, Header, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..core.entities import Course, Exam, Enrollment, Student
from ..core.enums import EnrollmentStatus, Role
from ..core.exceptions import (
    MinervaException, ValidationError, AuthorizationError, NotFoundError, DuplicateEntityError,
    InvalidStateError, ConcurrencyConflictError,
)
from ..services import CourseCompletionEvaluator, CatalogService, EnrollmentAdminService, execute_with_retry

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (DuplicateEntityError, status.HTTP_409_CONFLICT),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (ConcurrencyConflictError, status.HTTP_409_CONFLICT),
]


# Pydantic models for API
class CourseCreate(BaseModel):
    course_code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=200)
    credits: int = Field(..., ge=1, le=6)
    department_id: Optional[int] = Field(default=None, ge=1)


class CourseResponse(BaseModel):
    id: int
    course_code: str
    name: str
    credits: int
    department_id: Optional[int] = None
    is_deleted: bool


class CanRunResponse(BaseModel):
    course_id: int
    can_run: bool


class StudentCreate(BaseModel):
    id: int = Field(..., ge=1)
    full_name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = Field(default=None, max_length=254)
    department_id: Optional[int] = Field(default=None, ge=1)


class StudentResponse(BaseModel):
    id: int
    full_name: str
    email: Optional[str] = None
    department_id: Optional[int] = None


class ExamCreate(BaseModel):
    course_id: int = Field(..., ge=1)
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    total_points: float = Field(..., gt=0)
    exam_date: Optional[datetime] = None
    duration_minutes: int = Field(default=60, ge=1, le=600)


class ExamResponse(BaseModel):
    id: int
    course_id: int
    title: str
    description: Optional[str] = None
    total_points: float
    exam_date: Optional[datetime] = None
    duration_minutes: int


class SubmissionRequest(BaseModel):
    score: Optional[float] = Field(default=None, ge=0)
    submitted_at: Optional[datetime] = None
    submit: bool = True


class SubmissionResponse(BaseModel):
    id: int
    exam_id: int
    student_id: int
    score: Optional[float] = None
    submitted_at: Optional[datetime] = None


class EnrollmentCreate(BaseModel):
    student_id: int = Field(..., ge=1)
    course_id: int = Field(..., ge=1)


class StatusChange(BaseModel):
    status: EnrollmentStatus
    expected_version: Optional[int] = Field(default=None, ge=1)


class EnrollmentResponse(BaseModel):
    id: int
    student_id: int
    course_id: int
    status: str
    final_grade: Optional[float] = None
    grade_letter: Optional[str] = None
    enrollment_date: datetime
    version: int
    is_deleted: bool


class CompletionResponse(BaseModel):
    is_completed: bool
    average_score_percent: float
    grade_letter: Optional[str] = None
    status: str
    submitted_exams: int
    total_exams: int


class GradeResponse(BaseModel):
    success: bool
    message: str
    data: CompletionResponse


@dataclass(frozen=True)
class Principal:
    """Caller identity as established by the authentication layer."""
    user_id: int
    role: Role


def get_principal(x_user_id: int = Header(..., ge=1), x_user_role: str = Header(...)) -> Principal:
    try:
        role = Role(x_user_role)
    except ValueError:
        raise AuthorizationError(f"Unknown role {x_user_role}", error_code="unknown_role")
    return Principal(user_id=x_user_id, role=role)


def require_roles(*allowed: Role):
    def _dep(principal: Principal = Depends(get_principal)) -> Principal:
        if principal.role not in allowed:
            raise AuthorizationError(f"Role {principal.role.value} may not perform this action",
                                     error_code="forbidden")
        return principal
    return _dep


class MinervaRestAPI:
    """REST API implementation for the Minerva platform."""

    def __init__(self, evaluator: CourseCompletionEvaluator, catalog_service: CatalogService,
                 enrollment_service: EnrollmentAdminService, max_retries: int = 3):
        self._evaluator = evaluator
        self._catalog = catalog_service
        self._enrollments = enrollment_service
        self._max_retries = max_retries

        self.app = FastAPI(
            title="Minerva University API",
            description="Enrollment, exam and course completion management",
            version="1.0.0",
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
        self.app.add_exception_handler(MinervaException, self._handle_domain_error)

        self._setup_routes()

    @staticmethod
    async def _handle_domain_error(request: Request, exc: MinervaException) -> JSONResponse:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        for error_type, code in _STATUS_BY_ERROR:
            if isinstance(exc, error_type):
                status_code = code
                break
        if status_code >= 500:
            logger.error("Unhandled %s on %s: %s", type(exc).__name__, request.url.path, exc.message)
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "message": exc.message, "error_code": exc.error_code},
        )

    def _setup_routes(self):
        """Setup API routes."""
        staff = require_roles(Role.ADMIN, Role.INSTRUCTOR)
        admin = require_roles(Role.ADMIN)

        @self.app.get("/health", response_model=Dict[str, str])
        def health_check():
            """Health check endpoint."""
            return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

        # Course endpoints
        @self.app.post("/courses", response_model=CourseResponse, status_code=status.HTTP_201_CREATED)
        def create_course(course_data: CourseCreate, principal: Principal = Depends(admin)):
            """Create a new course."""
            course = self._catalog.add_course(Course(
                course_code=course_data.course_code,
                name=course_data.name,
                credits=course_data.credits,
                department_id=course_data.department_id,
            ))
            return self._course_to_response(course)

        @self.app.get("/courses/{course_id}", response_model=CourseResponse)
        def get_course(course_id: int, principal: Principal = Depends(get_principal)):
            """Get a course by ID."""
            return self._course_to_response(self._catalog.get_course(course_id))

        @self.app.get("/courses/{course_id}/can-run", response_model=CanRunResponse)
        def can_course_run(course_id: int, principal: Principal = Depends(staff)):
            """Check whether a course has enough students to run."""
            return CanRunResponse(course_id=course_id, can_run=self._enrollments.can_course_run(course_id))

        # Student directory endpoints
        @self.app.post("/students", response_model=StudentResponse, status_code=status.HTTP_201_CREATED)
        def register_student(student_data: StudentCreate, principal: Principal = Depends(admin)):
            """Register a student in the directory."""
            student = self._enrollments.register_student(Student(**student_data.model_dump()))
            return StudentResponse(**student.to_dict())

        @self.app.get("/students/{student_id}", response_model=StudentResponse)
        def get_student(student_id: int, principal: Principal = Depends(get_principal)):
            """Get a student's directory entry."""
            self._ensure_self_or_staff(principal, student_id)
            return StudentResponse(**self._enrollments.get_student(student_id).to_dict())

        # Exam endpoints
        @self.app.post("/exams", response_model=ExamResponse, status_code=status.HTTP_201_CREATED)
        def create_exam(exam_data: ExamCreate, principal: Principal = Depends(staff)):
            """Create an exam for a course."""
            exam = self._catalog.add_exam(Exam(
                course_id=exam_data.course_id,
                title=exam_data.title,
                description=exam_data.description,
                total_points=exam_data.total_points,
                exam_date=exam_data.exam_date,
                duration_minutes=exam_data.duration_minutes,
            ))
            return self._exam_to_response(exam)

        @self.app.delete("/exams/{exam_id}", status_code=status.HTTP_204_NO_CONTENT)
        def delete_exam(exam_id: int, principal: Principal = Depends(staff)):
            """Soft-delete an exam."""
            self._catalog.remove_exam(exam_id)

        @self.app.put("/exams/{exam_id}/submissions/{student_id}", response_model=SubmissionResponse)
        def record_submission(exam_id: int, student_id: int, submission: SubmissionRequest,
                              principal: Principal = Depends(staff)):
            """Create or replace a student's submission for an exam."""
            saved = self._catalog.record_submission(
                exam_id, student_id,
                score=submission.score,
                submitted_at=submission.submitted_at,
                submit=submission.submit,
            )
            return SubmissionResponse(
                id=saved.id,
                exam_id=saved.exam_id,
                student_id=saved.student_id,
                score=saved.score,
                submitted_at=saved.submitted_at,
            )

        # Enrollment endpoints
        @self.app.post("/enrollments", response_model=EnrollmentResponse, status_code=status.HTTP_201_CREATED)
        def enroll_student(enrollment_data: EnrollmentCreate, principal: Principal = Depends(admin)):
            """Enroll a student in a course."""
            enrollment = self._enrollments.enroll(enrollment_data.student_id, enrollment_data.course_id)
            return self._enrollment_to_response(enrollment)

        @self.app.get("/students/{student_id}/enrollments", response_model=List[EnrollmentResponse])
        def get_student_enrollments(student_id: int, include_deleted: bool = False,
                                    principal: Principal = Depends(get_principal)):
            """List a student's enrollments."""
            self._ensure_self_or_staff(principal, student_id)
            if include_deleted and principal.role != Role.ADMIN:
                raise AuthorizationError("Only admins may list deleted enrollments", error_code="forbidden")
            enrollments = self._enrollments.list_for_student(student_id, include_deleted=include_deleted)
            return [self._enrollment_to_response(e) for e in enrollments]

        @self.app.patch("/enrollments/{enrollment_id}/status", response_model=EnrollmentResponse)
        def change_enrollment_status(enrollment_id: int, change: StatusChange, principal: Principal = Depends(admin)):
            """Drop, withdraw, reject or re-enroll an enrollment."""
            enrollment = self._enrollments.change_status(enrollment_id, change.status,
                                                         expected_version=change.expected_version)
            return self._enrollment_to_response(enrollment)

        @self.app.delete("/enrollments/{enrollment_id}", status_code=status.HTTP_204_NO_CONTENT)
        def delete_enrollment(enrollment_id: int, hard: bool = False, principal: Principal = Depends(admin)):
            """Soft-delete an enrollment, or remove it permanently with ``hard=true``."""
            if hard:
                self._enrollments.hard_delete(enrollment_id)
            else:
                self._enrollments.soft_delete(enrollment_id)

        @self.app.post("/enrollments/{enrollment_id}/restore", response_model=EnrollmentResponse)
        def restore_enrollment(enrollment_id: int, principal: Principal = Depends(admin)):
            """Restore a soft-deleted enrollment as Pending."""
            return self._enrollment_to_response(self._enrollments.restore(enrollment_id))

        @self.app.post("/enrollments/student/{student_id}/course/{course_id}/grade", response_model=GradeResponse)
        def evaluate_course_grade(student_id: int, course_id: int, principal: Principal = Depends(get_principal)):
            """Calculate a student's course grade and record completion."""
            self._ensure_self_or_staff(principal, student_id)
            result = execute_with_retry(
                lambda: self._evaluator.evaluate(student_id, course_id),
                max_retries=self._max_retries,
            )
            return GradeResponse(
                success=True,
                message="Grade calculated successfully",
                data=CompletionResponse(**result.to_dict()),
            )

    @staticmethod
    def _ensure_self_or_staff(principal: Principal, student_id: int) -> None:
        if principal.role == Role.STUDENT and principal.user_id != student_id:
            raise AuthorizationError("Students may only access their own records", error_code="forbidden")

    @staticmethod
    def _course_to_response(course: Course) -> CourseResponse:
        """Convert Course entity to response model."""
        return CourseResponse(
            id=course.id,
            course_code=course.course_code,
            name=course.name,
            credits=course.credits,
            department_id=course.department_id,
            is_deleted=course.is_deleted,
        )

    @staticmethod
    def _exam_to_response(exam: Exam) -> ExamResponse:
        return ExamResponse(
            id=exam.id,
            course_id=exam.course_id,
            title=exam.title,
            description=exam.description,
            total_points=exam.total_points,
            exam_date=exam.exam_date,
            duration_minutes=exam.duration_minutes,
        )

    @staticmethod
    def _enrollment_to_response(enrollment: Enrollment) -> EnrollmentResponse:
        """Convert Enrollment entity to response model."""
        return EnrollmentResponse(
            id=enrollment.id,
            student_id=enrollment.student_id,
            course_id=enrollment.course_id,
            status=enrollment.status.value,
            final_grade=enrollment.final_grade,
            grade_letter=enrollment.grade_letter,
            enrollment_date=enrollment.enrollment_date,
            version=enrollment.version,
            is_deleted=enrollment.is_deleted,
        )
