"""
Core entities for the Minerva platform.

Records are plain dataclasses; identifiers are assigned by the database,
so a freshly built entity carries ``id=None`` until it has been saved.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .enums import EnrollmentStatus, CompletionStatus
from .exceptions import ValidationError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Course:
    """A course in the catalogue."""
    course_code: str
    name: str
    credits: int
    department_id: Optional[int] = None
    id: Optional[int] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def validate(self) -> None:
        """Check the course before it is stored."""
        if not self.course_code or not self.course_code.strip():
            raise ValidationError("Course code is required", error_code="course_code_required")
        if not self.name or not self.name.strip():
            raise ValidationError("Course name is required", error_code="course_name_required")
        if not 1 <= self.credits <= 6:
            raise ValidationError("Credits must be between 1 and 6", error_code="invalid_credits",
                                  details={"credits": self.credits})

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'course_code': self.course_code,
            'name': self.name,
            'credits': self.credits,
            'department_id': self.department_id,
            'is_deleted': self.is_deleted,
            'deleted_at': self.deleted_at.isoformat() if self.deleted_at else None,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }


@dataclass
class Exam:
    """An exam belonging to exactly one course."""
    course_id: int
    title: str
    total_points: float
    description: Optional[str] = None
    exam_date: Optional[datetime] = None
    duration_minutes: int = 60
    id: Optional[int] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def validate(self) -> None:
        """Check the exam before it is stored."""
        if not self.title or not self.title.strip():
            raise ValidationError("Exam title is required", error_code="exam_title_required")
        if self.total_points is None or self.total_points <= 0:
            raise ValidationError("Exam total points must be positive", error_code="invalid_total_points",
                                  details={"total_points": self.total_points})
        if self.duration_minutes <= 0:
            raise ValidationError("Exam duration must be positive", error_code="invalid_duration")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'course_id': self.course_id,
            'title': self.title,
            'description': self.description,
            'total_points': self.total_points,
            'exam_date': self.exam_date.isoformat() if self.exam_date else None,
            'duration_minutes': self.duration_minutes,
            'is_deleted': self.is_deleted,
        }


@dataclass
class Student:
    """A student known to the directory.

    The ``id`` is the identity provider's user id, not a database sequence.
    Students with a ``department_id`` may only enroll in that department's
    courses.
    """
    id: int
    full_name: str
    email: Optional[str] = None
    department_id: Optional[int] = None
    created_at: datetime = field(default_factory=utc_now)

    def validate(self) -> None:
        if isinstance(self.id, bool) or not isinstance(self.id, int) or self.id <= 0:
            raise ValidationError("Student id must be a positive integer", error_code="invalid_id")
        if not self.full_name or not self.full_name.strip():
            raise ValidationError("Student name is required", error_code="student_name_required")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'full_name': self.full_name,
            'email': self.email,
            'department_id': self.department_id,
        }


@dataclass
class ExamSubmission:
    """A student's attempt at one exam.

    ``score`` stays ``None`` until the attempt is graded and
    ``submitted_at`` stays ``None`` while it is in progress.
    """
    exam_id: int
    student_id: int
    score: Optional[float] = None
    submitted_at: Optional[datetime] = None
    id: Optional[int] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_submitted(self) -> bool:
        return self.submitted_at is not None

    @property
    def is_graded(self) -> bool:
        return self.score is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'exam_id': self.exam_id,
            'student_id': self.student_id,
            'score': self.score,
            'submitted_at': self.submitted_at.isoformat() if self.submitted_at else None,
        }


@dataclass
class Enrollment:
    """A student's enrollment in a course.

    ``version`` is bumped by every write and guards completion updates
    against lost updates.
    """
    student_id: int
    course_id: int
    status: EnrollmentStatus = EnrollmentStatus.ENROLLED
    final_grade: Optional[float] = None
    grade_letter: Optional[str] = None
    enrollment_date: datetime = field(default_factory=utc_now)
    id: Optional[int] = None
    version: int = 1
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'student_id': self.student_id,
            'course_id': self.course_id,
            'status': self.status.value,
            'final_grade': self.final_grade,
            'grade_letter': self.grade_letter,
            'enrollment_date': self.enrollment_date.isoformat(),
            'version': self.version,
            'is_deleted': self.is_deleted,
            'deleted_at': self.deleted_at.isoformat() if self.deleted_at else None,
        }

    def __repr__(self) -> str:
        return (f"Enrollment(id={self.id}, student_id={self.student_id}, "
                f"course_id={self.course_id}, status={self.status.value}, version={self.version})")


@dataclass(frozen=True)
class CompletionResult:
    """Derived outcome of evaluating one enrollment; never persisted."""
    is_completed: bool
    average_score_percent: float
    grade_letter: Optional[str]
    status: CompletionStatus
    submitted_exams: int
    total_exams: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_completed': self.is_completed,
            'average_score_percent': self.average_score_percent,
            'grade_letter': self.grade_letter,
            'status': self.status.value,
            'submitted_exams': self.submitted_exams,
            'total_exams': self.total_exams,
        }
