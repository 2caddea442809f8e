"""
Enrollment administration: enrolling, status changes and (soft) deletion.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from ..core.entities import Enrollment, Student, utc_now
from ..core.enums import EnrollmentStatus, ADMINISTRATIVE_STATUSES
from ..core.exceptions import (
    ValidationError, NotFoundError, DuplicateEntityError, InvalidStateError, ConcurrencyConflictError
)
from ..persistence.repositories import CourseRepository, EnrollmentRepository, ExamRepository, StudentRepository

logger = logging.getLogger(__name__)

MAX_SEMESTER_CREDITS = 21
MAX_ANNUAL_CREDITS = 36
ACADEMIC_YEAR_START_MONTH = 9
MIN_STUDENTS_TO_RUN_COURSE = 5


def academic_year_start(now: datetime, start_month: int = ACADEMIC_YEAR_START_MONTH) -> datetime:
    """First instant of the academic year containing ``now``."""
    year = now.year if now.month >= start_month else now.year - 1
    return datetime(year, start_month, 1, tzinfo=timezone.utc)


class EnrollmentAdminService:
    """Service for the administrative side of enrollments."""

    def __init__(self, enrollment_repository: EnrollmentRepository, course_repository: CourseRepository,
                 exam_repository: ExamRepository, student_repository: StudentRepository,
                 max_semester_credits: int = MAX_SEMESTER_CREDITS,
                 max_annual_credits: int = MAX_ANNUAL_CREDITS,
                 academic_year_start_month: int = ACADEMIC_YEAR_START_MONTH,
                 min_students_to_run_course: int = MIN_STUDENTS_TO_RUN_COURSE):
        self._enrollments = enrollment_repository
        self._courses = course_repository
        self._exams = exam_repository
        self._students = student_repository
        self._max_semester_credits = max_semester_credits
        self._max_annual_credits = max_annual_credits
        self._academic_year_start_month = academic_year_start_month
        self._min_students_to_run_course = min_students_to_run_course

    def register_student(self, student: Student) -> Student:
        """Add a student to the directory."""
        student.validate()
        if self._students.find_by_id(student.id) is not None:
            raise DuplicateEntityError(f"Student {student.id} already registered", error_code="duplicate_student")
        saved = self._students.add(student)
        logger.info("Registered student %s (department %s)", saved.id, saved.department_id)
        return saved

    def get_student(self, student_id: int) -> Student:
        student = self._students.find_by_id(student_id)
        if student is None:
            raise NotFoundError(f"Student {student_id} not found", error_code="student_not_found")
        return student

    def enroll(self, student_id: int, course_id: int) -> Enrollment:
        """Enroll a student in an active course.

        Students registered with a department may only take that
        department's courses. Credits are capped per semester (courses
        currently Enrolled) and per academic year (courses Enrolled,
        Completed or Failed since the year started).
        """
        if student_id <= 0 or course_id <= 0:
            raise ValidationError("student_id and course_id must be positive integers", error_code="invalid_id")

        course = self._courses.find_by_id(course_id, include_deleted=True)
        if course is None:
            raise NotFoundError(f"Course {course_id} not found", error_code="course_not_found")
        if course.is_deleted:
            raise InvalidStateError("Cannot enroll in a deleted course", error_code="course_deleted")

        student = self._students.find_by_id(student_id)
        if student is not None and student.department_id is not None \
                and course.department_id != student.department_id:
            raise ValidationError(
                "Course not available for student's department",
                error_code="course_not_in_department",
                details={"student_department_id": student.department_id,
                         "course_department_id": course.department_id},
            )

        existing = self._enrollments.find_by_student_and_course(student_id, course_id, include_deleted=True)
        if existing is not None:
            hint = " (deleted; restore it instead)" if existing.is_deleted else ""
            raise DuplicateEntityError(f"Student {student_id} already enrolled in course {course_id}{hint}",
                                       error_code="already_enrolled", details={"enrollment_id": existing.id})

        current_credits = self._enrollments.current_credits_for_student(student_id)
        if current_credits + course.credits > self._max_semester_credits:
            raise ValidationError(
                "Semester credit limit exceeded",
                error_code="credit_limit_exceeded",
                details={"current_credits": current_credits, "course_credits": course.credits,
                         "limit": self._max_semester_credits},
            )

        year_start = academic_year_start(utc_now(), self._academic_year_start_month)
        annual_credits = self._enrollments.credits_since(student_id, year_start)
        if annual_credits + course.credits > self._max_annual_credits:
            raise ValidationError(
                "Annual credit limit exceeded",
                error_code="annual_credit_limit_exceeded",
                details={"annual_credits": annual_credits, "course_credits": course.credits,
                         "limit": self._max_annual_credits},
            )

        enrollment = self._enrollments.add(Enrollment(student_id=student_id, course_id=course_id))
        logger.info("Enrolled student %s in course %s (enrollment %s)", student_id, course.course_code, enrollment.id)
        return enrollment

    def get(self, enrollment_id: int, include_deleted: bool = False) -> Enrollment:
        enrollment = self._enrollments.find_by_id(enrollment_id, include_deleted=include_deleted)
        if enrollment is None:
            raise NotFoundError(f"Enrollment {enrollment_id} not found", error_code="enrollment_not_found")
        return enrollment

    def list_for_student(self, student_id: int, include_deleted: bool = False) -> List[Enrollment]:
        return self._enrollments.list_by_student(student_id, include_deleted=include_deleted)

    def change_status(self, enrollment_id: int, status: EnrollmentStatus,
                      expected_version: Optional[int] = None) -> Enrollment:
        """Apply an administrative status change (drop, withdraw, reject, re-enroll).

        Completed enrollments are permanent academic records and never change.
        """
        if status not in ADMINISTRATIVE_STATUSES:
            raise ValidationError(f"Status {status.value} cannot be set administratively",
                                  error_code="invalid_status")
        enrollment = self.get(enrollment_id)
        if enrollment.status == EnrollmentStatus.COMPLETED:
            raise InvalidStateError("Completed enrollments cannot change status", error_code="enrollment_completed")
        if enrollment.status == status:
            return enrollment

        version = expected_version if expected_version is not None else enrollment.version
        if not self._enrollments.update_status(enrollment_id, status, expected_version=version):
            raise ConcurrencyConflictError(f"Enrollment {enrollment_id} was modified concurrently",
                                           error_code="enrollment_version_conflict",
                                           details={"expected_version": version})
        logger.info("Enrollment %s status %s -> %s", enrollment_id, enrollment.status.value, status.value)
        return self.get(enrollment_id)

    def soft_delete(self, enrollment_id: int) -> None:
        self._ensure_not_completed(self.get(enrollment_id))
        if not self._enrollments.soft_delete(enrollment_id):
            raise NotFoundError(f"Enrollment {enrollment_id} not found", error_code="enrollment_not_found")
        logger.info("Soft-deleted enrollment %s", enrollment_id)

    def restore(self, enrollment_id: int) -> Enrollment:
        """Restore a soft-deleted enrollment; it comes back as Pending."""
        enrollment = self.get(enrollment_id, include_deleted=True)
        if not enrollment.is_deleted:
            raise InvalidStateError("Enrollment is not deleted", error_code="enrollment_not_deleted")
        if not self._enrollments.restore(enrollment_id):
            raise ConcurrencyConflictError(f"Enrollment {enrollment_id} was modified concurrently",
                                           error_code="enrollment_version_conflict")
        logger.info("Restored enrollment %s as Pending", enrollment_id)
        return self.get(enrollment_id)

    def hard_delete(self, enrollment_id: int) -> None:
        """Permanently remove an enrollment with the student's submissions for the course."""
        enrollment = self.get(enrollment_id, include_deleted=True)
        self._ensure_not_completed(enrollment)
        exam_ids = self._exams.list_ids_by_course(enrollment.course_id)
        removed = self._enrollments.hard_delete(enrollment, exam_ids)
        logger.info("Hard-deleted enrollment %s (%d rows)", enrollment_id, removed)

    def can_course_run(self, course_id: int) -> bool:
        """Check the course has enough active enrollments to run."""
        if self._courses.find_by_id(course_id) is None:
            raise NotFoundError(f"Course {course_id} not found", error_code="course_not_found")
        return self._enrollments.count_active_by_course(course_id) >= self._min_students_to_run_course

    @staticmethod
    def _ensure_not_completed(enrollment: Enrollment) -> None:
        if enrollment.status == EnrollmentStatus.COMPLETED:
            raise InvalidStateError(
                "Cannot delete completed enrollment. Completed enrollments are permanent academic records.",
                error_code="enrollment_completed",
            )
