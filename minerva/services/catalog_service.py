"""
Course catalogue, exam and submission management.
"""

import logging
from datetime import datetime
from typing import Optional

from ..core.entities import Course, Exam, ExamSubmission, utc_now
from ..core.exceptions import DuplicateEntityError, NotFoundError, ValidationError, InvalidStateError
from ..persistence.repositories import CourseRepository, ExamRepository, SubmissionRepository

logger = logging.getLogger(__name__)


class CatalogService:
    """Service for courses, their exams and the submissions made against them."""

    def __init__(self, course_repository: CourseRepository, exam_repository: ExamRepository,
                 submission_repository: SubmissionRepository):
        self._courses = course_repository
        self._exams = exam_repository
        self._submissions = submission_repository

    def add_course(self, course: Course) -> Course:
        """Add a course; course codes are unique across the catalogue."""
        course.validate()
        course.course_code = course.course_code.strip().upper()
        if self._courses.find_by_code(course.course_code) is not None:
            raise DuplicateEntityError(f"Course code {course.course_code} already exists",
                                       error_code="duplicate_course_code")
        saved = self._courses.add(course)
        logger.info("Added course %s (%s)", saved.id, saved.course_code)
        return saved

    def get_course(self, course_id: int, include_deleted: bool = False) -> Course:
        course = self._courses.find_by_id(course_id, include_deleted=include_deleted)
        if course is None:
            raise NotFoundError(f"Course {course_id} not found", error_code="course_not_found")
        return course

    def remove_course(self, course_id: int) -> None:
        """Soft-delete a course."""
        if not self._courses.soft_delete(course_id):
            raise NotFoundError(f"Course {course_id} not found", error_code="course_not_found")
        logger.info("Soft-deleted course %s", course_id)

    def add_exam(self, exam: Exam) -> Exam:
        """Add an exam to an active course."""
        exam.validate()
        course = self._courses.find_by_id(exam.course_id)
        if course is None:
            raise NotFoundError(f"Course {exam.course_id} not found", error_code="course_not_found")
        saved = self._exams.add(exam)
        logger.info("Added exam %s to course %s", saved.id, course.course_code)
        return saved

    def remove_exam(self, exam_id: int) -> None:
        """Soft-delete an exam; it no longer counts towards completion."""
        if not self._exams.soft_delete(exam_id):
            raise NotFoundError(f"Exam {exam_id} not found", error_code="exam_not_found")
        logger.info("Soft-deleted exam %s", exam_id)

    def record_submission(self, exam_id: int, student_id: int, score: Optional[float] = None,
                          submitted_at: Optional[datetime] = None, submit: bool = True) -> ExamSubmission:
        """Create or replace a student's submission for an exam.

        With ``submit`` set and no ``submitted_at`` given the submission is
        stamped with the current time; otherwise it stays in progress.
        """
        if student_id <= 0:
            raise ValidationError("student_id must be a positive integer", error_code="invalid_id")
        exam = self._exams.find_by_id(exam_id)
        if exam is None:
            raise NotFoundError(f"Exam {exam_id} not found", error_code="exam_not_found")
        if score is not None and not 0 <= score <= exam.total_points:
            raise ValidationError(
                f"Score must be between 0 and {exam.total_points}",
                error_code="invalid_score",
                details={"score": score, "total_points": exam.total_points},
            )
        if score is not None and not submit and submitted_at is None:
            raise InvalidStateError("An in-progress submission cannot be graded", error_code="submission_in_progress")
        if submit and submitted_at is None:
            submitted_at = utc_now()

        submission = ExamSubmission(exam_id=exam_id, student_id=student_id, score=score, submitted_at=submitted_at)
        return self._submissions.record(submission)
