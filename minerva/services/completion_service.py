"""
Course completion evaluation.

Decides from a student's exam submissions whether a course is completed,
failed or still in progress, and records the outcome on the enrollment.
"""

import logging
from typing import Dict, List

from ..core.entities import CompletionResult, Enrollment, Exam, ExamSubmission
from ..core.enums import CompletionStatus, EnrollmentStatus, EVALUATOR_OWNED_STATUSES
from ..core.exceptions import (
    ValidationError, NotFoundError, InvalidStateError, ConcurrencyConflictError
)
from ..core.grading import grade_letter_for, is_passing
from ..core.interfaces import EnrollmentStore, ExamStore, SubmissionStore

logger = logging.getLogger(__name__)

_PERSISTED_OUTCOMES = {
    CompletionStatus.COMPLETED: EnrollmentStatus.COMPLETED,
    CompletionStatus.FAILED: EnrollmentStatus.FAILED,
}


class CourseCompletionEvaluator:
    """Evaluates a student's completion of a course.

    Each exam is normalised to a percentage of its own total points before
    averaging, so exams worth different points weigh the same. While
    exams are outstanding the progress average covers graded submissions
    only; once every exam is submitted an unscored one counts as zero.
    """

    def __init__(self, enrollment_store: EnrollmentStore, exam_store: ExamStore,
                 submission_store: SubmissionStore):
        self._enrollments = enrollment_store
        self._exams = exam_store
        self._submissions = submission_store

    def evaluate(self, student_id: int, course_id: int) -> CompletionResult:
        """Evaluate and, when the outcome changed, persist course completion.

        Raises:
            ValidationError: an ID is not a positive integer.
            NotFoundError: the student is not enrolled in the course.
            InvalidStateError: a Completed or Failed outcome would overwrite a
                status the evaluator does not own (Pending, Dropped, Withdrawn,
                Rejected). In-progress results are returned without a write.
            ConcurrencyConflictError: another writer updated the enrollment
                between our read and our write.
        """
        self._validate_ids(student_id, course_id)

        enrollment = self._enrollments.find_by_student_and_course(student_id, course_id)
        if enrollment is None:
            raise NotFoundError(
                f"No enrollment for student {student_id} in course {course_id}",
                error_code="enrollment_not_found",
                details={"student_id": student_id, "course_id": course_id},
            )

        exams = self._exams.list_by_course(course_id)
        submissions = self._submissions.list_by_student_for_exams(student_id, [exam.id for exam in exams])

        result = self._compute(exams, submissions)
        self._persist_outcome(enrollment, result)
        return result

    @staticmethod
    def _validate_ids(student_id: int, course_id: int) -> None:
        for name, value in (("student_id", student_id), ("course_id", course_id)):
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValidationError(f"{name} must be a positive integer", error_code="invalid_id",
                                      details={name: value})

    def _compute(self, exams: List[Exam], submissions: List[ExamSubmission]) -> CompletionResult:
        total_exams = len(exams)
        if total_exams == 0:
            return CompletionResult(
                is_completed=False,
                average_score_percent=0.0,
                grade_letter=None,
                status=CompletionStatus.IN_PROGRESS,
                submitted_exams=0,
                total_exams=0,
            )

        exams_by_id: Dict[int, Exam] = {exam.id: exam for exam in exams}
        submitted = [s for s in submissions if s.is_submitted and s.exam_id in exams_by_id]
        submitted_exams = len(submitted)

        if submitted_exams < total_exams:
            # Progress only: average over what has been graded so far.
            graded = [self._percentage(s, exams_by_id[s.exam_id]) for s in submitted if s.is_graded]
            partial = round(sum(graded) / len(graded), 2) if graded else 0.0
            return CompletionResult(
                is_completed=False,
                average_score_percent=partial,
                grade_letter=None,
                status=CompletionStatus.IN_PROGRESS,
                submitted_exams=submitted_exams,
                total_exams=total_exams,
            )

        # Every exam attempted; a submission still awaiting its score adds nothing.
        raw_average = sum(self._percentage(s, exams_by_id[s.exam_id]) for s in submitted) / total_exams
        passed = is_passing(raw_average)
        return CompletionResult(
            is_completed=passed,
            average_score_percent=round(raw_average, 2),
            grade_letter=grade_letter_for(raw_average),
            status=CompletionStatus.COMPLETED if passed else CompletionStatus.FAILED,
            submitted_exams=submitted_exams,
            total_exams=total_exams,
        )

    @staticmethod
    def _percentage(submission: ExamSubmission, exam: Exam) -> float:
        if exam.total_points <= 0:
            raise ValidationError(f"Exam {exam.id} has no points to grade against",
                                  error_code="invalid_total_points", details={"exam_id": exam.id})
        return 100.0 * (submission.score or 0) / exam.total_points

    def _persist_outcome(self, enrollment: Enrollment, result: CompletionResult) -> None:
        target = _PERSISTED_OUTCOMES.get(result.status)
        if target is None or target == enrollment.status:
            logger.debug("Enrollment %s unchanged (%s, %s)", enrollment.id, enrollment.status.value,
                         result.status.value)
            return
        if enrollment.status not in EVALUATOR_OWNED_STATUSES:
            raise InvalidStateError(
                f"Enrollment {enrollment.id} is {enrollment.status.value} and cannot be overwritten",
                error_code="enrollment_not_evaluable",
                details={"enrollment_id": enrollment.id, "status": enrollment.status.value},
            )

        written = self._enrollments.update_completion(
            enrollment.id,
            target,
            result.average_score_percent,
            result.grade_letter,
            expected_version=enrollment.version,
        )
        if not written:
            logger.warning("Lost completion update race on enrollment %s at version %s",
                           enrollment.id, enrollment.version)
            raise ConcurrencyConflictError(
                f"Enrollment {enrollment.id} was modified concurrently",
                error_code="enrollment_version_conflict",
                details={"enrollment_id": enrollment.id, "expected_version": enrollment.version},
            )
        logger.info("Enrollment %s moved %s -> %s (%.2f%%, %s)", enrollment.id, enrollment.status.value,
                    target.value, result.average_score_percent, result.grade_letter)
