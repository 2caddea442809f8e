import threading

import pytest

from minerva.core.enums import CompletionStatus, EnrollmentStatus
from minerva.core.exceptions import (
    ConcurrencyConflictError, InvalidStateError, NotFoundError, ValidationError
)
from minerva.core.interfaces import EnrollmentStore
from minerva.services import CourseCompletionEvaluator

STUDENT = 7


@pytest.fixture
def enrolled(make_course, enrollment_service):
    """A course with a 50 and a 100 point exam, and STUDENT enrolled in it."""
    course, exams = make_course(50, 100)
    enrollment = enrollment_service.enroll(STUDENT, course.id)
    return course, exams, enrollment


def test_course_without_exams_is_in_progress(make_course, enrollment_service, enrollment_repo, evaluator):
    course, _ = make_course()
    enrollment = enrollment_service.enroll(STUDENT, course.id)

    result = evaluator.evaluate(STUDENT, course.id)

    assert result.status == CompletionStatus.IN_PROGRESS
    assert result.is_completed is False
    assert result.average_score_percent == 0.0
    assert result.grade_letter is None
    assert (result.submitted_exams, result.total_exams) == (0, 0)
    assert enrollment_repo.find_by_id(enrollment.id).version == enrollment.version


def test_partial_submissions_report_progress_without_writing(enrolled, catalog, enrollment_repo, evaluator):
    course, (midterm, _), enrollment = enrolled
    catalog.record_submission(midterm.id, STUDENT, score=40)

    result = evaluator.evaluate(STUDENT, course.id)

    assert result.status == CompletionStatus.IN_PROGRESS
    assert result.average_score_percent == 80.0
    assert result.grade_letter is None
    assert (result.submitted_exams, result.total_exams) == (1, 2)
    stored = enrollment_repo.find_by_id(enrollment.id)
    assert stored.status == EnrollmentStatus.ENROLLED
    assert stored.final_grade is None
    assert stored.version == enrollment.version


def test_exams_are_weighted_equally(enrolled, catalog, enrollment_repo, evaluator):
    course, (midterm, final), enrollment = enrolled
    catalog.record_submission(midterm.id, STUDENT, score=40)
    catalog.record_submission(final.id, STUDENT, score=70)

    result = evaluator.evaluate(STUDENT, course.id)

    assert result.status == CompletionStatus.COMPLETED
    assert result.is_completed is True
    assert result.average_score_percent == 75.0
    assert result.grade_letter == "B"
    assert (result.submitted_exams, result.total_exams) == (2, 2)

    stored = enrollment_repo.find_by_id(enrollment.id)
    assert stored.status == EnrollmentStatus.COMPLETED
    assert stored.final_grade == 75.0
    assert stored.grade_letter == "B"
    assert stored.version == enrollment.version + 1


def test_failing_average_marks_enrollment_failed(enrolled, catalog, enrollment_repo, evaluator):
    course, (midterm, final), enrollment = enrolled
    catalog.record_submission(midterm.id, STUDENT, score=20)
    catalog.record_submission(final.id, STUDENT, score=55)

    result = evaluator.evaluate(STUDENT, course.id)

    assert result.status == CompletionStatus.FAILED
    assert result.is_completed is False
    assert result.average_score_percent == 47.5
    assert result.grade_letter == "D"
    assert enrollment_repo.find_by_id(enrollment.id).status == EnrollmentStatus.FAILED


def test_average_is_rounded_to_two_decimals(make_course, catalog, enrollment_service, evaluator):
    course, exams = make_course(3, 3, 3)
    enrollment_service.enroll(STUDENT, course.id)
    for exam in exams:
        catalog.record_submission(exam.id, STUDENT, score=2)

    result = evaluator.evaluate(STUDENT, course.id)

    assert result.average_score_percent == 66.67
    assert result.grade_letter == "C+"


def test_repeat_evaluation_does_not_write_again(enrolled, catalog, enrollment_repo, evaluator):
    course, (midterm, final), enrollment = enrolled
    catalog.record_submission(midterm.id, STUDENT, score=40)
    catalog.record_submission(final.id, STUDENT, score=70)

    first = evaluator.evaluate(STUDENT, course.id)
    version_after_first = enrollment_repo.find_by_id(enrollment.id).version
    second = evaluator.evaluate(STUDENT, course.id)

    assert first == second
    assert enrollment_repo.find_by_id(enrollment.id).version == version_after_first


def test_regrade_moves_completed_to_failed(enrolled, catalog, enrollment_repo, evaluator):
    course, (midterm, final), enrollment = enrolled
    catalog.record_submission(midterm.id, STUDENT, score=40)
    catalog.record_submission(final.id, STUDENT, score=70)
    evaluator.evaluate(STUDENT, course.id)

    catalog.record_submission(final.id, STUDENT, score=10)
    result = evaluator.evaluate(STUDENT, course.id)

    assert result.status == CompletionStatus.FAILED
    stored = enrollment_repo.find_by_id(enrollment.id)
    assert stored.status == EnrollmentStatus.FAILED
    assert stored.final_grade == 45.0
    assert stored.grade_letter == "D"


def test_unscored_submission_counts_as_zero_once_all_submitted(enrolled, catalog, evaluator):
    course, (midterm, final), _ = enrolled
    catalog.record_submission(midterm.id, STUDENT, score=40)
    catalog.record_submission(final.id, STUDENT)

    result = evaluator.evaluate(STUDENT, course.id)

    assert result.status == CompletionStatus.FAILED
    assert result.submitted_exams == 2
    assert result.average_score_percent == 40.0
    assert result.grade_letter == "F"


def test_partial_average_ignores_unscored_submissions(make_course, catalog, enrollment_service, evaluator):
    course, (quiz, midterm, _) = make_course(10, 50, 100)
    enrollment_service.enroll(STUDENT, course.id)
    catalog.record_submission(quiz.id, STUDENT, score=9)
    catalog.record_submission(midterm.id, STUDENT)

    result = evaluator.evaluate(STUDENT, course.id)

    assert result.status == CompletionStatus.IN_PROGRESS
    assert result.submitted_exams == 2
    assert result.average_score_percent == 90.0


@pytest.mark.parametrize("score, status, letter, reported", [
    (60, CompletionStatus.COMPLETED, "C", 60.0),
    (59.996, CompletionStatus.FAILED, "C-", 60.0),
    (59.99, CompletionStatus.FAILED, "C-", 59.99),
])
def test_pass_line_uses_unrounded_average(make_course, catalog, enrollment_service, enrollment_repo, evaluator,
                                          score, status, letter, reported):
    course, (exam,) = make_course(100)
    enrollment = enrollment_service.enroll(STUDENT, course.id)
    catalog.record_submission(exam.id, STUDENT, score=score)

    result = evaluator.evaluate(STUDENT, course.id)

    assert result.status == status
    assert result.grade_letter == letter
    assert result.average_score_percent == reported
    assert enrollment_repo.find_by_id(enrollment.id).status.value == status.value


def test_unsubmitted_draft_does_not_count(enrolled, catalog, evaluator):
    course, (midterm, final), _ = enrolled
    catalog.record_submission(midterm.id, STUDENT, score=40)
    catalog.record_submission(final.id, STUDENT, submit=False)

    result = evaluator.evaluate(STUDENT, course.id)

    assert result.status == CompletionStatus.IN_PROGRESS
    assert result.submitted_exams == 1


def test_deleted_exams_are_ignored(enrolled, catalog, evaluator):
    course, (midterm, final), _ = enrolled
    catalog.record_submission(midterm.id, STUDENT, score=40)
    catalog.remove_exam(final.id)

    result = evaluator.evaluate(STUDENT, course.id)

    assert result.status == CompletionStatus.COMPLETED
    assert result.total_exams == 1
    assert result.average_score_percent == 80.0
    assert result.grade_letter == "B+"


def test_other_students_submissions_are_ignored(enrolled, catalog, evaluator):
    course, (midterm, final), _ = enrolled
    catalog.record_submission(midterm.id, STUDENT + 1, score=50)
    catalog.record_submission(final.id, STUDENT + 1, score=100)

    result = evaluator.evaluate(STUDENT, course.id)

    assert result.submitted_exams == 0
    assert result.status == CompletionStatus.IN_PROGRESS


@pytest.mark.parametrize("student_id, course_id", [(0, 1), (1, -3), (True, 1), ("1", 1), (1, None)])
def test_invalid_ids_rejected(evaluator, student_id, course_id):
    with pytest.raises(ValidationError) as excinfo:
        evaluator.evaluate(student_id, course_id)
    assert excinfo.value.error_code == "invalid_id"


def test_missing_enrollment_raises_not_found(make_course, evaluator):
    course, _ = make_course(100)
    with pytest.raises(NotFoundError):
        evaluator.evaluate(STUDENT, course.id)


def test_soft_deleted_enrollment_is_not_found(enrolled, enrollment_service, evaluator):
    course, _, enrollment = enrolled
    enrollment_service.soft_delete(enrollment.id)
    with pytest.raises(NotFoundError):
        evaluator.evaluate(STUDENT, course.id)


@pytest.mark.parametrize("status", [EnrollmentStatus.DROPPED, EnrollmentStatus.WITHDRAWN, EnrollmentStatus.REJECTED])
def test_administrative_statuses_are_not_overwritten(enrolled, catalog, enrollment_service, enrollment_repo,
                                                     evaluator, status):
    course, (midterm, final), enrollment = enrolled
    catalog.record_submission(midterm.id, STUDENT, score=50)
    catalog.record_submission(final.id, STUDENT, score=100)
    changed = enrollment_service.change_status(enrollment.id, status)

    with pytest.raises(InvalidStateError):
        evaluator.evaluate(STUDENT, course.id)

    stored = enrollment_repo.find_by_id(enrollment.id)
    assert stored.status == status
    assert stored.version == changed.version


def test_pending_enrollment_is_not_overwritten(enrolled, catalog, enrollment_service, evaluator):
    course, (midterm, final), enrollment = enrolled
    catalog.record_submission(midterm.id, STUDENT, score=50)
    catalog.record_submission(final.id, STUDENT, score=100)
    enrollment_service.soft_delete(enrollment.id)
    enrollment_service.restore(enrollment.id)
    with pytest.raises(InvalidStateError):
        evaluator.evaluate(STUDENT, course.id)


def test_dropped_without_exams_reports_progress(make_course, enrollment_service, enrollment_repo, evaluator):
    course, _ = make_course()
    enrollment = enrollment_service.enroll(STUDENT, course.id)
    dropped = enrollment_service.change_status(enrollment.id, EnrollmentStatus.DROPPED)

    result = evaluator.evaluate(STUDENT, course.id)

    assert result.status == CompletionStatus.IN_PROGRESS
    assert result.average_score_percent == 0.0
    assert enrollment_repo.find_by_id(enrollment.id).version == dropped.version


def test_dropped_with_partial_submissions_reports_progress(enrolled, catalog, enrollment_service,
                                                            enrollment_repo, evaluator):
    course, (midterm, _), enrollment = enrolled
    catalog.record_submission(midterm.id, STUDENT, score=25)
    dropped = enrollment_service.change_status(enrollment.id, EnrollmentStatus.DROPPED)

    result = evaluator.evaluate(STUDENT, course.id)

    assert result.status == CompletionStatus.IN_PROGRESS
    assert result.average_score_percent == 50.0
    stored = enrollment_repo.find_by_id(enrollment.id)
    assert stored.status == EnrollmentStatus.DROPPED
    assert stored.version == dropped.version


class SnapshotStore(EnrollmentStore):
    """Serves a fixed, possibly stale, enrollment snapshot."""

    def __init__(self, inner, snapshot):
        self._inner = inner
        self._snapshot = snapshot

    def find_by_student_and_course(self, student_id, course_id):
        return self._snapshot

    def update_completion(self, enrollment_id, status, final_grade, grade_letter, expected_version):
        return self._inner.update_completion(enrollment_id, status, final_grade, grade_letter, expected_version)


def test_stale_version_raises_conflict(enrolled, catalog, enrollment_repo, exam_repo, submission_repo):
    course, (midterm, final), enrollment = enrolled
    catalog.record_submission(midterm.id, STUDENT, score=10)
    catalog.record_submission(final.id, STUDENT, score=10)
    stale = enrollment_repo.find_by_student_and_course(STUDENT, course.id)
    assert enrollment_repo.update_completion(enrollment.id, EnrollmentStatus.COMPLETED, 90.0, "A",
                                             expected_version=stale.version)

    evaluator = CourseCompletionEvaluator(SnapshotStore(enrollment_repo, stale), exam_repo, submission_repo)
    with pytest.raises(ConcurrencyConflictError):
        evaluator.evaluate(STUDENT, course.id)

    stored = enrollment_repo.find_by_id(enrollment.id)
    assert stored.status == EnrollmentStatus.COMPLETED
    assert stored.final_grade == 90.0
    assert stored.version == stale.version + 1


class BarrierStore(EnrollmentStore):
    """Holds every reader at a barrier so both read the same version."""

    def __init__(self, inner, barrier):
        self._inner = inner
        self._barrier = barrier

    def find_by_student_and_course(self, student_id, course_id):
        enrollment = self._inner.find_by_student_and_course(student_id, course_id)
        self._barrier.wait(timeout=5)
        return enrollment

    def update_completion(self, enrollment_id, status, final_grade, grade_letter, expected_version):
        return self._inner.update_completion(enrollment_id, status, final_grade, grade_letter, expected_version)


def test_concurrent_evaluations_write_once(enrolled, catalog, enrollment_repo, exam_repo, submission_repo):
    course, (midterm, final), enrollment = enrolled
    catalog.record_submission(midterm.id, STUDENT, score=40)
    catalog.record_submission(final.id, STUDENT, score=70)

    evaluator = CourseCompletionEvaluator(BarrierStore(enrollment_repo, threading.Barrier(2)),
                                          exam_repo, submission_repo)
    results, errors = [], []

    def run():
        try:
            results.append(evaluator.evaluate(STUDENT, course.id))
        except ConcurrencyConflictError as e:
            errors.append(e)

    threads = [threading.Thread(target=run) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert len(results) == 1
    assert len(errors) == 1
    stored = enrollment_repo.find_by_id(enrollment.id)
    assert stored.status == EnrollmentStatus.COMPLETED
    assert stored.version == enrollment.version + 1
