import os
import sys

import pytest

# Ensure repo root on sys.path for imports like `minerva...`
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from minerva.core.entities import Course, Exam
from minerva.persistence import SQLiteDatabase
from minerva.persistence.repositories import (
    CourseRepository, StudentRepository, ExamRepository, SubmissionRepository, EnrollmentRepository
)
from minerva.services import CourseCompletionEvaluator, CatalogService, EnrollmentAdminService


@pytest.fixture
def database(tmp_path):
    return SQLiteDatabase(str(tmp_path / "minerva-test.db"))


@pytest.fixture
def course_repo(database):
    return CourseRepository(database)


@pytest.fixture
def student_repo(database):
    return StudentRepository(database)


@pytest.fixture
def exam_repo(database):
    return ExamRepository(database)


@pytest.fixture
def submission_repo(database):
    return SubmissionRepository(database)


@pytest.fixture
def enrollment_repo(database):
    return EnrollmentRepository(database)


@pytest.fixture
def catalog(course_repo, exam_repo, submission_repo):
    return CatalogService(course_repo, exam_repo, submission_repo)


@pytest.fixture
def enrollment_service(enrollment_repo, course_repo, exam_repo, student_repo):
    return EnrollmentAdminService(enrollment_repo, course_repo, exam_repo, student_repo)


@pytest.fixture
def evaluator(enrollment_repo, exam_repo, submission_repo):
    return CourseCompletionEvaluator(enrollment_repo, exam_repo, submission_repo)


@pytest.fixture
def make_course(catalog):
    """Create a course with exams of the given point totals."""
    counter = {"n": 0}

    def _make(*exam_points, credits=3, department_id=None):
        counter["n"] += 1
        course = catalog.add_course(Course(course_code=f"CS{100 + counter['n']}", name="Course", credits=credits,
                                           department_id=department_id))
        exams = [
            catalog.add_exam(Exam(course_id=course.id, title=f"Exam {i + 1}", total_points=points))
            for i, points in enumerate(exam_points)
        ]
        return course, exams

    return _make
