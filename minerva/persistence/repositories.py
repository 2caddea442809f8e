"""
Repository pattern implementations for data access.

Soft and hard deletes are explicit repository calls; nothing is cascaded
or intercepted behind the caller's back.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, Sequence, TypeVar

from ..core.entities import Course, Exam, ExamSubmission, Enrollment, Student, utc_now
from ..core.enums import EnrollmentStatus
from ..core.exceptions import ValidationError
from ..core.interfaces import EnrollmentStore, ExamStore, SubmissionStore
from .database import DatabaseManager

T = TypeVar('T')


def _to_db_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_db_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class BaseRepository(ABC, Generic[T]):
    """Base repository implementation with common functionality."""

    table: str = ""

    def __init__(self, database: DatabaseManager):
        self._database = database

    def find_by_id(self, entity_id: int, include_deleted: bool = False) -> Optional[T]:
        """Find entity by ID."""
        query = f"SELECT * FROM {self.table} WHERE id = ?"
        if not include_deleted and self._soft_deletable:
            query += " AND is_deleted = 0"
        results = self._database.execute_query(query, (entity_id,))
        return self._entity_from_row(results[0]) if results else None

    def count(self) -> int:
        """Count stored rows, deleted ones included."""
        results = self._database.execute_query(f"SELECT COUNT(*) AS count FROM {self.table}")
        return results[0]["count"] if results else 0

    @property
    def _soft_deletable(self) -> bool:
        return True

    def _soft_delete_row(self, entity_id: int) -> bool:
        now = _to_db_time(utc_now())
        query = f"UPDATE {self.table} SET is_deleted = 1, deleted_at = ?, updated_at = ? WHERE id = ? AND is_deleted = 0"
        return self._database.execute_update(query, (now, now, entity_id)) > 0

    @abstractmethod
    def _entity_from_row(self, row: Dict[str, Any]) -> T:
        """Convert a database row to an entity instance."""
        pass


class CourseRepository(BaseRepository[Course]):
    """Repository for Course records."""

    table = "courses"

    def add(self, course: Course) -> Course:
        """Insert a course and return it with its new ID."""
        query = """
            INSERT INTO courses (course_code, name, credits, department_id, is_deleted, created_at, updated_at)
            VALUES (?, ?, ?, ?, 0, ?, ?)
        """
        course.id = self._database.execute_insert(query, (
            course.course_code,
            course.name,
            course.credits,
            course.department_id,
            _to_db_time(course.created_at),
            _to_db_time(course.updated_at),
        ))
        return course

    def find_by_code(self, course_code: str) -> Optional[Course]:
        """Find a course by its code, deleted courses included."""
        results = self._database.execute_query("SELECT * FROM courses WHERE course_code = ?", (course_code,))
        return self._entity_from_row(results[0]) if results else None

    def soft_delete(self, course_id: int) -> bool:
        """Mark a course deleted."""
        return self._soft_delete_row(course_id)

    def _entity_from_row(self, row: Dict[str, Any]) -> Course:
        return Course(
            id=row["id"],
            course_code=row["course_code"],
            name=row["name"],
            credits=row["credits"],
            department_id=row["department_id"],
            is_deleted=bool(row["is_deleted"]),
            deleted_at=_from_db_time(row["deleted_at"]),
            created_at=_from_db_time(row["created_at"]),
            updated_at=_from_db_time(row["updated_at"]),
        )


class StudentRepository(BaseRepository[Student]):
    """Repository for the student directory."""

    table = "students"

    @property
    def _soft_deletable(self) -> bool:
        return False

    def add(self, student: Student) -> Student:
        """Register a student under their identity id."""
        query = "INSERT INTO students (id, full_name, email, department_id, created_at) VALUES (?, ?, ?, ?, ?)"
        self._database.execute_insert(query, (
            student.id,
            student.full_name,
            student.email,
            student.department_id,
            _to_db_time(student.created_at),
        ))
        return student

    def _entity_from_row(self, row: Dict[str, Any]) -> Student:
        return Student(
            id=row["id"],
            full_name=row["full_name"],
            email=row["email"],
            department_id=row["department_id"],
            created_at=_from_db_time(row["created_at"]),
        )


class ExamRepository(BaseRepository[Exam], ExamStore):
    """Repository for Exam records."""

    table = "exams"

    def add(self, exam: Exam) -> Exam:
        """Insert an exam and return it with its new ID."""
        query = """
            INSERT INTO exams (course_id, title, description, total_points, exam_date, duration_minutes,
                               is_deleted, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?)
        """
        exam.id = self._database.execute_insert(query, (
            exam.course_id,
            exam.title,
            exam.description,
            exam.total_points,
            _to_db_time(exam.exam_date),
            exam.duration_minutes,
            _to_db_time(exam.created_at),
            _to_db_time(exam.updated_at),
        ))
        return exam

    def list_by_course(self, course_id: int) -> List[Exam]:
        """List the non-deleted exams of a course."""
        query = "SELECT * FROM exams WHERE course_id = ? AND is_deleted = 0 ORDER BY id"
        return [self._entity_from_row(row) for row in self._database.execute_query(query, (course_id,))]

    def list_ids_by_course(self, course_id: int) -> List[int]:
        """List the IDs of every exam of a course, deleted ones included."""
        results = self._database.execute_query("SELECT id FROM exams WHERE course_id = ?", (course_id,))
        return [row["id"] for row in results]

    def soft_delete(self, exam_id: int) -> bool:
        """Mark an exam deleted; it stops counting towards course completion."""
        return self._soft_delete_row(exam_id)

    def _entity_from_row(self, row: Dict[str, Any]) -> Exam:
        return Exam(
            id=row["id"],
            course_id=row["course_id"],
            title=row["title"],
            description=row["description"],
            total_points=row["total_points"],
            exam_date=_from_db_time(row["exam_date"]),
            duration_minutes=row["duration_minutes"],
            is_deleted=bool(row["is_deleted"]),
            deleted_at=_from_db_time(row["deleted_at"]),
            created_at=_from_db_time(row["created_at"]),
            updated_at=_from_db_time(row["updated_at"]),
        )


class SubmissionRepository(BaseRepository[ExamSubmission], SubmissionStore):
    """Repository for ExamSubmission records."""

    table = "exam_submissions"

    @property
    def _soft_deletable(self) -> bool:
        return False

    def record(self, submission: ExamSubmission) -> ExamSubmission:
        """Insert or replace the submission of one student for one exam."""
        now = utc_now()
        query = """
            INSERT INTO exam_submissions (exam_id, student_id, score, submitted_at, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (exam_id, student_id) DO UPDATE SET
                score = excluded.score,
                submitted_at = excluded.submitted_at,
                updated_at = excluded.updated_at
        """
        self._database.execute_update(query, (
            submission.exam_id,
            submission.student_id,
            submission.score,
            _to_db_time(submission.submitted_at),
            _to_db_time(submission.created_at),
            _to_db_time(now),
        ))
        return self.find(submission.exam_id, submission.student_id)

    def find(self, exam_id: int, student_id: int) -> Optional[ExamSubmission]:
        """Find the submission of a student for an exam."""
        query = "SELECT * FROM exam_submissions WHERE exam_id = ? AND student_id = ?"
        results = self._database.execute_query(query, (exam_id, student_id))
        return self._entity_from_row(results[0]) if results else None

    def list_by_student_for_exams(self, student_id: int, exam_ids: Sequence[int]) -> List[ExamSubmission]:
        """List a student's submissions for the given exams."""
        if not exam_ids:
            return []
        placeholders = ", ".join("?" for _ in exam_ids)
        query = f"""
            SELECT * FROM exam_submissions
            WHERE student_id = ? AND exam_id IN ({placeholders})
            ORDER BY exam_id
        """
        results = self._database.execute_query(query, (student_id, *exam_ids))
        return [self._entity_from_row(row) for row in results]

    def _entity_from_row(self, row: Dict[str, Any]) -> ExamSubmission:
        return ExamSubmission(
            id=row["id"],
            exam_id=row["exam_id"],
            student_id=row["student_id"],
            score=row["score"],
            submitted_at=_from_db_time(row["submitted_at"]),
            created_at=_from_db_time(row["created_at"]),
            updated_at=_from_db_time(row["updated_at"]),
        )


class EnrollmentRepository(BaseRepository[Enrollment], EnrollmentStore):
    """Repository for Enrollment records.

    Every write bumps ``version``; writes that take an ``expected_version``
    only apply when the stored version still matches.
    """

    table = "enrollments"

    def add(self, enrollment: Enrollment) -> Enrollment:
        """Insert an enrollment and return it with its new ID."""
        query = """
            INSERT INTO enrollments (student_id, course_id, status, final_grade, grade_letter, enrollment_date,
                                     version, is_deleted, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
        """
        enrollment.id = self._database.execute_insert(query, (
            enrollment.student_id,
            enrollment.course_id,
            enrollment.status.value,
            enrollment.final_grade,
            enrollment.grade_letter,
            _to_db_time(enrollment.enrollment_date),
            enrollment.version,
            _to_db_time(enrollment.created_at),
            _to_db_time(enrollment.updated_at),
        ))
        return enrollment

    def find_by_student_and_course(self, student_id: int, course_id: int,
                                   include_deleted: bool = False) -> Optional[Enrollment]:
        """Find the enrollment for a (student, course) pair."""
        query = "SELECT * FROM enrollments WHERE student_id = ? AND course_id = ?"
        if not include_deleted:
            query += " AND is_deleted = 0"
        results = self._database.execute_query(query, (student_id, course_id))
        return self._entity_from_row(results[0]) if results else None

    def list_by_student(self, student_id: int, include_deleted: bool = False) -> List[Enrollment]:
        """List a student's enrollments."""
        query = "SELECT * FROM enrollments WHERE student_id = ?"
        if not include_deleted:
            query += " AND is_deleted = 0"
        query += " ORDER BY id"
        return [self._entity_from_row(row) for row in self._database.execute_query(query, (student_id,))]

    def count_active_by_course(self, course_id: int) -> int:
        """Count non-deleted enrollments of a course whose status is Enrolled."""
        query = """
            SELECT COUNT(*) AS count FROM enrollments
            WHERE course_id = ? AND status = ? AND is_deleted = 0
        """
        results = self._database.execute_query(query, (course_id, EnrollmentStatus.ENROLLED.value))
        return results[0]["count"] if results else 0

    def current_credits_for_student(self, student_id: int) -> int:
        """Sum the credits of the courses a student is currently enrolled in."""
        query = """
            SELECT COALESCE(SUM(c.credits), 0) AS credits
            FROM enrollments e JOIN courses c ON c.id = e.course_id
            WHERE e.student_id = ? AND e.status = ? AND e.is_deleted = 0 AND c.is_deleted = 0
        """
        results = self._database.execute_query(query, (student_id, EnrollmentStatus.ENROLLED.value))
        return results[0]["credits"] if results else 0

    def credits_since(self, student_id: int, since: datetime) -> int:
        """Sum the credits of courses taken since ``since``: enrolled, completed or failed."""
        statuses = (EnrollmentStatus.ENROLLED, EnrollmentStatus.COMPLETED, EnrollmentStatus.FAILED)
        query = """
            SELECT COALESCE(SUM(c.credits), 0) AS credits
            FROM enrollments e JOIN courses c ON c.id = e.course_id
            WHERE e.student_id = ? AND e.status IN (?, ?, ?) AND e.is_deleted = 0 AND e.enrollment_date >= ?
        """
        params = (student_id, *(s.value for s in statuses), _to_db_time(since))
        results = self._database.execute_query(query, params)
        return results[0]["credits"] if results else 0

    def update_completion(self, enrollment_id: int, status: EnrollmentStatus,
                          final_grade: Optional[float], grade_letter: Optional[str],
                          expected_version: int) -> bool:
        """Compare-and-swap the completion fields of an enrollment."""
        if final_grade is not None and not 0 <= final_grade <= 100:
            raise ValidationError("Final grade must be between 0 and 100", error_code="invalid_final_grade",
                                  details={"final_grade": final_grade})
        query = """
            UPDATE enrollments
            SET status = ?, final_grade = ?, grade_letter = ?, version = version + 1, updated_at = ?
            WHERE id = ? AND version = ? AND is_deleted = 0
        """
        affected = self._database.execute_update(query, (
            status.value,
            final_grade,
            grade_letter,
            _to_db_time(utc_now()),
            enrollment_id,
            expected_version,
        ))
        return affected == 1

    def update_status(self, enrollment_id: int, status: EnrollmentStatus,
                      expected_version: Optional[int] = None) -> bool:
        """Set an enrollment's status, optionally guarded by its version."""
        query = "UPDATE enrollments SET status = ?, version = version + 1, updated_at = ? WHERE id = ? AND is_deleted = 0"
        params: tuple = (status.value, _to_db_time(utc_now()), enrollment_id)
        if expected_version is not None:
            query += " AND version = ?"
            params += (expected_version,)
        return self._database.execute_update(query, params) == 1

    def soft_delete(self, enrollment_id: int) -> bool:
        """Mark an enrollment deleted."""
        now = _to_db_time(utc_now())
        query = """
            UPDATE enrollments SET is_deleted = 1, deleted_at = ?, updated_at = ?, version = version + 1
            WHERE id = ? AND is_deleted = 0
        """
        return self._database.execute_update(query, (now, now, enrollment_id)) == 1

    def restore(self, enrollment_id: int) -> bool:
        """Undelete an enrollment and put it back to Pending for review."""
        query = """
            UPDATE enrollments SET is_deleted = 0, deleted_at = NULL, status = ?, updated_at = ?, version = version + 1
            WHERE id = ? AND is_deleted = 1
        """
        params = (EnrollmentStatus.PENDING.value, _to_db_time(utc_now()), enrollment_id)
        return self._database.execute_update(query, params) == 1

    def hard_delete(self, enrollment: Enrollment, exam_ids: Sequence[int]) -> int:
        """Remove an enrollment and the student's submissions for the given exams atomically."""
        queries = []
        if exam_ids:
            placeholders = ", ".join("?" for _ in exam_ids)
            queries.append((
                f"DELETE FROM exam_submissions WHERE student_id = ? AND exam_id IN ({placeholders})",
                (enrollment.student_id, *exam_ids),
            ))
        queries.append(("DELETE FROM enrollments WHERE id = ?", (enrollment.id,)))
        return self._database.execute_transaction(queries)

    def _entity_from_row(self, row: Dict[str, Any]) -> Enrollment:
        return Enrollment(
            id=row["id"],
            student_id=row["student_id"],
            course_id=row["course_id"],
            status=EnrollmentStatus(row["status"]),
            final_grade=row["final_grade"],
            grade_letter=row["grade_letter"],
            enrollment_date=_from_db_time(row["enrollment_date"]),
            version=row["version"],
            is_deleted=bool(row["is_deleted"]),
            deleted_at=_from_db_time(row["deleted_at"]),
            created_at=_from_db_time(row["created_at"]),
            updated_at=_from_db_time(row["updated_at"]),
        )
