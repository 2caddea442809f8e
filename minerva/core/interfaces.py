"""
Store interfaces consumed by the services layer.

Every mutation is an explicit method; no store performs implicit
cascades or soft-delete interception on save.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from .entities import Enrollment, Exam, ExamSubmission
from .enums import EnrollmentStatus


class EnrollmentStore(ABC):
    """Lookup and update of enrollment records."""
    
    @abstractmethod
    def find_by_student_and_course(self, student_id: int, course_id: int) -> Optional[Enrollment]:
        """Find the non-deleted enrollment for a (student, course) pair."""
        pass
    
    @abstractmethod
    def update_completion(self, enrollment_id: int, status: EnrollmentStatus,
                          final_grade: Optional[float], grade_letter: Optional[str],
                          expected_version: int) -> bool:
        """Write completion fields if the stored version still equals ``expected_version``.

        Returns False when the version moved on (or the row vanished) and
        nothing was written.
        """
        pass


class ExamStore(ABC):
    """Read access to a course's exams."""
    
    @abstractmethod
    def list_by_course(self, course_id: int) -> List[Exam]:
        """List the non-deleted exams of a course."""
        pass


class SubmissionStore(ABC):
    """Read access to exam submissions."""
    
    @abstractmethod
    def list_by_student_for_exams(self, student_id: int, exam_ids: Sequence[int]) -> List[ExamSubmission]:
        """List a student's submissions for the given exams."""
        pass
