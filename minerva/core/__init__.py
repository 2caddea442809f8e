"""
Core module containing the entities, enums, exceptions and store interfaces.
"""

from .entities import *
from .interfaces import *
from .exceptions import *
from .enums import *
from .grading import GRADE_BREAKPOINTS, PASS_THRESHOLD_PERCENT, grade_letter_for, is_passing

__all__ = [
    # Entities
    "Student",
    "Course",
    "Exam",
    "ExamSubmission",
    "Enrollment",
    "CompletionResult",
    
    # Interfaces
    "EnrollmentStore",
    "ExamStore",
    "SubmissionStore",
    
    # Enums
    "EnrollmentStatus",
    "CompletionStatus",
    "Role",
    
    # Exceptions
    "MinervaException",
    "ValidationError",
    "AuthorizationError",
    "NotFoundError",
    "DuplicateEntityError",
    "InvalidStateError",
    "ConcurrencyConflictError",
    "PersistenceError",
    "ConfigurationError",
    
    # Grading policy
    "GRADE_BREAKPOINTS",
    "PASS_THRESHOLD_PERCENT",
    "grade_letter_for",
    "is_passing",
]
