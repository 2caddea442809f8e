"""
Enumerations and constants for the Minerva platform.
"""

from enum import Enum


class EnrollmentStatus(Enum):
    """Persisted status of an enrollment."""
    PENDING = "Pending"
    ENROLLED = "Enrolled"
    COMPLETED = "Completed"
    FAILED = "Failed"
    DROPPED = "Dropped"
    WITHDRAWN = "Withdrawn"
    REJECTED = "Rejected"


# Statuses the completion evaluator may read and overwrite.
EVALUATOR_OWNED_STATUSES = frozenset({
    EnrollmentStatus.ENROLLED,
    EnrollmentStatus.COMPLETED,
    EnrollmentStatus.FAILED,
})

# Statuses an administrator may set explicitly.
ADMINISTRATIVE_STATUSES = frozenset({
    EnrollmentStatus.ENROLLED,
    EnrollmentStatus.DROPPED,
    EnrollmentStatus.WITHDRAWN,
    EnrollmentStatus.REJECTED,
})


class CompletionStatus(Enum):
    """Outcome of a course completion evaluation."""
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"


class Role(Enum):
    """Roles supplied by the authentication layer."""
    ADMIN = "Admin"
    INSTRUCTOR = "Instructor"
    STUDENT = "Student"
