"""
Persistence module for data storage.
"""

from .database import DatabaseManager, SQLiteDatabase, DatabaseFactory, SCHEMA
from .repositories import (
    CourseRepository, StudentRepository, ExamRepository, SubmissionRepository, EnrollmentRepository
)

__all__ = [
    "DatabaseManager",
    "SQLiteDatabase",
    "DatabaseFactory",
    "SCHEMA",
    "CourseRepository",
    "StudentRepository",
    "ExamRepository",
    "SubmissionRepository",
    "EnrollmentRepository",
]
