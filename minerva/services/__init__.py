"""
Services module containing the business logic of the platform.
"""

from .completion_service import CourseCompletionEvaluator
from .catalog_service import CatalogService
from .enrollment_service import EnrollmentAdminService
from .concurrency import execute_with_retry

__all__ = [
    "CourseCompletionEvaluator",
    "CatalogService",
    "EnrollmentAdminService",
    "execute_with_retry",
]
