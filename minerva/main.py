"""
Main entry point for the Minerva platform.
"""

import json
import logging
from typing import Any, Dict, Optional

from .core.entities import Course, Exam
from .core.exceptions import ConfigurationError
from .persistence import DatabaseFactory
from .persistence.repositories import (
    CourseRepository, StudentRepository, ExamRepository, SubmissionRepository, EnrollmentRepository
)
from .services import CourseCompletionEvaluator, CatalogService, EnrollmentAdminService
from .services.enrollment_service import (
    ACADEMIC_YEAR_START_MONTH, MAX_ANNUAL_CREDITS, MAX_SEMESTER_CREDITS, MIN_STUDENTS_TO_RUN_COURSE
)
from .api.rest_api import MinervaRestAPI

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    'database_type': 'sqlite',
    'database_path': 'minerva.db',
    'host': '127.0.0.1',
    'port': 8000,
    'log_level': 'INFO',
    'max_retries': 3,
    'max_semester_credits': MAX_SEMESTER_CREDITS,
    'max_annual_credits': MAX_ANNUAL_CREDITS,
    'academic_year_start_month': ACADEMIC_YEAR_START_MONTH,
    'min_students_to_run_course': MIN_STUDENTS_TO_RUN_COURSE,
}


def load_config(path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Merge defaults, an optional JSON config file and explicit overrides."""
    config = dict(DEFAULT_CONFIG)
    if path:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                file_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}")
        if not isinstance(file_config, dict):
            raise ConfigurationError(f"Config file {path} must contain a JSON object")
        config.update(file_config)
    config.update({k: v for k, v in (overrides or {}).items() if v is not None})
    return config


class MinervaPlatform:
    """Main platform class that wires storage, services and the API together."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self._config = dict(DEFAULT_CONFIG)
        self._config.update(config or {})
        self._initialize_platform()

    def _initialize_platform(self):
        """Initialize the platform with all services."""
        self._database = DatabaseFactory.create_database(
            self._config['database_type'],
            database_path=self._config['database_path'],
        )
        logger.info("Database initialized: %s (%s)", self._config['database_type'], self._config['database_path'])

        self._courses = CourseRepository(self._database)
        self._students = StudentRepository(self._database)
        self._exams = ExamRepository(self._database)
        self._submissions = SubmissionRepository(self._database)
        self._enrollments = EnrollmentRepository(self._database)

        self.evaluator = CourseCompletionEvaluator(self._enrollments, self._exams, self._submissions)
        self.catalog_service = CatalogService(self._courses, self._exams, self._submissions)
        self.enrollment_service = EnrollmentAdminService(
            self._enrollments,
            self._courses,
            self._exams,
            self._students,
            max_semester_credits=self._config['max_semester_credits'],
            max_annual_credits=self._config['max_annual_credits'],
            academic_year_start_month=self._config['academic_year_start_month'],
            min_students_to_run_course=self._config['min_students_to_run_course'],
        )

        self.rest_api = MinervaRestAPI(
            self.evaluator,
            self.catalog_service,
            self.enrollment_service,
            max_retries=self._config['max_retries'],
        )
        logger.info("Minerva platform initialized")

    @property
    def app(self):
        return self.rest_api.app

    def start_rest_server(self):
        """Serve the REST API until interrupted."""
        import uvicorn

        uvicorn.run(
            self.rest_api.app,
            host=self._config['host'],
            port=self._config['port'],
            log_level=self._config['log_level'].lower(),
        )

    def run_demo(self) -> Dict[str, Any]:
        """Create a small course, grade one student and evaluate completion."""
        course = self.catalog_service.add_course(Course(course_code="CS101", name="Introduction to Programming",
                                                        credits=3))
        midterm = self.catalog_service.add_exam(Exam(course_id=course.id, title="Midterm", total_points=50))
        final = self.catalog_service.add_exam(Exam(course_id=course.id, title="Final", total_points=100))

        student_id = 1
        self.enrollment_service.enroll(student_id, course.id)
        self.catalog_service.record_submission(midterm.id, student_id, score=40)
        logger.info("After midterm: %s", self.evaluator.evaluate(student_id, course.id).to_dict())

        self.catalog_service.record_submission(final.id, student_id, score=70)
        result = self.evaluator.evaluate(student_id, course.id)
        logger.info("After final: %s", result.to_dict())
        return result.to_dict()


def main(argv=None):
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Minerva University Enrollment & Grading Platform")
    parser.add_argument("--config", type=str, help="Configuration file path (JSON)")
    parser.add_argument("--db-path", dest="database_path", type=str, help="SQLite database path")
    parser.add_argument("--host", type=str, help="REST server host")
    parser.add_argument("--port", type=int, help="REST server port")
    parser.add_argument("--log-level", type=str, choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level")
    parser.add_argument("--demo", action="store_true", help="Run demo mode")

    args = parser.parse_args(argv)
    config = load_config(args.config, {
        'database_path': args.database_path,
        'host': args.host,
        'port': args.port,
        'log_level': args.log_level,
    })

    logging.basicConfig(
        level=getattr(logging, config['log_level'].upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    platform = MinervaPlatform(config)
    if args.demo:
        platform.run_demo()
    else:
        try:
            platform.start_rest_server()
        except KeyboardInterrupt:
            logger.info("Shutting down")


if __name__ == "__main__":
    main()
