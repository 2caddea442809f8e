"""
Database management and connection handling.
"""

import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from ..core.exceptions import PersistenceError, DuplicateEntityError, ConfigurationError

logger = logging.getLogger(__name__)


SCHEMA: Dict[str, str] = {
    "students": """
        CREATE TABLE IF NOT EXISTS students (
            id INTEGER PRIMARY KEY,
            full_name TEXT NOT NULL,
            email TEXT,
            department_id INTEGER,
            created_at TEXT NOT NULL
        )
    """,
    "courses": """
        CREATE TABLE IF NOT EXISTS courses (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            course_code TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            credits INTEGER NOT NULL,
            department_id INTEGER,
            is_deleted INTEGER NOT NULL DEFAULT 0,
            deleted_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
    "exams": """
        CREATE TABLE IF NOT EXISTS exams (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            course_id INTEGER NOT NULL REFERENCES courses(id),
            title TEXT NOT NULL,
            description TEXT,
            total_points REAL NOT NULL CHECK (total_points > 0),
            exam_date TEXT,
            duration_minutes INTEGER NOT NULL DEFAULT 60,
            is_deleted INTEGER NOT NULL DEFAULT 0,
            deleted_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
    "exam_submissions": """
        CREATE TABLE IF NOT EXISTS exam_submissions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            exam_id INTEGER NOT NULL REFERENCES exams(id),
            student_id INTEGER NOT NULL,
            score REAL,
            submitted_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE (exam_id, student_id)
        )
    """,
    "enrollments": """
        CREATE TABLE IF NOT EXISTS enrollments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            student_id INTEGER NOT NULL,
            course_id INTEGER NOT NULL REFERENCES courses(id),
            status TEXT NOT NULL,
            final_grade REAL CHECK (final_grade IS NULL OR (final_grade >= 0 AND final_grade <= 100)),
            grade_letter TEXT,
            enrollment_date TEXT NOT NULL,
            version INTEGER NOT NULL DEFAULT 1,
            is_deleted INTEGER NOT NULL DEFAULT 0,
            deleted_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE (student_id, course_id)
        )
    """,
}


class DatabaseManager(ABC):
    """Abstract base class for database management."""

    @abstractmethod
    def execute_query(self, query: str, params: Optional[tuple] = None) -> List[Dict[str, Any]]:
        """Execute a query and return results."""
        pass

    @abstractmethod
    def execute_update(self, query: str, params: Optional[tuple] = None) -> int:
        """Execute an update query and return affected rows."""
        pass

    @abstractmethod
    def execute_insert(self, query: str, params: Optional[tuple] = None) -> int:
        """Execute an insert and return the new row id."""
        pass

    @abstractmethod
    def execute_transaction(self, queries: List[tuple]) -> int:
        """Execute multiple queries in one transaction and return affected rows."""
        pass

    @abstractmethod
    def create_tables(self, schema: Dict[str, str]) -> None:
        """Create database tables from schema."""
        pass

    @abstractmethod
    def table_exists(self, table_name: str) -> bool:
        """Check if a table exists."""
        pass


class SQLiteDatabase(DatabaseManager):
    """SQLite database implementation.

    Every call opens its own short-lived connection, so one instance can be
    shared between threads.
    """

    def __init__(self, database_path: str = "minerva.db", timeout: float = 5.0):
        self._database_path = database_path
        self._timeout = timeout
        self._initialize_database()

    @property
    def database_path(self) -> str:
        return self._database_path

    def _initialize_database(self) -> None:
        """Initialize the database with the Minerva schema."""
        self.create_tables(SCHEMA)
        logger.debug("SQLite schema ready at %s", self._database_path)

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get database connection with proper cleanup."""
        conn = None
        try:
            conn = sqlite3.connect(self._database_path, timeout=self._timeout, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
        except sqlite3.IntegrityError as e:
            if conn:
                conn.rollback()
            if "UNIQUE" in str(e):
                raise DuplicateEntityError(f"Duplicate record: {str(e)}", error_code="duplicate_record")
            raise PersistenceError(f"Integrity constraint violated: {str(e)}", error_code="integrity_error")
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            raise PersistenceError(f"Database error: {str(e)}", error_code="database_error")
        finally:
            if conn:
                conn.close()

    def execute_query(self, query: str, params: Optional[tuple] = None) -> List[Dict[str, Any]]:
        """Execute a query and return results."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())
            return [dict(row) for row in cursor.fetchall()]

    def execute_update(self, query: str, params: Optional[tuple] = None) -> int:
        """Execute an update query and return affected rows."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())
            conn.commit()
            return cursor.rowcount

    def execute_insert(self, query: str, params: Optional[tuple] = None) -> int:
        """Execute an insert and return the new row id."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())
            conn.commit()
            return cursor.lastrowid

    def execute_transaction(self, queries: List[tuple]) -> int:
        """Execute multiple queries in a transaction.

        Either every statement is committed or none is.
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            affected = 0
            for query, params in queries:
                cursor.execute(query, params or ())
                affected += max(cursor.rowcount, 0)
            conn.commit()
            return affected

    def create_tables(self, schema: Dict[str, str]) -> None:
        """Create database tables from schema."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            for table_schema in schema.values():
                cursor.execute(table_schema)
            conn.commit()

    def table_exists(self, table_name: str) -> bool:
        """Check if a table exists."""
        query = "SELECT name FROM sqlite_master WHERE type='table' AND name=?"
        results = self.execute_query(query, (table_name,))
        return len(results) > 0


class DatabaseFactory:
    """Factory for creating database instances."""

    @staticmethod
    def create_database(database_type: str, **kwargs) -> DatabaseManager:
        """Create a database instance based on type."""
        if database_type.lower() == "sqlite":
            return SQLiteDatabase(**kwargs)
        raise ConfigurationError(f"Unsupported database type: {database_type}")
