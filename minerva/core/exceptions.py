"""
Custom exceptions for the Minerva platform.
"""

from typing import Optional, Any, Dict


class MinervaException(Exception):
    """Base exception for all Minerva-related errors."""
    
    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class ValidationError(MinervaException):
    """Raised when input validation fails."""
    pass


class AuthorizationError(MinervaException):
    """Raised when access is denied."""
    pass


class NotFoundError(MinervaException):
    """Raised when a requested record does not exist."""
    pass


class DuplicateEntityError(MinervaException):
    """Raised when attempting to create a duplicate record."""
    pass


class InvalidStateError(MinervaException):
    """Raised when a record is in a state that forbids the operation."""
    pass


class ConcurrencyConflictError(MinervaException):
    """Raised when an optimistic-concurrency check loses a race.

    The only error kind callers are expected to retry, with fresh reads.
    """
    pass


class PersistenceError(MinervaException):
    """Raised when persistence operations fail."""
    pass


class ConfigurationError(MinervaException):
    """Raised when configuration is invalid."""
    pass
