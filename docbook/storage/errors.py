"""
Storage-specific exceptions.

This module defines the exception hierarchy for storage operations,
enabling precise error handling at different layers of the application.
Driver and SQLAlchemy exceptions never leave the storage layer untranslated:
the query executor maps them onto these classes and chains the original
exception as ``__cause__``.
"""

from typing import Any, Optional


class StorageError(Exception):
    """
    Base exception for storage errors.

    All storage-related exceptions inherit from this base class,
    allowing catch-all error handling when needed.

    Attributes:
        message: Human-readable error message
        details: Structured context (query, params, duration_ms, ...)
        original_error: The driver/SQLAlchemy exception, if any
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        self.original_error = original_error
        super().__init__(message)


class PoolNotInitializedError(StorageError):
    """
    Connection pool used before initialize() or after shutdown().

    This is a programming error, never retried.
    """

    def __init__(self, message: str = (
        "Database pool not initialized. Call ConnectionPool.initialize() first."
    )) -> None:
        super().__init__(message)


class StorageConnectionError(StorageError):
    """
    Storage connection failed.

    Raised when:
    - Unable to establish database connection
    - Connection is lost unexpectedly
    - Acquiring a pooled connection timed out
    """
    pass


class QueryError(StorageError):
    """
    Query execution failed.

    Raised when:
    - SQL syntax error
    - Referenced table or column does not exist
    - Any other statement-level failure reported by the engine
    """
    pass


class IntegrityError(QueryError):
    """
    Data integrity violation.

    Raised when:
    - Foreign key constraint violated
    - Unique constraint violated
    - Check constraint violated
    """

    constraint_type = "integrity"


class UniqueViolationError(IntegrityError):
    """Insert or update would duplicate a unique value."""

    constraint_type = "unique"


class ForeignKeyViolationError(IntegrityError):
    """Referenced row does not exist (or is still referenced)."""

    constraint_type = "foreign_key"


class NotNullViolationError(IntegrityError):
    """A NOT NULL column received NULL."""

    constraint_type = "not_null"


class MigrationError(StorageError):
    """
    Schema migration failed.

    Raised when:
    - Migration script fails
    - Bookkeeping insert fails after a script was applied
    """
    pass


class MigrationDiscoveryError(MigrationError):
    """
    Migration scripts on disk are not usable.

    Raised before anything is applied when a script name is malformed,
    two scripts share an id, or the migrations directory is missing.
    Every problem found is listed in ``problems``.
    """

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__(
            "Invalid migration scripts: " + "; ".join(self.problems),
            details={"problems": self.problems},
        )
