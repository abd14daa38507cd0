"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError so callers can
catch every store failure with a single except clause.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


class StoreUnavailable(PersistenceError):
    """Raised when the store cannot answer a query or command.

    Every SQLAlchemy error raised inside a repository surfaces as this
    exception. Interactive operations propagate it; batch operations record
    it per item and carry on.
    """

    pass


class DatabaseConnectionError(StoreUnavailable):
    """Raised when database connection or initialization fails.

    Examples:
    - Invalid database URL format
    - Database file not accessible
    - SQL driver not available
    """

    pass


class RecordNotFoundError(PersistenceError):
    """Raised when a required database record is not found.

    Used by commands that expect a record to exist. Lookups return None
    instead of raising.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised when a constraint violation is not an expected outcome.

    Duplicate new-match notifications are not reported through this error;
    the conflict-ignoring insert simply returns None for them.
    """

    pass
