"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError so the orchestrator
can treat any storage hiccup as a per-record failure with one except clause.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when database connection or initialization fails.

    Examples:
    - Invalid database URL format
    - Database file not accessible
    - Database used before init_database() was called
    """

    pass


class RecordNotFoundError(PersistenceError):
    """Raised when a required record is missing or soft-deleted.

    Optional lookups return None instead of raising this.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised when a database constraint violation cannot be resolved.

    A duplicate (alert_id, offer_id) match is not one of these: the ledger
    resolves it to the existing record.
    """

    pass
