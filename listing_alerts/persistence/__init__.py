"""Persistence layer for database operations using SQLAlchemy.

This module provides the public API for database operations including:
- Database initialization and connection management
- Repository classes for users, alerts, offers, matches and notifications
- Custom exceptions for error handling

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine

    # Repository classes
    - UserRepository: alert owner contact records
    - AlertRepository: saved searches and their lifecycle
    - OfferRepository: normalized listings (upsert by link)
    - MatchRepository: the match ledger (create-if-absent per alert/offer)
    - NotificationRepository: delivery audit log

    # Exceptions
    - PersistenceError: Base exception for all persistence errors
    - DatabaseConnectionError: Database connection/initialization failures
    - RecordNotFoundError: Required record not found
    - DataIntegrityError: Constraint violations

Example usage:
    >>> from listing_alerts.persistence import init_database, get_session, MatchRepository
    >>>
    >>> init_database("sqlite:///./data/listing_alerts.db")
    >>>
    >>> with get_session() as session:
    ...     outcome = MatchRepository(session).record_match_if_absent(1, 42)
    ...     outcome.created
    True
"""

# Database initialization and session management
from .database import close_database, get_engine, get_session, init_database

# Repository classes
from .repositories import (
    AlertRepository,
    MatchRepository,
    NotificationRepository,
    OfferRepository,
    UserRepository,
)

# Exceptions
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)

__all__ = [
    # Database functions
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    # Repositories
    "UserRepository",
    "AlertRepository",
    "OfferRepository",
    "MatchRepository",
    "NotificationRepository",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
