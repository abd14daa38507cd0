"""Persistence layer for listings, users, saved queries and notifications.

Public API:
    # Engine and session management
    - Database(database_url) with .session() and .close()

    # Repository classes (constructed per session)
    - UserRepository: users, profiles and delivery addresses
    - ListingRepository: eligible-listing snapshots and owner mutations
    - SavedQueryRepository: saved queries and their evaluation cursor
    - NotificationRepository: notification queue with deduplicated inserts

    # Exceptions
    - PersistenceError: Base exception for all persistence errors
    - StoreUnavailable: Any failure reaching or querying the store
    - DatabaseConnectionError: Database connection/initialization failures
    - RecordNotFoundError: Required record not found
    - DataIntegrityError: Unexpected constraint violations

Example usage:
    >>> from gigmatch.persistence import Database, ListingRepository
    >>> from gigmatch.domain.models import ListingKind
    >>>
    >>> db = Database("sqlite:///./data/gigmatch.db")
    >>> with db.session() as session:
    ...     listings = ListingRepository(session).fetch_eligible_listings(
    ...         ListingKind.SEEKING_HELP, exclude_owner="u1"
    ...     )
"""

from .database import Database
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
    StoreUnavailable,
)
from .repositories import (
    ListingRepository,
    NotificationRepository,
    SavedQueryRepository,
    UserRepository,
    new_id,
)

__all__ = [
    "Database",
    "UserRepository",
    "ListingRepository",
    "SavedQueryRepository",
    "NotificationRepository",
    "new_id",
    "PersistenceError",
    "StoreUnavailable",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
