"""Database schema definition and ORM models.

ORM models convert to and from domain models with ``to_domain`` and
``from_domain``. Timestamps are stored as fixed-width ISO 8601 UTC strings so
they compare correctly as text.
"""

import logging

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    inspect,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship

from gigmatch.domain.models import (
    DeliveryState,
    Listing,
    ListingKind,
    Notification,
    NotificationKind,
    RateType,
    SavedQuery,
    User,
    UserProfile,
)
from gigmatch.utils.timestamps import format_timestamp, parse_iso_datetime

logger = logging.getLogger(__name__)

Base = declarative_base()

NEW_MATCH_UNIQUE_CONSTRAINT = "uq_notifications_match"


class UserModel(Base):
    """ORM model for users table."""

    __tablename__ = "users"

    id = Column(String(64), primary_key=True, nullable=False)
    name = Column(String(255), nullable=False)
    headline = Column(String(255), nullable=True)
    email = Column(String(320), nullable=True)

    def to_domain(self) -> User:
        return User(id=self.id, name=self.name, headline=self.headline, email=self.email)

    def to_profile(self) -> UserProfile:
        return UserProfile(id=self.id, name=self.name, headline=self.headline)

    @classmethod
    def from_domain(cls, user: User) -> "UserModel":
        return cls(id=user.id, name=user.name, headline=user.headline, email=user.email)


class ListingModel(Base):
    """ORM model for listings table."""

    __tablename__ = "listings"

    id = Column(String(64), primary_key=True, nullable=False)
    owner_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    kind = Column(String(20), nullable=False)

    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False, default="")
    skills = Column(JSON, nullable=False, default=list)

    rate_min = Column(Integer, nullable=True)
    rate_max = Column(Integer, nullable=True)
    rate_type = Column(String(20), nullable=True)
    remote = Column(Boolean, nullable=False, default=True)
    location = Column(String(255), nullable=True)

    created_at = Column(String(50), nullable=False)
    expires_at = Column(String(50), nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    owner = relationship(UserModel, lazy="joined")

    __table_args__ = (
        Index("idx_listings_eligible", "kind", "active", "created_at"),
        Index("idx_listings_owner", "owner_id"),
        Index("idx_listings_expires", "expires_at"),
    )

    def to_domain(self) -> Listing:
        return Listing(
            id=self.id,
            owner_id=self.owner_id,
            kind=ListingKind(self.kind),
            title=self.title,
            description=self.description or "",
            skills=list(self.skills or []),
            rate_min=self.rate_min,
            rate_max=self.rate_max,
            rate_type=RateType(self.rate_type) if self.rate_type else None,
            remote=bool(self.remote),
            location=self.location,
            created_at=parse_iso_datetime(self.created_at),
            expires_at=parse_iso_datetime(self.expires_at),
            active=bool(self.active),
            owner=self.owner.to_profile() if self.owner is not None else None,
        )

    @classmethod
    def from_domain(cls, listing: Listing) -> "ListingModel":
        return cls(
            id=listing.id,
            owner_id=listing.owner_id,
            kind=listing.kind.value,
            title=listing.title,
            description=listing.description,
            skills=list(listing.skills),
            rate_min=listing.rate_min,
            rate_max=listing.rate_max,
            rate_type=listing.rate_type.value if listing.rate_type else None,
            remote=listing.remote,
            location=listing.location,
            created_at=format_timestamp(listing.created_at),
            expires_at=format_timestamp(listing.expires_at),
            active=listing.active,
        )


class SavedQueryModel(Base):
    """ORM model for saved_queries table.

    ``last_evaluated_at`` is the evaluation cursor; only the alert sweep moves
    it, and only forward.
    """

    __tablename__ = "saved_queries"

    id = Column(String(64), primary_key=True, nullable=False)
    owner_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    name = Column(String(255), nullable=False)
    kind = Column(String(20), nullable=False)

    query = Column(Text, nullable=True)
    skills = Column(JSON, nullable=False, default=list)
    rate_min = Column(Integer, nullable=True)
    rate_max = Column(Integer, nullable=True)
    remote_only = Column(Boolean, nullable=False, default=False)
    location = Column(String(255), nullable=True)
    notify_by_email = Column(Boolean, nullable=False, default=True)

    last_evaluated_at = Column(String(50), nullable=True)
    created_at = Column(String(50), nullable=False)
    active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("idx_saved_queries_owner", "owner_id"),
        Index("idx_saved_queries_active", "active"),
    )

    def to_domain(self) -> SavedQuery:
        return SavedQuery(
            id=self.id,
            owner_id=self.owner_id,
            name=self.name,
            kind=ListingKind(self.kind),
            query=self.query,
            skills=list(self.skills or []),
            rate_min=self.rate_min,
            rate_max=self.rate_max,
            remote_only=bool(self.remote_only),
            location=self.location,
            notify_by_email=bool(self.notify_by_email),
            last_evaluated_at=parse_iso_datetime(self.last_evaluated_at),
            created_at=parse_iso_datetime(self.created_at),
            active=bool(self.active),
        )

    @classmethod
    def from_domain(cls, saved_query: SavedQuery) -> "SavedQueryModel":
        return cls(
            id=saved_query.id,
            owner_id=saved_query.owner_id,
            name=saved_query.name,
            kind=saved_query.kind.value,
            query=saved_query.query,
            skills=list(saved_query.skills),
            rate_min=saved_query.rate_min,
            rate_max=saved_query.rate_max,
            remote_only=saved_query.remote_only,
            location=saved_query.location,
            notify_by_email=saved_query.notify_by_email,
            last_evaluated_at=format_timestamp(saved_query.last_evaluated_at),
            created_at=format_timestamp(saved_query.created_at),
            active=saved_query.active,
        )


class NotificationModel(Base):
    """ORM model for notifications table.

    The unique constraint over (user_id, kind, saved_query_id, listing_id)
    is the only deduplication of new-match notifications. Rows of other kinds
    leave saved_query_id NULL and therefore never collide.
    """

    __tablename__ = "notifications"

    id = Column(String(64), primary_key=True, nullable=False)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    kind = Column(String(30), nullable=False)
    title = Column(Text, nullable=False)
    body = Column(Text, nullable=False)
    payload = Column(JSON, nullable=False, default=dict)

    saved_query_id = Column(String(64), nullable=True)
    listing_id = Column(String(64), nullable=True)
    email_enabled = Column(Boolean, nullable=False, default=True)

    state = Column(String(30), nullable=False, default=DeliveryState.PENDING.value)
    attempts = Column(Integer, nullable=False, default=0)
    last_attempt_at = Column(String(50), nullable=True)
    next_attempt_at = Column(String(50), nullable=True)
    last_error = Column(Text, nullable=True)
    delivered_at = Column(String(50), nullable=True)
    created_at = Column(String(50), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "kind", "saved_query_id", "listing_id", name=NEW_MATCH_UNIQUE_CONSTRAINT
        ),
        Index("idx_notifications_pending", "state", "created_at"),
        Index("idx_notifications_user", "user_id"),
    )

    def to_domain(self) -> Notification:
        return Notification(
            id=self.id,
            recipient_id=self.user_id,
            kind=NotificationKind(self.kind),
            title=self.title,
            body=self.body,
            metadata=dict(self.payload or {}),
            saved_query_id=self.saved_query_id,
            listing_id=self.listing_id,
            email_enabled=bool(self.email_enabled),
            state=DeliveryState(self.state),
            attempts=self.attempts or 0,
            last_attempt_at=parse_iso_datetime(self.last_attempt_at),
            next_attempt_at=parse_iso_datetime(self.next_attempt_at),
            last_error=self.last_error,
            delivered_at=parse_iso_datetime(self.delivered_at),
            created_at=parse_iso_datetime(self.created_at),
        )

    @classmethod
    def from_domain(cls, notification: Notification) -> "NotificationModel":
        return cls(**notification_row(notification))


def notification_row(notification: Notification) -> dict:
    """Column values for a notification, keyed by column name."""
    return {
        "id": notification.id,
        "user_id": notification.recipient_id,
        "kind": notification.kind.value,
        "title": notification.title,
        "body": notification.body,
        "payload": dict(notification.metadata),
        "saved_query_id": notification.saved_query_id,
        "listing_id": notification.listing_id,
        "email_enabled": notification.email_enabled,
        "state": notification.state.value,
        "attempts": notification.attempts,
        "last_attempt_at": format_timestamp(notification.last_attempt_at),
        "next_attempt_at": format_timestamp(notification.next_attempt_at),
        "last_error": notification.last_error,
        "delivered_at": format_timestamp(notification.delivered_at),
        "created_at": format_timestamp(notification.created_at),
    }


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)
        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")
    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
