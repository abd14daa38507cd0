"""Data access layer (repositories) for persistence operations.

Repositories encapsulate database operations for users, listings, saved
queries and notifications, and return domain models rather than ORM models.
Each repository works inside the session it is given; the caller owns the
transaction.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from gigmatch.domain.models import (
    DeliveryState,
    Listing,
    ListingKind,
    Notification,
    NotificationKind,
    SavedQuery,
    User,
    UserProfile,
)
from gigmatch.utils.timestamps import format_timestamp, utc_now

from .exceptions import DataIntegrityError, RecordNotFoundError, StoreUnavailable
from .schema import (
    NEW_MATCH_UNIQUE_CONSTRAINT,
    ListingModel,
    NotificationModel,
    SavedQueryModel,
    UserModel,
    notification_row,
)

logger = logging.getLogger(__name__)

DEFAULT_CANDIDATE_LIMIT = 50


def new_id() -> str:
    """Generate an opaque record id."""
    return uuid.uuid4().hex


class UserRepository:
    """Repository for users and their public profiles."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, user: User) -> User:
        """Insert a user.

        Raises:
            DataIntegrityError: If the id is already taken
            StoreUnavailable: If database error occurs
        """
        try:
            model = UserModel.from_domain(user)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error adding user {user.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to add user: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding user {user.id}: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to add user: {e}") from e

    def get(self, user_id: str) -> Optional[User]:
        try:
            model = self.session.get(UserModel, user_id)
            return model.to_domain() if model is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving user {user_id}: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to retrieve user: {e}") from e

    def fetch_owner(self, user_id: str) -> Optional[UserProfile]:
        """Resolve a user id to its public profile {id, name, headline}.

        Returns:
            UserProfile if the user exists, None otherwise

        Raises:
            StoreUnavailable: If database error occurs
        """
        try:
            model = self.session.get(UserModel, user_id)
            return model.to_profile() if model is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving profile {user_id}: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to retrieve profile: {e}") from e

    def update_email(self, user_id: str, email: Optional[str]) -> None:
        """Set or clear a user's delivery address.

        Raises:
            RecordNotFoundError: If the user doesn't exist
            StoreUnavailable: If database error occurs
        """
        try:
            result = self.session.execute(
                update(UserModel).where(UserModel.id == user_id).values(email=email)
            )
            self.session.flush()
            if result.rowcount == 0:
                raise RecordNotFoundError(f"User {user_id} not found")
        except SQLAlchemyError as e:
            logger.error(f"Error updating email for user {user_id}: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to update email: {e}") from e

    def get_delivery_address(self, user_id: str) -> Optional[str]:
        """Email address for a user, or None when unknown or unset."""
        recipient = self.get_recipients([user_id]).get(user_id)
        return recipient.email if recipient is not None else None

    def get_recipients(self, user_ids: Iterable[str]) -> Dict[str, User]:
        """Map user id to user for every listed user that has a delivery address.

        Raises:
            StoreUnavailable: If database error occurs
        """
        ids = list(set(user_ids))
        if not ids:
            return {}

        try:
            stmt = select(UserModel).where(
                UserModel.id.in_(ids), UserModel.email.is_not(None), UserModel.email != ""
            )
            return {model.id: model.to_domain() for model in self.session.scalars(stmt).all()}
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving delivery addresses: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to retrieve delivery addresses: {e}") from e


class ListingRepository:
    """Repository for listings.

    Reads apply the eligibility rule at query time: active and not expired.
    """

    def __init__(self, session: Session):
        self.session = session

    def create(self, listing: Listing) -> Listing:
        """Insert a listing.

        Raises:
            DataIntegrityError: If the owner doesn't exist or the id is taken
            StoreUnavailable: If database error occurs
        """
        try:
            model = ListingModel.from_domain(listing)
            self.session.add(model)
            self.session.flush()
            self.session.refresh(model)
            return model.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error creating listing {listing.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to create listing: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error creating listing {listing.id}: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to create listing: {e}") from e

    def get(self, listing_id: str) -> Optional[Listing]:
        try:
            model = self.session.get(ListingModel, listing_id)
            return model.to_domain() if model is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving listing {listing_id}: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to retrieve listing: {e}") from e

    def fetch_eligible_listings(
        self,
        kind: ListingKind,
        exclude_owner: Optional[str] = None,
        limit: Optional[int] = DEFAULT_CANDIDATE_LIMIT,
        now: Optional[datetime] = None,
    ) -> List[Listing]:
        """Snapshot of eligible listings of one kind, newest first.

        Args:
            kind: Listing kind to fetch
            exclude_owner: Leave out this user's own listings
            limit: Maximum rows, or None for the full eligible set
            now: Reference time for the expiry check (default: current time)

        Returns:
            Listings with owner profiles attached

        Raises:
            StoreUnavailable: If database error occurs
        """
        now_str = format_timestamp(now or utc_now())
        try:
            stmt = (
                select(ListingModel)
                .where(
                    ListingModel.kind == kind.value,
                    ListingModel.active.is_(True),
                    or_(ListingModel.expires_at.is_(None), ListingModel.expires_at > now_str),
                )
                .order_by(ListingModel.created_at.desc(), ListingModel.id.desc())
            )
            if exclude_owner:
                stmt = stmt.where(ListingModel.owner_id != exclude_owner)
            if limit is not None:
                stmt = stmt.limit(limit)

            models = self.session.scalars(stmt).unique().all()
            return [model.to_domain() for model in models]

        except SQLAlchemyError as e:
            logger.error(f"Error fetching eligible {kind.value} listings: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to fetch eligible listings: {e}") from e

    def fetch_expiring(self, until: datetime, now: Optional[datetime] = None) -> List[Listing]:
        """Active listings whose expiry falls in (now, until], soonest first.

        Raises:
            StoreUnavailable: If database error occurs
        """
        now_str = format_timestamp(now or utc_now())
        try:
            stmt = (
                select(ListingModel)
                .where(
                    ListingModel.active.is_(True),
                    ListingModel.expires_at.is_not(None),
                    ListingModel.expires_at > now_str,
                    ListingModel.expires_at <= format_timestamp(until),
                )
                .order_by(ListingModel.expires_at.asc())
            )
            return [model.to_domain() for model in self.session.scalars(stmt).unique().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error fetching expiring listings: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to fetch expiring listings: {e}") from e

    def list_for_owner(self, owner_id: str, include_inactive: bool = False) -> List[Listing]:
        try:
            stmt = select(ListingModel).where(ListingModel.owner_id == owner_id)
            if not include_inactive:
                stmt = stmt.where(ListingModel.active.is_(True))
            stmt = stmt.order_by(ListingModel.created_at.desc())
            return [model.to_domain() for model in self.session.scalars(stmt).unique().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing listings for owner {owner_id}: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to list listings: {e}") from e

    def renew(self, listing_id: str, owner_id: str, expires_at: datetime) -> Listing:
        """Extend a listing's expiry. Only the owner may renew.

        Raises:
            RecordNotFoundError: If the listing doesn't exist or isn't the owner's
            StoreUnavailable: If database error occurs
        """
        return self._owner_update(listing_id, owner_id, expires_at=format_timestamp(expires_at))

    def deactivate(self, listing_id: str, owner_id: str) -> Listing:
        """Mark a listing inactive. Listings are never hard-deleted.

        Raises:
            RecordNotFoundError: If the listing doesn't exist or isn't the owner's
            StoreUnavailable: If database error occurs
        """
        return self._owner_update(listing_id, owner_id, active=False)

    def reactivate(self, listing_id: str, owner_id: str) -> Listing:
        return self._owner_update(listing_id, owner_id, active=True)

    def _owner_update(self, listing_id: str, owner_id: str, **values: Any) -> Listing:
        try:
            result = self.session.execute(
                update(ListingModel)
                .where(ListingModel.id == listing_id, ListingModel.owner_id == owner_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise RecordNotFoundError(f"Listing {listing_id} not found")

            self.session.expire_all()
            model = self.session.get(ListingModel, listing_id)
            return model.to_domain()

        except SQLAlchemyError as e:
            logger.error(f"Error updating listing {listing_id}: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to update listing: {e}") from e


class SavedQueryRepository:
    """Repository for saved queries.

    Owner scoping is applied by callers through the ``owner_id`` arguments;
    the alert sweep uses the unscoped ``list_active`` and ``advance_cursor``.
    """

    def __init__(self, session: Session):
        self.session = session

    def add(self, saved_query: SavedQuery) -> SavedQuery:
        try:
            model = SavedQueryModel.from_domain(saved_query)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error adding saved query {saved_query.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to add saved query: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding saved query {saved_query.id}: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to add saved query: {e}") from e

    def get_for_owner(self, owner_id: str, saved_query_id: str) -> Optional[SavedQuery]:
        """Saved query by id, or None when missing or owned by someone else."""
        try:
            stmt = select(SavedQueryModel).where(
                SavedQueryModel.id == saved_query_id, SavedQueryModel.owner_id == owner_id
            )
            model = self.session.scalars(stmt).one_or_none()
            return model.to_domain() if model is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving saved query {saved_query_id}: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to retrieve saved query: {e}") from e

    def list_for_owner(self, owner_id: str, include_inactive: bool = False) -> List[SavedQuery]:
        try:
            stmt = select(SavedQueryModel).where(SavedQueryModel.owner_id == owner_id)
            if not include_inactive:
                stmt = stmt.where(SavedQueryModel.active.is_(True))
            stmt = stmt.order_by(SavedQueryModel.created_at.desc())
            return [model.to_domain() for model in self.session.scalars(stmt).all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing saved queries for {owner_id}: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to list saved queries: {e}") from e

    def list_active(self) -> List[SavedQuery]:
        """All active saved queries, oldest first."""
        try:
            stmt = (
                select(SavedQueryModel)
                .where(SavedQueryModel.active.is_(True))
                .order_by(SavedQueryModel.created_at.asc(), SavedQueryModel.id.asc())
            )
            return [model.to_domain() for model in self.session.scalars(stmt).all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing active saved queries: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to list active saved queries: {e}") from e

    def save(self, saved_query: SavedQuery) -> SavedQuery:
        """Persist owner-editable fields of an existing saved query.

        The evaluation cursor is never written here.

        Raises:
            RecordNotFoundError: If the saved query doesn't exist for its owner
            StoreUnavailable: If database error occurs
        """
        try:
            result = self.session.execute(
                update(SavedQueryModel)
                .where(
                    SavedQueryModel.id == saved_query.id,
                    SavedQueryModel.owner_id == saved_query.owner_id,
                )
                .values(
                    name=saved_query.name,
                    kind=saved_query.kind.value,
                    query=saved_query.query,
                    skills=list(saved_query.skills),
                    rate_min=saved_query.rate_min,
                    rate_max=saved_query.rate_max,
                    remote_only=saved_query.remote_only,
                    location=saved_query.location,
                    notify_by_email=saved_query.notify_by_email,
                    active=saved_query.active,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise RecordNotFoundError(f"Saved query {saved_query.id} not found")

            self.session.expire_all()
            return self.session.get(SavedQueryModel, saved_query.id).to_domain()

        except SQLAlchemyError as e:
            logger.error(f"Error saving saved query {saved_query.id}: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to save saved query: {e}") from e

    def advance_cursor(self, saved_query_id: str, evaluated_at: datetime) -> bool:
        """Move ``last_evaluated_at`` forward to ``evaluated_at``.

        A value older than the stored cursor is ignored.

        Returns:
            True if the cursor moved

        Raises:
            StoreUnavailable: If database error occurs
        """
        stamp = format_timestamp(evaluated_at)
        try:
            result = self.session.execute(
                update(SavedQueryModel)
                .where(
                    SavedQueryModel.id == saved_query_id,
                    or_(
                        SavedQueryModel.last_evaluated_at.is_(None),
                        SavedQueryModel.last_evaluated_at < stamp,
                    ),
                )
                .values(last_evaluated_at=stamp)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1
        except SQLAlchemyError as e:
            logger.error(f"Error advancing cursor for {saved_query_id}: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to advance evaluation cursor: {e}") from e


class NotificationRepository:
    """Repository for the notification queue."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, notification: Notification) -> Notification:
        """Insert a notification of any kind.

        Raises:
            DataIntegrityError: If a constraint is violated
            StoreUnavailable: If database error occurs
        """
        try:
            model = NotificationModel.from_domain(notification)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error adding notification: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to add notification: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding notification: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to add notification: {e}") from e

    def create_new_match(
        self,
        recipient_id: str,
        saved_query_id: str,
        listing_id: str,
        title: str,
        body: str,
        metadata: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
        email_enabled: bool = True,
    ) -> Optional[Notification]:
        """Queue one new-match notification unless it already exists.

        Uses the dialect's ``INSERT .. ON CONFLICT DO NOTHING`` so that
        concurrent or repeated sweeps cannot produce a second row for the
        same (recipient, saved query, listing).

        Returns:
            The new notification, or None if it was a duplicate

        Raises:
            StoreUnavailable: If database error occurs
        """
        payload = {"saved_query_id": saved_query_id, "listing_id": listing_id}
        payload.update(metadata or {})
        notification = Notification(
            id=new_id(),
            recipient_id=recipient_id,
            kind=NotificationKind.NEW_MATCH,
            title=title,
            body=body,
            metadata=payload,
            saved_query_id=saved_query_id,
            listing_id=listing_id,
            email_enabled=email_enabled,
            created_at=created_at or utc_now(),
        )

        try:
            if self._insert_ignoring_conflict(notification_row(notification)):
                return notification
            return None
        except SQLAlchemyError as e:
            logger.error(
                f"Error creating new-match notification for {saved_query_id}/{listing_id}: {e}",
                exc_info=True,
            )
            raise StoreUnavailable(f"Failed to create notification: {e}") from e

    def _insert_ignoring_conflict(self, values: Dict[str, Any]) -> bool:
        table = NotificationModel.__table__
        dialect = self.session.get_bind().dialect.name

        if dialect == "sqlite":
            stmt = sqlite_insert(table).values(**values).on_conflict_do_nothing()
        elif dialect == "postgresql":
            stmt = (
                postgresql_insert(table)
                .values(**values)
                .on_conflict_do_nothing(constraint=NEW_MATCH_UNIQUE_CONSTRAINT)
            )
        else:
            try:
                with self.session.begin_nested():
                    self.session.execute(table.insert().values(**values))
            except IntegrityError:
                return False
            return True

        result = self.session.execute(stmt)
        return result.rowcount == 1

    def get(self, notification_id: str) -> Optional[Notification]:
        try:
            model = self.session.get(NotificationModel, notification_id)
            return model.to_domain() if model is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving notification {notification_id}: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to retrieve notification: {e}") from e

    def fetch_pending(self, limit: int = 50, now: Optional[datetime] = None) -> List[Notification]:
        """Pending notifications that are due for email, oldest first.

        Inbox-only rows (``email_enabled`` false) are never returned.

        Raises:
            StoreUnavailable: If database error occurs
        """
        now_str = format_timestamp(now or utc_now())
        try:
            stmt = (
                select(NotificationModel)
                .where(
                    NotificationModel.state == DeliveryState.PENDING.value,
                    NotificationModel.email_enabled.is_(True),
                    or_(
                        NotificationModel.next_attempt_at.is_(None),
                        NotificationModel.next_attempt_at <= now_str,
                    ),
                )
                .order_by(NotificationModel.created_at.asc(), NotificationModel.id.asc())
                .limit(limit)
            )
            return [model.to_domain() for model in self.session.scalars(stmt).all()]
        except SQLAlchemyError as e:
            logger.error(f"Error fetching pending notifications: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to fetch pending notifications: {e}") from e

    def list_for_user(
        self, user_id: str, kind: Optional[NotificationKind] = None
    ) -> List[Notification]:
        try:
            stmt = select(NotificationModel).where(NotificationModel.user_id == user_id)
            if kind is not None:
                stmt = stmt.where(NotificationModel.kind == kind.value)
            stmt = stmt.order_by(NotificationModel.created_at.asc())
            return [model.to_domain() for model in self.session.scalars(stmt).all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing notifications for {user_id}: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to list notifications: {e}") from e

    def count(self, kind: Optional[NotificationKind] = None) -> int:
        try:
            stmt = select(func.count()).select_from(NotificationModel)
            if kind is not None:
                stmt = stmt.where(NotificationModel.kind == kind.value)
            return self.session.execute(stmt).scalar_one()
        except SQLAlchemyError as e:
            logger.error(f"Error counting notifications: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to count notifications: {e}") from e

    def exists_since(
        self, recipient_id: str, kind: NotificationKind, listing_id: str, since: datetime
    ) -> bool:
        """True if a notification of ``kind`` about ``listing_id`` was queued after ``since``."""
        try:
            stmt = (
                select(NotificationModel.id)
                .where(
                    NotificationModel.user_id == recipient_id,
                    NotificationModel.kind == kind.value,
                    NotificationModel.listing_id == listing_id,
                    NotificationModel.created_at > format_timestamp(since),
                )
                .limit(1)
            )
            return self.session.execute(stmt).first() is not None
        except SQLAlchemyError as e:
            logger.error(f"Error checking notifications for listing {listing_id}: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to check notifications: {e}") from e

    def mark_delivered(self, notification_id: str, delivered_at: datetime) -> bool:
        """Transition pending -> delivered after a successful transport call.

        Returns:
            True if the row was pending and is now delivered

        Raises:
            StoreUnavailable: If database error occurs
        """
        stamp = format_timestamp(delivered_at)
        try:
            result = self.session.execute(
                update(NotificationModel)
                .where(
                    NotificationModel.id == notification_id,
                    NotificationModel.state == DeliveryState.PENDING.value,
                )
                .values(
                    state=DeliveryState.DELIVERED.value,
                    delivered_at=stamp,
                    attempts=NotificationModel.attempts + 1,
                    last_attempt_at=stamp,
                    next_attempt_at=None,
                    last_error=None,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1
        except SQLAlchemyError as e:
            logger.error(f"Error marking notification {notification_id} delivered: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to mark notification delivered: {e}") from e

    def record_failure(
        self,
        notification_id: str,
        error: str,
        attempted_at: datetime,
        next_attempt_at: Optional[datetime],
        permanent: bool = False,
    ) -> bool:
        """Count a failed delivery attempt and schedule the retry.

        When ``permanent`` is true the row becomes failed_permanently and is
        never fetched again.

        Raises:
            StoreUnavailable: If database error occurs
        """
        state = DeliveryState.FAILED_PERMANENTLY if permanent else DeliveryState.PENDING
        try:
            result = self.session.execute(
                update(NotificationModel)
                .where(
                    NotificationModel.id == notification_id,
                    NotificationModel.state == DeliveryState.PENDING.value,
                )
                .values(
                    state=state.value,
                    attempts=NotificationModel.attempts + 1,
                    last_attempt_at=format_timestamp(attempted_at),
                    next_attempt_at=None if permanent else format_timestamp(next_attempt_at),
                    last_error=error,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1
        except SQLAlchemyError as e:
            logger.error(f"Error recording failure for {notification_id}: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to record delivery failure: {e}") from e

    def record_skip(self, notification_id: str, error: str) -> None:
        """Note why a notification could not be attempted, without counting an attempt."""
        try:
            self.session.execute(
                update(NotificationModel)
                .where(NotificationModel.id == notification_id)
                .values(last_error=error)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            logger.error(f"Error recording skip for {notification_id}: {e}", exc_info=True)
            raise StoreUnavailable(f"Failed to record skipped delivery: {e}") from e
