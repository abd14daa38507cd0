"""Core domain models for listings, saved searches and notifications.

This module defines the data structures used throughout the application:
- Listing: a job posting (seeking help) or availability posting (seeking work)
- UserProfile / User: the public profile subset and the delivery address
- MatchResult / RankingOutcome: ephemeral ranking output, never persisted
- SavedQuery: a standing search re-evaluated by the alert sweep
- Notification: a queued message for a user, drained by the dispatcher
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from gigmatch.utils.timestamps import ensure_utc, utc_now


class ListingKind(str, Enum):
    """What the listing owner is looking for."""

    SEEKING_WORK = "seeking_work"
    SEEKING_HELP = "seeking_help"

    @classmethod
    def from_search_type(cls, search_type: str) -> "ListingKind":
        """Map a searcher's intent to the kind of listing they want to see.

        Searching for ``jobs`` means browsing seeking-help listings; searching
        for ``talent`` means browsing seeking-work listings. Kind values are
        accepted as-is.
        """
        value = search_type.strip().lower().replace("-", "_")
        if value in ("jobs", "job"):
            return cls.SEEKING_HELP
        if value in ("talent", "available"):
            return cls.SEEKING_WORK
        return cls(value)


class RateType(str, Enum):
    """How a listing's rate is quoted."""

    HOURLY = "hourly"
    FIXED = "fixed"
    NEGOTIABLE = "negotiable"


class NotificationKind(str, Enum):
    """Notification categories."""

    NEW_MATCH = "new_match"
    MESSAGE_RECEIVED = "message_received"
    LISTING_EXPIRING = "listing_expiring"
    CONTACT_SHARED = "contact_shared"


class DeliveryState(str, Enum):
    """Notification delivery state machine.

    pending -> delivered (terminal)
    pending -> pending (failed attempt, retry scheduled)
    pending -> failed_permanently (terminal, attempts exhausted)
    """

    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED_PERMANENTLY = "failed_permanently"


def normalize_skills(skills: Optional[List[str]]) -> List[str]:
    """Lower-case, strip and de-duplicate skill tags keeping first-seen order."""
    normalized: List[str] = []
    for skill in skills or []:
        if not isinstance(skill, str):
            continue
        tag = skill.strip().lower()
        if tag and tag not in normalized:
            normalized.append(tag)
    return normalized


class UserProfile(BaseModel):
    """Public profile subset used in ranking context and match attribution."""

    id: str
    name: str
    headline: Optional[str] = None


class User(BaseModel):
    """A marketplace user as known to this service.

    The email address is a delivery address only and is never part of a
    ``UserProfile``.
    """

    id: str = Field(..., description="Opaque user id")
    name: str = Field(..., description="Display name")
    headline: Optional[str] = Field(None, description="Short professional headline")
    email: Optional[str] = Field(None, description="Delivery address for notifications")

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Field cannot be empty or whitespace-only")
        return v.strip()

    def profile(self) -> UserProfile:
        return UserProfile(id=self.id, name=self.name, headline=self.headline)


class Listing(BaseModel):
    """A job or availability posting.

    A listing is eligible for matching iff it is active and its expiry is
    unset or in the future.
    """

    id: str = Field(..., description="Opaque listing id")
    owner_id: str = Field(..., description="User id of the poster")
    kind: ListingKind
    title: str
    description: str = ""
    skills: List[str] = Field(default_factory=list, description="Lower-cased skill tags")
    rate_min: Optional[int] = Field(None, ge=0)
    rate_max: Optional[int] = Field(None, ge=0)
    rate_type: Optional[RateType] = None
    remote: bool = True
    location: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    expires_at: Optional[datetime] = None
    active: bool = True
    owner: Optional[UserProfile] = Field(None, description="Poster profile, when loaded")

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Field cannot be empty or whitespace-only")
        return v.strip()

    @field_validator("skills", mode="before")
    @classmethod
    def normalize_skill_tags(cls, v: Optional[List[str]]) -> List[str]:
        return normalize_skills(v)

    @field_validator("location")
    @classmethod
    def strip_location(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        stripped = v.strip()
        return stripped if stripped else None

    @field_validator("created_at", "expires_at")
    @classmethod
    def to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @model_validator(mode="after")
    def check_rate_range(self):
        if self.rate_min is not None and self.rate_max is not None and self.rate_min > self.rate_max:
            raise ValueError("rate_min must be <= rate_max")
        return self

    def is_eligible(self, now: Optional[datetime] = None) -> bool:
        """True when the listing may be matched at ``now``."""
        if not self.active:
            return False
        if self.expires_at is None:
            return True
        return self.expires_at > (ensure_utc(now) or utc_now())


class MatchResult(BaseModel):
    """One ranked listing with its score and human-readable reasons."""

    listing: Listing
    score: float = Field(..., ge=0.0, le=1.0)
    reasons: List[str] = Field(default_factory=list)


class RankingOutcome(BaseModel):
    """Ordered match results plus how they were produced.

    ``degraded`` is true when a ranking model was configured but the lexical
    fallback answered instead.
    """

    results: List[MatchResult] = Field(default_factory=list)
    backend: str = Field("lexical", description="Name of the ranker that produced results")
    degraded: bool = False


class SavedQuery(BaseModel):
    """A standing search definition owned by one user."""

    id: str
    owner_id: str
    name: str
    kind: ListingKind
    query: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    rate_min: Optional[int] = Field(None, ge=0)
    rate_max: Optional[int] = Field(None, ge=0)
    remote_only: bool = False
    location: Optional[str] = None
    notify_by_email: bool = True
    last_evaluated_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    active: bool = True

    @field_validator("skills", mode="before")
    @classmethod
    def normalize_skill_tags(cls, v: Optional[List[str]]) -> List[str]:
        return normalize_skills(v)

    @field_validator("last_evaluated_at", "created_at")
    @classmethod
    def to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def has_rate_bounds(self) -> bool:
        return self.rate_min is not None or self.rate_max is not None


class Notification(BaseModel):
    """A message queued for one recipient.

    For ``new_match`` notifications ``saved_query_id`` and ``listing_id`` are
    set and the (recipient, kind, saved_query_id, listing_id) tuple is unique
    in the store. ``delivered_at`` is set iff ``state`` is delivered. Rows with
    ``email_enabled`` false are inbox-only and never emailed.
    """

    id: str
    recipient_id: str
    kind: NotificationKind
    title: str
    body: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    saved_query_id: Optional[str] = None
    listing_id: Optional[str] = None
    email_enabled: bool = True
    state: DeliveryState = DeliveryState.PENDING
    attempts: int = Field(0, ge=0)
    last_attempt_at: Optional[datetime] = None
    next_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("last_attempt_at", "next_attempt_at", "delivered_at", "created_at")
    @classmethod
    def to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @model_validator(mode="after")
    def check_delivered_at(self):
        if (self.state == DeliveryState.DELIVERED) != (self.delivered_at is not None):
            raise ValueError("delivered_at must be set iff state is delivered")
        return self
