"""Domain models for gigmatch."""

from .models import (
    DeliveryState,
    Listing,
    ListingKind,
    MatchResult,
    Notification,
    NotificationKind,
    RankingOutcome,
    RateType,
    SavedQuery,
    User,
    UserProfile,
    normalize_skills,
)

__all__ = [
    "Listing",
    "ListingKind",
    "RateType",
    "User",
    "UserProfile",
    "MatchResult",
    "RankingOutcome",
    "SavedQuery",
    "Notification",
    "NotificationKind",
    "DeliveryState",
    "normalize_skills",
]
