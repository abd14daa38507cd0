"""Notification content builders and email template context.

Each builder returns the title, body and metadata stored on a notification
row. ``build_email_context`` turns a stored notification into the variables
the email templates expect.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from gigmatch.config.models import EmailConfig
from gigmatch.domain.models import Listing, Notification, SavedQuery, User
from gigmatch.utils.text import rate_label, truncate_text
from gigmatch.utils.timestamps import format_timestamp

MESSAGE_PREVIEW_CHARS = 100


@dataclass
class NotificationContent:
    """Title, body and metadata for a notification about to be queued."""

    title: str
    body: str
    metadata: Dict[str, Any] = field(default_factory=dict)


def describe_listing(listing: Listing) -> str:
    """Short one-line description, e.g. ``Senior React Developer ($70-90, remote)``."""
    where = "remote" if listing.remote else (listing.location or "on-site")
    return f"{listing.title} ({rate_label(listing.rate_min, listing.rate_max)}, {where})"


def new_match_content(saved_query: SavedQuery, listing: Listing) -> NotificationContent:
    """Content for a listing newly surfaced by a saved query."""
    body = f'{describe_listing(listing)} matches your saved search "{saved_query.name}".'
    if listing.owner is not None:
        body += f" Posted by {listing.owner.name}."

    return NotificationContent(
        title=f'New match for "{saved_query.name}"',
        body=body,
        metadata={
            "saved_query_id": saved_query.id,
            "listing_id": listing.id,
            "listing_title": listing.title,
        },
    )


def listing_expiring_content(listing: Listing, now: datetime) -> NotificationContent:
    """Content warning an owner that their listing is about to expire."""
    days_left = max((listing.expires_at - now).days, 0)
    if days_left == 0:
        when = "today"
    elif days_left == 1:
        when = "in 1 day"
    else:
        when = f"in {days_left} days"

    return NotificationContent(
        title="Listing expiring soon",
        body=f'Your listing "{listing.title}" expires {when}',
        metadata={
            "listing_id": listing.id,
            "expires_at": format_timestamp(listing.expires_at),
        },
    )


def message_received_content(
    conversation_id: str, sender_id: str, message_id: str, content: str
) -> NotificationContent:
    """Content for a direct message, previewing its first characters."""
    preview = content[:MESSAGE_PREVIEW_CHARS]
    if len(content) > MESSAGE_PREVIEW_CHARS:
        preview += "..."

    return NotificationContent(
        title="New message received",
        body=preview,
        metadata={
            "conversation_id": conversation_id,
            "sender_id": sender_id,
            "message_id": message_id,
        },
    )


def contact_shared_content(
    sharer_id: str, share_id: str, sharer_name: Optional[str] = None
) -> NotificationContent:
    """Content telling a user someone shared contact details with them."""
    return NotificationContent(
        title="Contact info shared with you",
        body=f"{sharer_name or 'Someone'} shared their contact information with you",
        metadata={"sharer_id": sharer_id, "share_id": share_id},
    )


def build_email_context(
    notification: Notification, recipient: User, email_config: EmailConfig
) -> Dict[str, Any]:
    """Template variables for one notification email.

    Returns:
        Dictionary with keys:
        - subject_prefix, title, body, kind: notification text
        - recipient_name: greeting name
        - action_url: optional link, None when not configured
        - preview: body cut for inbox previews
        - notification_id, created_at: identifiers for the footer
    """
    return {
        "subject_prefix": email_config.subject_prefix,
        "title": notification.title,
        "body": notification.body,
        "kind": notification.kind.value,
        "recipient_name": recipient.name,
        "action_url": email_config.action_url,
        "preview": truncate_text(notification.body, 140),
        "notification_id": notification.id,
        "created_at": format_timestamp(notification.created_at),
    }
