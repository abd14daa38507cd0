"""Notification delivery: templates, SMTP transport and the pending-queue dispatcher.

Public API:
    - NotificationDispatcher: drains pending notifications with bounded retries
    - NotificationQueue: queues message/contact notifications from collaborators
    - DeliveryTransport / SMTPTransport: outbound channels
    - TemplateRenderer: Jinja2 subject/html/text rendering
    - DeliveryReport: per-drain outcome
"""

from .dispatcher import NotificationDispatcher, retry_delay_seconds
from .models import (
    DeliveryFailed,
    DeliveryReport,
    NotificationError,
    NotificationTemplateError,
    SMTPDeliveryError,
)
from .payloads import (
    NotificationContent,
    build_email_context,
    contact_shared_content,
    listing_expiring_content,
    message_received_content,
    new_match_content,
)
from .queue import NotificationQueue
from .smtp_client import SMTPClient
from .templates import TemplateRenderer
from .transport import DeliveryTransport, SMTPTransport

__all__ = [
    "NotificationDispatcher",
    "NotificationQueue",
    "retry_delay_seconds",
    "DeliveryTransport",
    "SMTPTransport",
    "SMTPClient",
    "TemplateRenderer",
    "DeliveryReport",
    "NotificationContent",
    "build_email_context",
    "new_match_content",
    "listing_expiring_content",
    "message_received_content",
    "contact_shared_content",
    "NotificationError",
    "NotificationTemplateError",
    "DeliveryFailed",
    "SMTPDeliveryError",
]
