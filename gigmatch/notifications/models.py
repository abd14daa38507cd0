"""Result types and exceptions for notification delivery."""

from dataclasses import dataclass, field
from typing import List


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class NotificationTemplateError(NotificationError):
    """Raised when template rendering fails due to configuration or missing variables."""

    pass


class DeliveryFailed(NotificationError):
    """Raised by a transport when a message could not be handed off.

    The dispatcher absorbs it, counts the attempt and schedules a retry.
    """

    pass


class SMTPDeliveryError(DeliveryFailed):
    """Raised when the SMTP conversation fails."""

    pass


@dataclass
class DeliveryReport:
    """Outcome of one dispatcher drain.

    Attributes:
        sent: Notifications delivered in this drain
        errors: One readable line per notification that was not delivered
        failed_permanently: Notifications that exhausted their attempts
        fetched: Pending notifications picked up
        skipped: True when another drain was already running
    """

    sent: int = 0
    errors: List[str] = field(default_factory=list)
    failed_permanently: int = 0
    fetched: int = 0
    skipped: bool = False

    @property
    def had_errors(self) -> bool:
        return bool(self.errors)
