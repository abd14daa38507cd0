"""Notification dispatcher: drains the pending queue through a transport.

Delivery is at-least-once. A notification becomes delivered only after the
transport accepted it; failures are counted, retried with exponential
backoff and, once attempts are exhausted, parked as failed_permanently.
"""

import threading
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import uuid4

from gigmatch.config.models import DispatchConfig, EmailConfig
from gigmatch.domain.models import Notification, User
from gigmatch.logging import get_logger
from gigmatch.logging.context import log_context
from gigmatch.persistence import (
    Database,
    NotificationRepository,
    PersistenceError,
    UserRepository,
)
from gigmatch.utils.timestamps import utc_now

from .models import DeliveryFailed, DeliveryReport, NotificationTemplateError
from .payloads import build_email_context
from .templates import TemplateRenderer
from .transport import DeliveryTransport

logger = get_logger(__name__, component="dispatcher")


def retry_delay_seconds(attempts: int, config: DispatchConfig) -> float:
    """Backoff before the next try after ``attempts`` failed attempts.

    Example:
        >>> retry_delay_seconds(3, DispatchConfig(retry_initial_delay=60))
        240.0
    """
    delay = config.retry_initial_delay * (config.retry_backoff_multiplier ** max(attempts - 1, 0))
    return float(min(delay, config.retry_max_delay))


class NotificationDispatcher:
    """Delivers pending notifications in creation order.

    Only one drain runs at a time per process; a concurrent call returns a
    skipped report. Running several dispatcher processes against one store
    is not supported.
    """

    def __init__(
        self,
        database: Database,
        transport: DeliveryTransport,
        dispatch_config: Optional[DispatchConfig] = None,
        email_config: Optional[EmailConfig] = None,
        template_renderer: Optional[TemplateRenderer] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.database = database
        self.transport = transport
        self.dispatch_config = dispatch_config or DispatchConfig()
        self.email_config = email_config or EmailConfig()
        self.template_renderer = template_renderer or TemplateRenderer()
        self.clock = clock
        self._lock = threading.Lock()

    def drain_pending(self, limit: Optional[int] = None) -> DeliveryReport:
        """Deliver up to ``limit`` due pending notifications, oldest first.

        One notification's failure never stops the batch; every problem is
        listed in ``DeliveryReport.errors``.
        """
        if limit is None:
            limit = self.dispatch_config.batch_limit
        run_id = uuid4().hex

        if not self._lock.acquire(blocking=False):
            with log_context(run_id=run_id):
                logger.warning(
                    "Dispatch skipped: previous drain still in progress",
                    extra={"event": "dispatch.run.skipped", "reason": "lock_held"},
                )
            return DeliveryReport(skipped=True)

        try:
            with log_context(run_id=run_id):
                return self._drain(limit)
        finally:
            self._lock.release()

    def _drain(self, limit: int) -> DeliveryReport:
        report = DeliveryReport()

        try:
            with self.database.session() as session:
                pending = NotificationRepository(session).fetch_pending(limit, self.clock())
                recipients = UserRepository(session).get_recipients(
                    n.recipient_id for n in pending
                )
        except PersistenceError as e:
            logger.error(
                f"Could not load pending notifications: {e}",
                extra={"event": "dispatch.fetch.failed", "error_type": type(e).__name__},
            )
            report.errors.append(f"Failed to load pending notifications: {e}")
            return report

        report.fetched = len(pending)
        logger.info(
            f"Dispatching {len(pending)} pending notifications",
            extra={"event": "dispatch.run.started", "pending_count": len(pending), "limit": limit},
        )

        for notification in pending:
            with log_context(notification_id=notification.id):
                try:
                    self._dispatch_one(notification, recipients.get(notification.recipient_id), report)
                except Exception as e:
                    logger.error(
                        f"Unexpected error dispatching notification {notification.id}: {e}",
                        exc_info=True,
                        extra={"event": "dispatch.delivery.error"},
                    )
                    report.errors.append(f"Notification {notification.id}: {e}")

        logger.info(
            f"Dispatch complete: {report.sent} sent, {len(report.errors)} errors, "
            f"{report.failed_permanently} failed permanently",
            extra={
                "event": "dispatch.run.completed",
                "sent": report.sent,
                "error_count": len(report.errors),
                "failed_permanently": report.failed_permanently,
            },
        )
        return report

    def _dispatch_one(
        self, notification: Notification, recipient: Optional[User], report: DeliveryReport
    ) -> None:
        if recipient is None or not recipient.email:
            message = f"No email for user {notification.recipient_id}"
            with self.database.session() as session:
                NotificationRepository(session).record_skip(notification.id, message)
            logger.info(
                message,
                extra={"event": "dispatch.delivery.no_address", "recipient_id": notification.recipient_id},
            )
            report.errors.append(f"Notification {notification.id}: {message}")
            return

        try:
            rendered = self.template_renderer.render(
                build_email_context(notification, recipient, self.email_config)
            )
            self.transport.deliver(
                recipient.email,
                rendered["subject"],
                rendered["text_body"],
                rendered["html_body"],
            )
        except (DeliveryFailed, NotificationTemplateError) as e:
            self._record_failure(notification, str(e), report)
            return
        except Exception as e:
            self._record_failure(notification, f"{type(e).__name__}: {e}", report)
            return

        delivered_at = self.clock()
        with self.database.session() as session:
            updated = NotificationRepository(session).mark_delivered(notification.id, delivered_at)

        if not updated:
            logger.warning(
                f"Notification {notification.id} was no longer pending after delivery",
                extra={"event": "dispatch.delivery.state_conflict"},
            )

        report.sent += 1
        logger.info(
            f"Notification {notification.id} delivered",
            extra={
                "event": "dispatch.delivery.succeeded",
                "kind": notification.kind.value,
                "attempt": notification.attempts + 1,
            },
        )

    def _record_failure(self, notification: Notification, error: str, report: DeliveryReport) -> None:
        attempts = notification.attempts + 1
        permanent = attempts >= self.dispatch_config.max_attempts
        attempted_at = self.clock()
        next_attempt_at = None
        if not permanent:
            next_attempt_at = attempted_at + timedelta(
                seconds=retry_delay_seconds(attempts, self.dispatch_config)
            )

        with self.database.session() as session:
            NotificationRepository(session).record_failure(
                notification.id,
                error,
                attempted_at=attempted_at,
                next_attempt_at=next_attempt_at,
                permanent=permanent,
            )

        report.errors.append(f"Notification {notification.id}: {error}")

        if permanent:
            report.failed_permanently += 1
            logger.error(
                f"Notification {notification.id} failed permanently after {attempts} attempts: {error}",
                extra={
                    "event": "dispatch.delivery.failed_permanently",
                    "recipient_id": notification.recipient_id,
                    "kind": notification.kind.value,
                    "attempts": attempts,
                },
            )
        else:
            logger.warning(
                f"Delivery failed for notification {notification.id} "
                f"(attempt {attempts}/{self.dispatch_config.max_attempts}): {error}",
                extra={
                    "event": "dispatch.delivery.failed",
                    "attempt": attempts,
                    "next_attempt_at": next_attempt_at.isoformat(),
                },
            )
