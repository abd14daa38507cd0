"""Unit tests for the notification dispatcher."""

from datetime import timedelta
from unittest.mock import Mock

import pytest

from gigmatch.config.models import DispatchConfig, EmailConfig
from gigmatch.domain.models import DeliveryState
from gigmatch.notifications import (
    NotificationDispatcher,
    NotificationQueue,
    NotificationTemplateError,
    retry_delay_seconds,
)
from gigmatch.persistence import NotificationRepository
from tests.helpers import FakeTransport, FixedClock, make_notification, memory_database, seed_user
from tests.helpers.factories import BASE_TIME


@pytest.fixture
def database():
    db = memory_database()
    seed_user(db, "ana", name="Ana", email="ana@example.com")
    seed_user(db, "ben", name="Ben", email="ben@example.com")
    seed_user(db, "cy", name="Cy", email="cy@example.com")
    seed_user(db, "dee", name="Dee", email=None)
    yield db
    db.close()


@pytest.fixture
def clock():
    return FixedClock(BASE_TIME)


def queue(database, notification_id, recipient_id, minutes_ago=0):
    with database.session() as session:
        NotificationRepository(session).add(
            make_notification(
                notification_id,
                recipient_id=recipient_id,
                created_at=BASE_TIME - timedelta(minutes=minutes_ago),
            )
        )


def stored(database, notification_id):
    with database.session() as session:
        return NotificationRepository(session).get(notification_id)


def make_dispatcher(database, transport, clock, **dispatch_overrides):
    return NotificationDispatcher(
        database,
        transport,
        dispatch_config=DispatchConfig(**dispatch_overrides),
        email_config=EmailConfig(subject_prefix="[opengig]"),
        clock=clock,
    )


class TestRetryDelay:
    """Tests for the backoff schedule."""

    def test_exponential_growth(self):
        config = DispatchConfig(retry_initial_delay=60, retry_backoff_multiplier=2.0)
        assert [retry_delay_seconds(n, config) for n in (1, 2, 3)] == [60.0, 120.0, 240.0]

    def test_capped_at_max_delay(self):
        config = DispatchConfig(retry_initial_delay=60, retry_max_delay=300)
        assert retry_delay_seconds(10, config) == 300.0


class TestDrainPending:
    """Tests for draining the pending queue."""

    def test_one_failure_does_not_stop_the_batch(self, database, clock):
        queue(database, "n-1", "ana", minutes_ago=3)
        queue(database, "n-2", "ben", minutes_ago=2)
        queue(database, "n-3", "cy", minutes_ago=1)
        transport = FakeTransport(failing={"ben@example.com"})

        report = make_dispatcher(database, transport, clock).drain_pending()

        assert report.sent == 2
        assert len(report.errors) == 1
        assert "n-2" in report.errors[0]
        assert transport.attempted == ["ana@example.com", "ben@example.com", "cy@example.com"]

        assert stored(database, "n-1").state == DeliveryState.DELIVERED
        assert stored(database, "n-1").delivered_at == BASE_TIME
        assert stored(database, "n-2").state == DeliveryState.PENDING
        assert stored(database, "n-3").state == DeliveryState.DELIVERED

    def test_failure_schedules_retry_with_backoff(self, database, clock):
        queue(database, "n-1", "ben")
        transport = FakeTransport(failing={"ben@example.com"})
        dispatcher = make_dispatcher(database, transport, clock, retry_initial_delay=60)

        dispatcher.drain_pending()
        first = stored(database, "n-1")
        assert first.attempts == 1
        assert first.next_attempt_at == BASE_TIME + timedelta(seconds=60)
        assert "Mailbox unavailable" in first.last_error

        # Not due yet: nothing is attempted
        clock.advance(seconds=30)
        assert dispatcher.drain_pending().fetched == 0

        clock.advance(seconds=30)
        dispatcher.drain_pending()
        second = stored(database, "n-1")
        assert second.attempts == 2
        assert second.next_attempt_at == clock.now + timedelta(seconds=120)

    def test_exhausted_attempts_fail_permanently(self, database, clock):
        queue(database, "n-1", "ben")
        transport = FakeTransport(failing={"ben@example.com"})
        dispatcher = make_dispatcher(database, transport, clock, max_attempts=2, retry_initial_delay=0)

        first = dispatcher.drain_pending()
        second = dispatcher.drain_pending()
        third = dispatcher.drain_pending()

        assert first.failed_permanently == 0
        assert second.failed_permanently == 1
        assert third.fetched == 0

        notification = stored(database, "n-1")
        assert notification.state == DeliveryState.FAILED_PERMANENTLY
        assert notification.attempts == 2
        assert notification.delivered_at is None

    def test_missing_address_stays_pending_without_attempt(self, database, clock):
        queue(database, "n-1", "dee")
        transport = FakeTransport()

        report = make_dispatcher(database, transport, clock).drain_pending()

        assert report.sent == 0
        assert report.errors == ["Notification n-1: No email for user dee"]
        assert transport.attempted == []

        notification = stored(database, "n-1")
        assert notification.state == DeliveryState.PENDING
        assert notification.attempts == 0
        assert notification.last_error == "No email for user dee"

    def test_rendered_email_is_handed_to_transport(self, database, clock):
        NotificationQueue(database).enqueue_contact_shared("ana", "ben", "share-1", sharer_name="Ben")
        transport = FakeTransport()

        make_dispatcher(database, transport, clock).drain_pending()

        message = transport.sent[0]
        assert message["address"] == "ana@example.com"
        assert message["subject"] == "[opengig] Contact info shared with you"
        assert "Hi Ana" in message["text_body"]
        assert "Ben shared their contact information with you" in message["text_body"]
        assert "Ben shared their contact information with you" in message["html_body"]

    def test_template_errors_count_as_failed_attempts(self, database, clock):
        queue(database, "n-1", "ana")
        renderer = Mock()
        renderer.render.side_effect = NotificationTemplateError("missing variable")
        dispatcher = NotificationDispatcher(
            database, FakeTransport(), template_renderer=renderer, clock=clock
        )

        report = dispatcher.drain_pending()

        assert report.sent == 0
        assert stored(database, "n-1").attempts == 1

    def test_unexpected_transport_errors_count_as_failed_attempts(self, database, clock):
        queue(database, "n-1", "ana")
        transport = Mock()
        transport.deliver.side_effect = ConnectionResetError("connection reset by peer")
        dispatcher = make_dispatcher(database, transport, clock, max_attempts=2, retry_initial_delay=0)

        first = dispatcher.drain_pending()

        assert first.errors == ["Notification n-1: ConnectionResetError: connection reset by peer"]
        notification = stored(database, "n-1")
        assert notification.attempts == 1
        assert notification.next_attempt_at == BASE_TIME

        second = dispatcher.drain_pending()
        third = dispatcher.drain_pending()

        assert second.failed_permanently == 1
        assert third.fetched == 0
        assert stored(database, "n-1").state == DeliveryState.FAILED_PERMANENTLY
        assert transport.deliver.call_count == 2

    def test_zero_limit_delivers_nothing(self, database, clock):
        queue(database, "n-1", "ana")
        transport = FakeTransport()

        report = make_dispatcher(database, transport, clock).drain_pending(limit=0)

        assert report.fetched == 0
        assert transport.attempted == []
        assert stored(database, "n-1").state == DeliveryState.PENDING

    def test_limit_takes_oldest_first(self, database, clock):
        queue(database, "n-new", "ana", minutes_ago=1)
        queue(database, "n-old", "ben", minutes_ago=5)
        transport = FakeTransport()

        report = make_dispatcher(database, transport, clock).drain_pending(limit=1)

        assert report.sent == 1
        assert transport.attempted == ["ben@example.com"]

    def test_concurrent_drain_is_skipped(self, database, clock):
        dispatcher = make_dispatcher(database, FakeTransport(), clock)
        dispatcher._lock.acquire()
        try:
            report = dispatcher.drain_pending()
        finally:
            dispatcher._lock.release()

        assert report.skipped is True


class TestNotificationQueue:
    """Tests for collaborator-raised notifications."""

    def test_message_preview_is_cut(self, database):
        notification = NotificationQueue(database).enqueue_message_received(
            "ana", "conv-1", "ben", "msg-1", "x" * 150
        )

        assert notification.body == "x" * 100 + "..."
        assert notification.metadata == {
            "conversation_id": "conv-1",
            "sender_id": "ben",
            "message_id": "msg-1",
        }
        assert stored(database, notification.id).state == DeliveryState.PENDING

    def test_contact_share_without_name(self, database):
        notification = NotificationQueue(database).enqueue_contact_shared("ana", "ben", "share-1")
        assert notification.body == "Someone shared their contact information with you"
