"""Alert sweeps over saved queries and expiring listings."""

import threading
import time
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import uuid4

from gigmatch.config.models import AlertsConfig
from gigmatch.domain.models import Listing, Notification, NotificationKind, SavedQuery
from gigmatch.logging import get_logger
from gigmatch.logging.context import log_context
from gigmatch.notifications.payloads import listing_expiring_content, new_match_content
from gigmatch.persistence import (
    Database,
    ListingRepository,
    NotificationRepository,
    PersistenceError,
    SavedQueryRepository,
    new_id,
)
from gigmatch.registry.predicate import evaluate_predicate
from gigmatch.utils.timestamps import utc_now

from .models import ExpirySweepSummary, SavedQueryRunStats, SweepSummary

logger = get_logger(__name__, component="alerts")


class AlertSweeper:
    """
    Re-evaluates every active saved query and queues new-match notifications.

    Each saved query is evaluated in its own transaction: the eligible
    listing snapshot, the deduplicated inserts and the cursor update commit
    together or not at all. A failing saved query is recorded in the summary
    and the sweep moves on to the next one.
    """

    def __init__(
        self,
        database: Database,
        alerts_config: Optional[AlertsConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.database = database
        self.alerts_config = alerts_config or AlertsConfig()
        self.clock = clock
        self._lock = threading.Lock()
        self._expiry_lock = threading.Lock()

    def sweep(self) -> SweepSummary:
        """
        Run one sweep over all active saved queries.

        Returns:
            SweepSummary with per-saved-query statistics. A sweep that could
            not even load its saved queries returns an empty summary carrying
            the error.
        """
        run_started_at = self.clock()
        run_id = uuid4().hex

        if not self._lock.acquire(blocking=False):
            with log_context(run_id=run_id):
                logger.warning(
                    "Sweep skipped: previous sweep still in progress",
                    extra={"event": "sweep.run.skipped", "reason": "lock_held"},
                )
            return SweepSummary(
                run_started_at=run_started_at,
                run_finished_at=self.clock(),
                skipped=True,
            )

        try:
            with log_context(run_id=run_id):
                return self._sweep(run_started_at)
        finally:
            self._lock.release()

    def _sweep(self, run_started_at: datetime) -> SweepSummary:
        try:
            with self.database.session() as session:
                saved_queries = SavedQueryRepository(session).list_active()
        except PersistenceError as e:
            logger.error(
                f"Could not load active saved queries: {e}",
                extra={"event": "sweep.load.failed", "error_type": type(e).__name__},
            )
            return SweepSummary(
                run_started_at=run_started_at,
                run_finished_at=self.clock(),
                errors=[f"Failed to load saved queries: {e}"],
            )

        logger.info(
            f"Sweep started over {len(saved_queries)} active saved queries",
            extra={"event": "sweep.run.started", "saved_query_count": len(saved_queries)},
        )

        query_stats: List[SavedQueryRunStats] = []
        for saved_query in saved_queries:
            query_stats.append(self._evaluate(saved_query))

        summary = SweepSummary(
            run_started_at=run_started_at,
            run_finished_at=self.clock(),
            query_stats=query_stats,
        )

        logger.info(
            "Sweep completed",
            extra={
                "event": "sweep.run.completed",
                "duration_ms": int(summary.total_duration_seconds * 1000),
                "queries_evaluated": summary.queries_evaluated,
                "total_matched": summary.total_matched,
                "notifications_created": summary.notifications_created,
                "duplicates_skipped": summary.duplicates_skipped,
                "error_count": len(summary.errors),
            },
        )
        return summary

    def _evaluate(self, saved_query: SavedQuery) -> SavedQueryRunStats:
        started = time.time()
        stats = SavedQueryRunStats(saved_query_id=saved_query.id)

        with log_context(saved_query_id=saved_query.id):
            try:
                evaluated_at = self.clock()
                with self.database.session() as session:
                    candidates = ListingRepository(session).fetch_eligible_listings(
                        saved_query.kind,
                        exclude_owner=saved_query.owner_id,
                        limit=None,
                        now=evaluated_at,
                    )
                    stats.candidate_count = len(candidates)

                    matches = [
                        listing for listing in candidates if evaluate_predicate(saved_query, listing)
                    ]
                    stats.matched_count = len(matches)

                    notifications = NotificationRepository(session)
                    for listing in matches:
                        if self._queue_match(notifications, saved_query, listing, evaluated_at):
                            stats.notified_count += 1
                        else:
                            stats.duplicate_count += 1

                    stats.cursor_advanced = SavedQueryRepository(session).advance_cursor(
                        saved_query.id, evaluated_at
                    )

                logger.debug(
                    f"Saved query {saved_query.id}: {stats.matched_count} of "
                    f"{stats.candidate_count} listings match, {stats.notified_count} new",
                    extra={
                        "event": "sweep.query.evaluated",
                        "matched": stats.matched_count,
                        "notified": stats.notified_count,
                        "duplicates": stats.duplicate_count,
                    },
                )

            except Exception as e:
                stats.had_errors = True
                stats.error_message = str(e)
                logger.error(
                    f"Failed to evaluate saved query {saved_query.id}: {e}",
                    exc_info=True,
                    extra={"event": "sweep.query.failed", "error_type": type(e).__name__},
                )

        stats.duration_seconds = time.time() - started
        return stats

    @staticmethod
    def _queue_match(
        notifications: NotificationRepository,
        saved_query: SavedQuery,
        listing: Listing,
        created_at: datetime,
    ) -> bool:
        content = new_match_content(saved_query, listing)
        created = notifications.create_new_match(
            recipient_id=saved_query.owner_id,
            saved_query_id=saved_query.id,
            listing_id=listing.id,
            title=content.title,
            body=content.body,
            metadata=content.metadata,
            created_at=created_at,
            email_enabled=saved_query.notify_by_email,
        )
        return created is not None

    def sweep_expiring_listings(self, window_days: Optional[int] = None) -> ExpirySweepSummary:
        """
        Warn owners about listings that expire within ``window_days``.

        A listing gets at most one warning per window: if a listing_expiring
        notification for it was queued within the last ``window_days`` it is
        left alone.
        """
        window = timedelta(days=window_days or self.alerts_config.expiring_window_days)
        summary = ExpirySweepSummary()

        if not self._expiry_lock.acquire(blocking=False):
            logger.warning(
                "Expiry sweep skipped: previous run still in progress",
                extra={"event": "expiry.run.skipped", "reason": "lock_held"},
            )
            summary.skipped = True
            return summary

        try:
            with log_context(run_id=uuid4().hex):
                now = self.clock()
                try:
                    with self.database.session() as session:
                        expiring = ListingRepository(session).fetch_expiring(now + window, now=now)
                except PersistenceError as e:
                    logger.error(
                        f"Could not load expiring listings: {e}",
                        extra={"event": "expiry.load.failed"},
                    )
                    summary.errors.append(f"Failed to load expiring listings: {e}")
                    return summary

                summary.expiring_count = len(expiring)
                for listing in expiring:
                    try:
                        if self._warn_owner(listing, now, window):
                            summary.notified_count += 1
                        else:
                            summary.already_notified_count += 1
                    except PersistenceError as e:
                        logger.error(
                            f"Failed to queue expiry notice for listing {listing.id}: {e}",
                            extra={"event": "expiry.listing.failed", "listing_id": listing.id},
                        )
                        summary.errors.append(f"Listing {listing.id}: {e}")

                logger.info(
                    f"Expiry sweep queued {summary.notified_count} notices "
                    f"for {summary.expiring_count} expiring listings",
                    extra={
                        "event": "expiry.run.completed",
                        "expiring": summary.expiring_count,
                        "notified": summary.notified_count,
                        "already_notified": summary.already_notified_count,
                    },
                )
                return summary
        finally:
            self._expiry_lock.release()

    def _warn_owner(self, listing: Listing, now: datetime, window: timedelta) -> bool:
        with self.database.session() as session:
            notifications = NotificationRepository(session)
            if notifications.exists_since(
                listing.owner_id, NotificationKind.LISTING_EXPIRING, listing.id, now - window
            ):
                return False

            content = listing_expiring_content(listing, now)
            notifications.add(
                Notification(
                    id=new_id(),
                    recipient_id=listing.owner_id,
                    kind=NotificationKind.LISTING_EXPIRING,
                    title=content.title,
                    body=content.body,
                    metadata=content.metadata,
                    listing_id=listing.id,
                    created_at=now,
                )
            )
            return True
