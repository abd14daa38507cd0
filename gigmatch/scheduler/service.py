"""Background scheduler that triggers alert cycles at a fixed interval."""

import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from gigmatch.logging import get_logger

logger = get_logger(__name__, component="scheduler")

ALERT_CYCLE_JOB_ID = "alert-cycle"


class SchedulerService:
    """
    Runs one alert cycle (sweep, expiry notices, dispatch) every interval.

    APScheduler's BackgroundScheduler runs the cycle on a worker thread so
    the main thread stays free for signal handling. Overlapping cycles are
    prevented by ``max_instances=1``; late cycles are coalesced into one.
    """

    def __init__(
        self,
        cycle_callable: Callable[[], None],
        interval_seconds: int,
        shutdown_event: Optional[threading.Event] = None,
    ):
        self.cycle_callable = cycle_callable
        self.interval_seconds = interval_seconds
        self.shutdown_event = shutdown_event

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": interval_seconds,
            },
            timezone=timezone.utc,
        )

    def start(self) -> None:
        """Register the alert cycle and start the scheduler; the first cycle runs immediately."""
        next_run = datetime.now(timezone.utc)
        self.scheduler.add_job(
            func=self.cycle_callable,
            trigger=IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc),
            id=ALERT_CYCLE_JOB_ID,
            name="Saved search alert cycle",
            replace_existing=True,
            next_run_time=next_run,
        )
        self.scheduler.start()

        logger.info(
            f"Scheduler started with interval: {self.interval_seconds} seconds",
            extra={
                "event": "scheduler.started",
                "interval_seconds": self.interval_seconds,
                "next_run_time": next_run.isoformat(),
            },
        )

    def shutdown(self, wait: bool = False) -> None:
        """
        Stop the scheduler.

        Args:
            wait: If True, block until a running cycle finishes
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self) -> None:
        """Run one cycle synchronously in the calling thread."""
        logger.info("Triggering immediate alert cycle", extra={"event": "scheduler.trigger_now"})
        self.cycle_callable()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job(ALERT_CYCLE_JOB_ID)
        return job.next_run_time if job else None
