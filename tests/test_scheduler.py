"""Unit tests for the scheduler service.

Covers job defaults, the immediate first cycle, lifecycle and
synchronous triggering.
"""

import threading
import time
from unittest.mock import Mock

from gigmatch.scheduler import ALERT_CYCLE_JOB_ID, SchedulerService


class TestSchedulerService:
    """Test suite for SchedulerService."""

    def test_initialization(self):
        cycle = Mock()
        shutdown_event = threading.Event()

        scheduler = SchedulerService(cycle_callable=cycle, interval_seconds=60, shutdown_event=shutdown_event)

        assert scheduler.interval_seconds == 60
        assert scheduler.cycle_callable is cycle
        assert scheduler.shutdown_event is shutdown_event
        assert not scheduler.is_running()
        assert scheduler.get_next_run_time() is None

    def test_job_defaults_prevent_overlap(self):
        scheduler = SchedulerService(cycle_callable=Mock(), interval_seconds=900)

        assert scheduler.scheduler._job_defaults["max_instances"] == 1
        assert scheduler.scheduler._job_defaults["coalesce"] is True
        assert scheduler.scheduler._job_defaults["misfire_grace_time"] == 900

    def test_start_runs_first_cycle_immediately(self):
        ran = threading.Event()
        scheduler = SchedulerService(cycle_callable=ran.set, interval_seconds=3600)

        scheduler.start()
        try:
            assert scheduler.is_running()
            assert ran.wait(timeout=5)
            assert scheduler.scheduler.get_job(ALERT_CYCLE_JOB_ID) is not None
        finally:
            scheduler.shutdown(wait=False)

    def test_shutdown_sets_event(self):
        shutdown_event = threading.Event()
        scheduler = SchedulerService(
            cycle_callable=Mock(), interval_seconds=3600, shutdown_event=shutdown_event
        )

        scheduler.start()
        time.sleep(0.1)
        scheduler.shutdown(wait=False)

        assert not scheduler.is_running()
        assert shutdown_event.is_set()

    def test_shutdown_when_never_started(self):
        shutdown_event = threading.Event()
        scheduler = SchedulerService(
            cycle_callable=Mock(), interval_seconds=60, shutdown_event=shutdown_event
        )

        scheduler.shutdown()

        assert shutdown_event.is_set()

    def test_trigger_now_runs_synchronously(self):
        cycle = Mock()
        scheduler = SchedulerService(cycle_callable=cycle, interval_seconds=60)

        scheduler.trigger_now()

        cycle.assert_called_once_with()
        assert not scheduler.is_running()
