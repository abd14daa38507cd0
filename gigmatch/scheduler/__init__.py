"""Interval scheduling for the alert daemon."""

from .service import ALERT_CYCLE_JOB_ID, SchedulerService

__all__ = ["SchedulerService", "ALERT_CYCLE_JOB_ID"]
