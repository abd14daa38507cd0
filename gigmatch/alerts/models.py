"""Run statistics for alert sweeps."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class SavedQueryRunStats:
    """
    Statistics for one saved query within a sweep.

    Attributes:
        saved_query_id: Saved query that was evaluated
        candidate_count: Eligible listings considered
        matched_count: Listings that passed the saved query's filters
        notified_count: New-match notifications actually queued
        duplicate_count: Matches already notified in an earlier run
        cursor_advanced: Whether last_evaluated_at moved forward
        had_errors: Whether evaluation failed
        error_message: Failure description, if any
    """

    saved_query_id: str
    candidate_count: int = 0
    matched_count: int = 0
    notified_count: int = 0
    duplicate_count: int = 0
    cursor_advanced: bool = False
    duration_seconds: float = 0.0
    had_errors: bool = False
    error_message: Optional[str] = None


@dataclass
class SweepSummary:
    """
    Aggregate results of one sweep over all active saved queries.

    Attributes:
        run_started_at: UTC timestamp when the sweep began
        run_finished_at: UTC timestamp when the sweep completed
        query_stats: Per-saved-query statistics
        skipped: Whether the sweep was skipped (lock already held)
    """

    run_started_at: datetime
    run_finished_at: datetime
    query_stats: List[SavedQueryRunStats] = field(default_factory=list)
    skipped: bool = False
    errors: List[str] = field(default_factory=list)
    total_duration_seconds: float = 0.0

    def __post_init__(self):
        if not self.errors:
            self.errors = [
                f"Saved query {s.saved_query_id}: {s.error_message}"
                for s in self.query_stats
                if s.had_errors
            ]
        if self.total_duration_seconds == 0.0:
            delta = self.run_finished_at - self.run_started_at
            self.total_duration_seconds = delta.total_seconds()

    @property
    def queries_evaluated(self) -> int:
        return sum(1 for s in self.query_stats if not s.had_errors)

    @property
    def total_matched(self) -> int:
        return sum(s.matched_count for s in self.query_stats)

    @property
    def notifications_created(self) -> int:
        return sum(s.notified_count for s in self.query_stats)

    @property
    def duplicates_skipped(self) -> int:
        return sum(s.duplicate_count for s in self.query_stats)

    @property
    def had_errors(self) -> bool:
        return bool(self.errors)


@dataclass
class ExpirySweepSummary:
    """Results of one pass over listings close to expiry."""

    expiring_count: int = 0
    notified_count: int = 0
    already_notified_count: int = 0
    errors: List[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def had_errors(self) -> bool:
        return bool(self.errors)
