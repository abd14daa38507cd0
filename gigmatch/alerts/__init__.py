"""Alert sweeps: saved-query re-evaluation and listing expiry notices."""

from .models import ExpirySweepSummary, SavedQueryRunStats, SweepSummary
from .sweep import AlertSweeper

__all__ = [
    "AlertSweeper",
    "SweepSummary",
    "SavedQueryRunStats",
    "ExpirySweepSummary",
]
