"""Utility functions for time handling and text shaping."""

from .text import rate_label, tokenize_query, truncate_text
from .timestamps import (
    ensure_utc,
    format_timestamp,
    parse_iso_datetime,
    utc_now,
)

__all__ = [
    # Timestamps
    "utc_now",
    "ensure_utc",
    "parse_iso_datetime",
    "format_timestamp",
    # Text
    "tokenize_query",
    "truncate_text",
    "rate_label",
]
