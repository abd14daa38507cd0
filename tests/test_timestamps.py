"""Unit tests for timestamp and text utilities."""

from datetime import datetime, timedelta, timezone

import pytest

from gigmatch.utils.text import rate_label, tokenize_query, truncate_text
from gigmatch.utils.timestamps import ensure_utc, format_timestamp, parse_iso_datetime, utc_now


class TestUtcNow:
    def test_returns_aware_utc(self):
        now = utc_now()

        assert now.tzinfo == timezone.utc
        assert abs(datetime.now(timezone.utc) - now) < timedelta(seconds=5)


class TestEnsureUtc:
    """Tests for ensure_utc."""

    def test_none(self):
        assert ensure_utc(None) is None

    def test_naive_is_treated_as_utc(self):
        result = ensure_utc(datetime(2025, 3, 1, 12, 0))

        assert result == datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

    def test_converts_other_zones(self):
        plus_two = timezone(timedelta(hours=2))
        result = ensure_utc(datetime(2025, 3, 1, 14, 0, tzinfo=plus_two))

        assert result.tzinfo == timezone.utc
        assert result.hour == 12


class TestFormatTimestamp:
    """Storage format must be fixed-width so string order is time order."""

    def test_format(self):
        dt = datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)
        assert format_timestamp(dt) == "2026-01-05T10:00:00.000000Z"

    def test_none(self):
        assert format_timestamp(None) is None

    def test_string_order_matches_time_order(self):
        earlier = datetime(2025, 3, 1, 9, 59, 59, 999999, tzinfo=timezone.utc)
        later = datetime(2025, 3, 1, 10, 0, 0, tzinfo=timezone.utc)

        assert format_timestamp(earlier) < format_timestamp(later)
        assert len(format_timestamp(earlier)) == len(format_timestamp(later))


class TestParseIsoDatetime:
    """Tests for parse_iso_datetime."""

    @pytest.mark.parametrize(
        "value",
        ["2025-03-01T12:00:00Z", "2025-03-01T12:00:00.000000Z", "2025-03-01T12:00:00+00:00", "2025-03-01T14:00:00+02:00"],
    )
    def test_parses_variants(self, value):
        assert parse_iso_datetime(value) == datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

    def test_date_only(self):
        assert parse_iso_datetime("2025-03-01") == datetime(2025, 3, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "   ", "not a date"])
    def test_invalid_returns_none(self, value):
        assert parse_iso_datetime(value) is None

    def test_round_trip_through_storage_format(self):
        dt = datetime(2025, 3, 1, 12, 30, 15, 123456, tzinfo=timezone.utc)
        assert parse_iso_datetime(format_timestamp(dt)) == dt


class TestTokenizeQuery:
    def test_lowercases_and_drops_short_words(self):
        assert tokenize_query("React Dev in NYC") == ["react", "dev", "nyc"]

    def test_distinct_in_first_seen_order(self):
        assert tokenize_query("react REACT developer react") == ["react", "developer"]

    def test_empty(self):
        assert tokenize_query("") == []
        assert tokenize_query("a an to") == []

    def test_custom_min_length(self):
        assert tokenize_query("go is fun", min_length=2) == ["go", "is", "fun"]


class TestTruncateText:
    def test_short_text_unchanged(self):
        assert truncate_text("short", 100) == "short"

    def test_truncates_with_suffix(self):
        result = truncate_text("word " * 50, 40)

        assert len(result) <= 40
        assert result.endswith("...")

    def test_breaks_at_word_boundary(self):
        assert truncate_text("alpha beta gamma delta", 20) == "alpha beta gamma..."


class TestRateLabel:
    @pytest.mark.parametrize(
        "rate_min,rate_max,expected",
        [(70, 90, "$70-90"), (None, 90, "negotiable"), (70, None, "negotiable"), (None, None, "negotiable")],
    )
    def test_labels(self, rate_min, rate_max, expected):
        assert rate_label(rate_min, rate_max) == expected
