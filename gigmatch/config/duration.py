"""Duration parsing for the sweep and dispatch intervals."""

import re


class DurationParseError(ValueError):
    """Raised when a duration string cannot be parsed."""


_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(duration_str: str) -> int:
    """Parse a duration string to seconds.

    Accepts human-readable ("15m", "1h30m", "2d") and ISO-8601
    ("PT15M", "P1D") forms.

    Raises:
        DurationParseError: If the duration string is invalid or zero

    Examples:
        >>> parse_duration("15m")
        900
        >>> parse_duration("PT1H")
        3600
    """
    duration_str = duration_str.strip()
    if not duration_str:
        raise DurationParseError("Duration string cannot be empty")

    if duration_str.upper().startswith("P"):
        total = _parse_iso8601(duration_str.upper())
    else:
        total = _parse_human_readable(duration_str.lower())

    if total == 0:
        raise DurationParseError(f"Duration cannot be zero: '{duration_str}'")
    return total


def _parse_iso8601(duration_str: str) -> int:
    pattern = r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$"
    match = re.match(pattern, duration_str)
    if not match:
        raise DurationParseError(
            f"Invalid ISO-8601 duration format: '{duration_str}'. "
            "Expected format like 'P1D', 'PT1H30M' or 'PT15M'"
        )

    days, hours, minutes, seconds = match.groups()
    return (
        int(days or 0) * 86400
        + int(hours or 0) * 3600
        + int(minutes or 0) * 60
        + int(float(seconds or 0))
    )


def _parse_human_readable(duration_str: str) -> int:
    matches = re.findall(r"(\d+)\s*([smhd])", duration_str)
    if not matches:
        raise DurationParseError(
            f"Invalid duration format: '{duration_str}'. "
            "Expected format like '15m', '1h', '30s', '2d' or '1h30m'"
        )

    # Reject leftovers such as "15x" or "abc15m"
    parsed = "".join(f"{num}{unit}" for num, unit in matches)
    if parsed != re.sub(r"\s+", "", duration_str):
        raise DurationParseError(
            f"Invalid characters in duration: '{duration_str}'. "
            "Use only digits and units: s, m, h, d"
        )

    return sum(int(num) * _UNIT_SECONDS[unit] for num, unit in matches)


def validate_duration_range(
    duration_seconds: int,
    min_seconds: int = 60,
    max_seconds: int = 86400,
    label: str = "Interval",
) -> None:
    """Validate that a duration is within an acceptable range.

    Raises:
        DurationParseError: If the duration is outside the range
    """
    if duration_seconds < min_seconds:
        raise DurationParseError(
            f"{label} too short: {duration_seconds}s. Minimum is {min_seconds}s."
        )
    if duration_seconds > max_seconds:
        raise DurationParseError(
            f"{label} too long: {duration_seconds}s. Maximum is {max_seconds}s."
        )
