"""
Timestamp utilities for callpause.

Provides common timestamp and duration helpers used across the application.
"""

from datetime import datetime, timezone

US_PER_SECOND = 1_000_000


def now_us() -> int:
    """Get current timestamp as microseconds since epoch (UTC)."""
    return int(datetime.now(timezone.utc).timestamp() * US_PER_SECOND)


def us_to_datetime(timestamp_us: int) -> datetime:
    """Convert microseconds since epoch to an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp_us / US_PER_SECOND, tz=timezone.utc)


def elapsed_seconds(start_us: int, end_us: int) -> int:
    """Whole seconds between two microsecond timestamps, never negative."""
    return max(0, (end_us - start_us) // US_PER_SECOND)


def format_duration(seconds: int) -> str:
    """
    Format a duration for display.

    Returns ``M:SS`` below one hour and ``H:MM:SS`` otherwise.

    Examples:
        >>> format_duration(0)
        '0:00'
        >>> format_duration(125)
        '2:05'
        >>> format_duration(3725)
        '1:02:05'
    """
    if not seconds or seconds < 0:
        return "0:00"

    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
