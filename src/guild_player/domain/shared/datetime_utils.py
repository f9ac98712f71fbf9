"""Date/time helpers.

Always operate on timezone-aware UTC datetimes.
"""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Preferred replacement for `datetime.now(UTC)()`.

    Returns a timezone-aware datetime in UTC.
    """
    return datetime.now(UTC)


def format_duration(seconds: int | None) -> str:
    """Format a duration as MM:SS or H:MM:SS, or "Unknown" when missing."""
    if seconds is None:
        return "Unknown"

    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
