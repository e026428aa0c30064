"""
Domain time utilities (pure).

Centralized timestamp validation and countdown formatting helpers.

Behavior and error messages must remain consistent across the domain model.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def require_utc_timestamp(name: str, value: datetime) -> None:
    """
    Enforces the requirement that timestamps are UTC.

    Invariants:
    - Timestamps must be timezone-aware.
    - Timestamps must have UTC offset 0.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime (the default clock)."""
    return datetime.now(timezone.utc)


def time_left(deadline: datetime | None, now: datetime) -> timedelta:
    """Remaining time until `deadline`, never negative. No deadline means no time left."""

    if deadline is None:
        return timedelta(0)
    return max(timedelta(0), deadline - now)


def format_mmss(remaining: timedelta) -> str:
    """
    Format a remaining duration as MM:SS.

    Negative durations render as 00:00. Seconds are truncated, so a countdown
    shows 09:59 one instant after a ten minute reservation starts.
    """

    total = max(0, int(remaining.total_seconds()))
    minutes, seconds = divmod(total, 60)
    return f"{minutes:02d}:{seconds:02d}"
