"""
Time helpers shared by scoring, tiering, validation and healing.

Key concepts:
  - Every time-dependent operation takes an explicit ``now``; these helpers
    never read the clock unless asked to via ``utcnow()``.
  - Persisted timestamps are ISO-8601 strings. Legacy records may carry
    epoch milliseconds instead; both are accepted by ``parse_timestamp``.
  - Day counts are whole days rounded up, so an event 4.2 days old counts
    as 5 days ago. Future timestamps count as 0 days ago.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

SECONDS_PER_DAY = 86_400


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info."""
    return datetime.now(tz=timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a persisted timestamp into an aware UTC datetime.

    Accepts ``datetime`` objects, ISO-8601 strings (a trailing ``Z`` is
    allowed) and epoch milliseconds as int/float.

    Returns:
        The parsed datetime, or ``None`` if the value is missing or malformed.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def to_iso(value: datetime) -> str:
    """Format a datetime as an ISO-8601 UTC string with millisecond precision."""
    return ensure_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def days_between(earlier: datetime, later: datetime) -> int:
    """Return the whole number of days from ``earlier`` to ``later``, rounded up.

    Negative spans (``later`` before ``earlier``) return 0.
    """
    seconds = (ensure_utc(later) - ensure_utc(earlier)).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / SECONDS_PER_DAY)


def days_ago(timestamp: datetime, now: datetime) -> int:
    """Return how many whole days before ``now`` the ``timestamp`` lies."""
    return days_between(timestamp, now)


def days_before(now: datetime, days: float) -> datetime:
    """Return the instant ``days`` days before ``now``."""
    return ensure_utc(now) - timedelta(days=days)
