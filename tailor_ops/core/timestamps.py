"""
Timestamp normalization for order rows.

Order rows carry timestamps in several shapes depending on who wrote them:
ISO strings from Postgres, epoch numbers from older clients, datetime objects
from our own write paths and seconds/nanoseconds objects from imported
documents. Everything downstream compares epoch milliseconds.
"""

import math
from datetime import date, datetime, timezone
from typing import Any, Optional

MS_PER_DAY = 24 * 60 * 60 * 1000


def _seconds_nanos(value: Any) -> Optional[int]:
    """Read a {seconds, nanoseconds} timestamp from an object or mapping"""
    if isinstance(value, dict):
        seconds = value.get("seconds")
        nanos = value.get("nanoseconds", value.get("nanos", 0))
    else:
        seconds = getattr(value, "seconds", None)
        nanos = getattr(value, "nanoseconds", getattr(value, "nanos", 0))

    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
        return None
    if isinstance(nanos, bool) or not isinstance(nanos, (int, float)):
        nanos = 0
    return int(seconds * 1000) + int(nanos // 1_000_000)


def _datetime_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def _parse_iso(value: str) -> Optional[datetime]:
    text = value.strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None


def to_epoch_ms(value: Any) -> int:
    """Convert any supported timestamp shape to epoch milliseconds.

    Returns 0 for missing or unrecognized values instead of raising.
    """
    try:
        if value is None or isinstance(value, bool):
            return 0

        if isinstance(value, datetime):
            return _datetime_ms(value)

        if isinstance(value, date):
            return _datetime_ms(datetime(value.year, value.month, value.day))

        if isinstance(value, (int, float)):
            if math.isnan(value) or math.isinf(value):
                return 0
            return int(value)

        if isinstance(value, str):
            parsed = _parse_iso(value)
            return _datetime_ms(parsed) if parsed else 0

        ms = _seconds_nanos(value)
        return ms if ms is not None else 0
    except (OverflowError, OSError, ValueError, TypeError):
        return 0


def to_datetime(value: Any) -> Optional[datetime]:
    """Like to_epoch_ms but returns an aware UTC datetime, or None"""
    ms = to_epoch_ms(value)
    if not ms:
        return None
    try:
        return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
