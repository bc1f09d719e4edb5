from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


# Stored datetimes are naive UTC. Business dates (today's sales, the
# top-selling window) are UTC calendar days.


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def business_today() -> date:
    return utcnow().date()


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Half-open [start, end) range covering one business date."""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def window_start(days: int, *, today: date | None = None) -> datetime:
    """Start of a trailing window of `days` whole days ending with today."""
    start, _ = day_bounds((today or business_today()) - timedelta(days=days))
    return start


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a client-supplied ISO-8601 timestamp into naive UTC.

    None and "" give None. A trailing "Z" or an explicit offset is converted
    to UTC; a timestamp without one is taken to be UTC already. Malformed
    input raises ValueError.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Second-precision ISO-8601 with a trailing 'Z' (naive input is UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
