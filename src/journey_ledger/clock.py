"""UTC clock and the day / ISO-week keys used as reset boundaries.

Stored week keys are compared by string equality to decide weekly resets, so
``current_week_key`` must keep producing exactly the same strings.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta, timezone

# Epoch values above this are treated as milliseconds.
_EPOCH_MS_THRESHOLD = 100_000_000_000


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(tz=timezone.utc)


def as_utc(ts: datetime | None = None) -> datetime:
    """Normalize to an aware UTC datetime. Naive values are taken as UTC."""
    if ts is None:
        return utc_now()
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def current_date_key(ts: datetime | None = None) -> str:
    """Return the UTC calendar date as YYYY-MM-DD."""
    return as_utc(ts).date().isoformat()


def current_week_key(ts: datetime | None = None) -> str:
    """Return the ISO-8601 week key (YYYY-Www) for the UTC date of ``ts``.

    The date is shifted to the Thursday of its week (Monday=1 .. Sunday=7),
    then weeks are numbered from January 1 of that Thursday's year.
    """
    day = as_utc(ts).date()
    thursday = day + timedelta(days=4 - day.isoweekday())
    year_start = date(thursday.year, 1, 1)
    week_no = math.ceil(((thursday - year_start).days + 1) / 7)
    return f"{thursday.year}-W{week_no:02d}"


def to_iso(ts: datetime) -> str:
    """Serialize a datetime the way timestamps are stored (ISO-8601, UTC)."""
    return as_utc(ts).isoformat()


def parse_timestamp(value: object) -> datetime | None:
    """Parse a stored timestamp into an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings (a trailing ``Z`` is allowed) and epoch
    seconds or milliseconds. Returns None for anything else.
    """
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= _EPOCH_MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value:
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            return as_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def parse_date_key(value: object) -> date | None:
    """Parse a YYYY-MM-DD key. Returns None if it is not one."""
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None
