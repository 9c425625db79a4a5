"""
Clock / calendar helpers — pure functions, no I/O.

Every helper takes the current time explicitly so that callers (and tests)
decide what "now" is.  Dates travel as ``YYYY-MM-DD`` strings; timestamps are
naive local ``datetime`` objects.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta

DATE_FORMAT = "%Y-%m-%d"
SECONDS_PER_DAY = 86_400


def now_local() -> datetime:
    return datetime.now()


def today_str(now: datetime | None = None) -> str:
    """Local calendar date of ``now`` as ``YYYY-MM-DD``."""
    return (now or now_local()).strftime(DATE_FORMAT)


def parse_date(value: str | date | datetime) -> date:
    """Normalise a date string / date / datetime to a date (time stripped)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value.strip()[:10])


def days_between(earlier: str | date | datetime, later: str | date | datetime) -> int:
    """
    Whole calendar days from ``earlier`` to ``later``.

    A negative gap (clock moved backwards) is clamped to 0.
    """
    gap = (parse_date(later) - parse_date(earlier)).days
    return max(0, gap)


def elapsed_seconds(since: datetime, now: datetime) -> float:
    """Seconds from ``since`` to ``now``; a future ``since`` counts as zero."""
    return max(0.0, (now - since).total_seconds())


def next_midnight(now: datetime) -> datetime:
    """Start of the next local calendar day."""
    tomorrow = now.date() + timedelta(days=1)
    return datetime(tomorrow.year, tomorrow.month, tomorrow.day)


def countdown_seconds(target: datetime, now: datetime) -> int:
    """max(0, floor(target - now)) in seconds."""
    return max(0, math.floor((target - now).total_seconds()))


def week_start(day: str | date | datetime) -> str:
    """Monday of the ISO week containing ``day``."""
    d = parse_date(day)
    return (d - timedelta(days=d.weekday())).strftime(DATE_FORMAT)


def add_minutes(ts: datetime, minutes: float) -> datetime:
    return ts + timedelta(minutes=minutes)


def as_local_naive(ts: datetime) -> datetime:
    """Offset-aware timestamps (e.g. ``...Z`` from a JS client) become naive local time."""
    if ts.tzinfo is None:
        return ts
    return ts.astimezone().replace(tzinfo=None)
