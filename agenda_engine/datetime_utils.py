"""Local wall-clock date helpers for the agenda engine.

All datetimes handled here are naive local values. No timezone conversion
is performed: recurrence steps and day shifts are plain calendar arithmetic.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from .models import RecurrenceFreq

logger = logging.getLogger(__name__)

_DATE_ONLY_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_DATE_TIME_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2})(?::(\d{2}))?$")

ONE_DAY = timedelta(days=1)
DEFAULT_TIMED_DURATION = timedelta(hours=1)


def date_key(value: Union[date, datetime]) -> str:
    """Return the ``YYYY-MM-DD`` key of the local calendar day of ``value``."""
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def to_local_input_value(value: datetime) -> str:
    """Format a datetime as a ``YYYY-MM-DDTHH:MM`` edit-buffer string."""
    return value.strftime("%Y-%m-%dT%H:%M")


def to_local_date_input_value(value: Union[date, datetime]) -> str:
    """Format a date as a ``YYYY-MM-DD`` edit-buffer string."""
    return date_key(value)


def to_hour_minute_label(value: datetime) -> str:
    return value.strftime("%H:%M")


def start_of_day(value: Union[date, datetime]) -> datetime:
    """Return local midnight of the day containing ``value``."""
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, time.min)


def is_midnight(value: datetime) -> bool:
    return value.hour == 0 and value.minute == 0 and value.second == 0 and value.microsecond == 0


def parse_local_date_only(raw: str) -> Optional[datetime]:
    """Parse ``YYYY-MM-DD`` into local midnight, rejecting impossible dates."""
    match = _DATE_ONLY_RE.match(raw)
    if not match:
        return None
    year, month, day = (int(part) for part in match.groups())
    try:
        return datetime(year, month, day)
    except ValueError:
        return None


def parse_local_datetime(raw: str) -> Optional[datetime]:
    """Parse ``YYYY-MM-DDTHH:MM[:SS]`` into a naive local datetime."""
    match = _DATE_TIME_RE.match(raw)
    if not match:
        return None
    year, month, day, hour, minute = (int(part) for part in match.groups()[:5])
    second = int(match.group(6)) if match.group(6) else 0
    try:
        return datetime(year, month, day, hour, minute, second)
    except ValueError:
        return None


def parse_draft_datetime(raw: str, all_day: bool) -> Optional[datetime]:
    """Parse a Draft start/end string.

    Args:
        raw: Edit-buffer value
        all_day: When True ``raw`` must be a date, otherwise a date-time

    Returns:
        Parsed datetime, or None when the value is empty or invalid
    """
    if not raw:
        return None
    parsed = parse_local_date_only(raw) if all_day else parse_local_datetime(raw)
    if parsed is None:
        logger.debug("Invalid draft date %r (all_day=%s)", raw, all_day)
    return parsed


def add_recurrence_step(base: datetime, freq: RecurrenceFreq, interval: int, count: int = 1) -> datetime:
    """Advance ``base`` by ``count`` recurrence steps.

    Steps are always measured from ``base``. Monthly steps clamp to the end
    of shorter months (Jan 31 + 1 month is Feb 28/29) without carrying the
    clamped day forward, so Jan 31 + 2 months is Mar 31.
    """
    freq = RecurrenceFreq(freq)
    units = interval * count
    if freq is RecurrenceFreq.DAILY:
        return base + timedelta(days=units)
    if freq is RecurrenceFreq.WEEKLY:
        return base + timedelta(days=units * 7)
    return base + relativedelta(months=units)


def overlaps_range(start: datetime, end: datetime, range_start: datetime, range_end: datetime) -> bool:
    """Half-open overlap test of ``[start, end)`` against ``[range_start, range_end)``."""
    return end > range_start and start < range_end


def days_between(earlier: Union[date, datetime], later: Union[date, datetime]) -> int:
    """Whole calendar days from the day of ``earlier`` to the day of ``later``."""
    if isinstance(earlier, datetime):
        earlier = earlier.date()
    if isinstance(later, datetime):
        later = later.date()
    return (later - earlier).days


def shift_days(value: datetime, days: int) -> datetime:
    """Shift by whole calendar days, keeping the wall-clock time of day."""
    return value + timedelta(days=days)


def iter_days(start: Union[date, datetime], end: Union[date, datetime]):
    """Yield each calendar date in ``[start, end)``; a partial last day is included."""
    first = start.date() if isinstance(start, datetime) else start
    if isinstance(end, datetime):
        last = end.date() if not is_midnight(end) else end.date() - ONE_DAY
    else:
        last = end - ONE_DAY
    current = first
    while current <= last:
        yield current
        current += ONE_DAY
