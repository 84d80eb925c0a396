"""Visible range computation for the month, week and day calendar views."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional, Union

from .datetime_utils import start_of_day
from .models import CalendarView

MONTH_GRID_WEEKS = 6
DEFAULT_RANGE_DAYS = 45


class NavigationAction(str, Enum):
    PREV = "prev"
    NEXT = "next"
    TODAY = "today"


def visible_range(view: Union[CalendarView, str], anchor: Union[date, datetime]) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` range shown by ``view`` around ``anchor``.

    Weeks start on Monday. The month view is a six-week grid starting on the
    Monday on or before the first of the month.
    """
    view = CalendarView(view)
    day = start_of_day(anchor)
    if view is CalendarView.DAY:
        return day, day + timedelta(days=1)
    if view is CalendarView.WEEK:
        monday = day - timedelta(days=day.weekday())
        return monday, monday + timedelta(days=7)

    first = day.replace(day=1)
    grid_start = first - timedelta(days=first.weekday())
    return grid_start, grid_start + timedelta(weeks=MONTH_GRID_WEEKS)


def shift_anchor(
    view: Union[CalendarView, str],
    anchor: Union[date, datetime],
    action: Union[NavigationAction, str],
    today: Optional[date] = None,
) -> date:
    """Move the anchor one view unit backward or forward, or back to today."""
    view = CalendarView(view)
    action = NavigationAction(action)
    current = anchor.date() if isinstance(anchor, datetime) else anchor
    if action is NavigationAction.TODAY:
        return today or date.today()

    step = -1 if action is NavigationAction.PREV else 1
    if view is CalendarView.DAY:
        return current + timedelta(days=step)
    if view is CalendarView.WEEK:
        return current + timedelta(weeks=step)

    month_index = current.year * 12 + (current.month - 1) + step
    return date(month_index // 12, month_index % 12 + 1, 1)


def default_range(now: datetime, days: int = DEFAULT_RANGE_DAYS) -> tuple[datetime, datetime]:
    """Initial range before the calendar reports its own: ``now ± days``."""
    return now - timedelta(days=days), now + timedelta(days=days)
