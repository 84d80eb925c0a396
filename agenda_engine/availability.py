"""Free-time availability by per-day interval merging."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Union

from .config import ALLOWED_SLOT_MINUTES
from .datetime_utils import date_key, iter_days, start_of_day
from .models import AgendaEntry, AvailabilitySlot

logger = logging.getLogger(__name__)

Interval = tuple[datetime, datetime]


@dataclass
class DayAvailability:
    """Availability breakdown for one day.

    ``slots`` are the returned free windows; ``capped_slots`` were long enough
    but dropped by the per-day cap; ``short_gaps`` were shorter than the
    minimum. Busy, slots, capped and short durations add up to the working
    window.
    """

    day: date
    window: Interval
    busy: list[Interval] = field(default_factory=list)
    slots: list[AvailabilitySlot] = field(default_factory=list)
    capped_slots: list[AvailabilitySlot] = field(default_factory=list)
    short_gaps: list[Interval] = field(default_factory=list)

    @property
    def date_key(self) -> str:
        return date_key(self.day)


def merge_intervals(intervals: Iterable[Interval]) -> list[Interval]:
    """Merge overlapping or touching intervals.

    Keeps a running interval and extends its end while the next interval
    starts at or before it.
    """
    merged: list[list[datetime]] = []
    for start, end in sorted(intervals, key=lambda interval: interval[0]):
        if not merged or start > merged[-1][1]:
            merged.append([start, end])
        elif end > merged[-1][1]:
            merged[-1][1] = end
    return [(start, end) for start, end in merged]


def _minutes(delta: timedelta) -> int:
    return round(delta.total_seconds() / 60)


class AvailabilityComputer:
    """Computes free slots inside each day's working window."""

    def __init__(
        self,
        day_start: time = time(8, 0),
        day_end: time = time(20, 0),
        max_slots_per_day: int = 3,
    ):
        if day_end <= day_start:
            raise ValueError("day_end must be after day_start")
        if max_slots_per_day < 1:
            raise ValueError("max_slots_per_day must be >= 1")
        self.day_start = day_start
        self.day_end = day_end
        self.max_slots_per_day = max_slots_per_day

    @classmethod
    def from_settings(cls, settings: Any) -> "AvailabilityComputer":
        end_hour = getattr(settings, "working_day_end_hour", 20)
        return cls(
            day_start=time(getattr(settings, "working_day_start_hour", 8)),
            day_end=time.max if end_hour >= 24 else time(end_hour),
            max_slots_per_day=getattr(settings, "max_slots_per_day", 3),
        )

    def working_window(self, day: date) -> Interval:
        window_end = (
            start_of_day(day) + timedelta(days=1)
            if self.day_end == time.max
            else datetime.combine(day, self.day_end)
        )
        return datetime.combine(day, self.day_start), window_end

    def busy_intervals(self, entries: Iterable[AgendaEntry], day: date) -> list[Interval]:
        """Busy sub-intervals of ``day`` clipped to its working window."""
        window_start, window_end = self.working_window(day)
        day_begin = start_of_day(day)
        day_finish = day_begin + timedelta(days=1)

        busy: list[Interval] = []
        for entry in entries:
            if not (entry.end > day_begin and entry.start < day_finish):
                continue
            if entry.all_day:
                busy.append((window_start, window_end))
                continue
            start = max(entry.start, window_start)
            end = min(entry.end, window_end)
            if end > start:
                busy.append((start, end))
        return busy

    def compute_day(
        self, entries: Iterable[AgendaEntry], day: date, min_minutes: int
    ) -> DayAvailability:
        """Compute availability for a single day.

        Args:
            entries: Merged agenda entries (any order, any day)
            day: Day to compute
            min_minutes: Minimum slot duration (30, 45, 60 or 90)

        Returns:
            DayAvailability with slots in chronological order
        """
        _check_min_minutes(min_minutes)
        window_start, window_end = self.working_window(day)
        result = DayAvailability(day=day, window=(window_start, window_end))
        result.busy = merge_intervals(self.busy_intervals(entries, day))

        minimum = timedelta(minutes=min_minutes)
        cursor = window_start
        gaps: list[Interval] = []
        for busy_start, busy_end in result.busy:
            if busy_start > cursor:
                gaps.append((cursor, busy_start))
            cursor = max(cursor, busy_end)
        if window_end > cursor:
            gaps.append((cursor, window_end))

        for gap_start, gap_end in gaps:
            if gap_end - gap_start < minimum:
                result.short_gaps.append((gap_start, gap_end))
                continue
            slot = AvailabilitySlot(
                start=gap_start, end=gap_end, duration_minutes=_minutes(gap_end - gap_start)
            )
            if len(result.slots) < self.max_slots_per_day:
                result.slots.append(slot)
            else:
                result.capped_slots.append(slot)
        return result

    def compute(
        self,
        entries: Sequence[AgendaEntry],
        window_start: Union[date, datetime],
        window_end: Union[date, datetime],
        today: Union[date, datetime],
        min_minutes: int,
    ) -> dict[str, list[AvailabilitySlot]]:
        """Free slots for each day of the planning window from ``today`` on.

        Args:
            entries: Merged agenda entries
            window_start: Inclusive start of the planning window
            window_end: Exclusive end of the planning window
            today: Days before this one are skipped
            min_minutes: Minimum slot duration (30, 45, 60 or 90)

        Returns:
            Mapping of date-key to at most ``max_slots_per_day`` slots
        """
        _check_min_minutes(min_minutes)
        today_date = today.date() if isinstance(today, datetime) else today
        output: dict[str, list[AvailabilitySlot]] = {}
        for day in iter_days(window_start, window_end):
            if day < today_date:
                continue
            output[date_key(day)] = self.compute_day(entries, day, min_minutes).slots

        logger.debug(
            "Availability computed for %d days (min %d minutes, %d slots)",
            len(output),
            min_minutes,
            sum(len(slots) for slots in output.values()),
        )
        return output


def _check_min_minutes(min_minutes: int) -> None:
    if min_minutes not in ALLOWED_SLOT_MINUTES:
        raise ValueError(f"min_minutes must be one of {ALLOWED_SLOT_MINUTES}, got {min_minutes}")
