"""Planning list view: window scoping and per-day sections."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .datetime_utils import date_key, overlaps_range
from .models import AgendaEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanningSection:
    """Entries starting on one calendar day, in chronological order."""

    date_key: str
    entries: tuple[AgendaEntry, ...]


def scope_to_window(
    entries: Iterable[AgendaEntry],
    window_start: Optional[datetime],
    window_end: Optional[datetime],
) -> list[AgendaEntry]:
    """Keep entries overlapping the planning window.

    An unset or empty window leaves the entries untouched.
    """
    entries = list(entries)
    if window_start is None or window_end is None or window_end <= window_start:
        return entries
    return [
        entry for entry in entries if overlaps_range(entry.start, entry.end, window_start, window_end)
    ]


def planning_sections(entries: Iterable[AgendaEntry]) -> list[PlanningSection]:
    """Group entries by the date-key of their start."""
    grouped: dict[str, list[AgendaEntry]] = {}
    for entry in entries:
        grouped.setdefault(date_key(entry.start), []).append(entry)

    sections = [
        PlanningSection(date_key=key, entries=tuple(sorted(day_entries, key=lambda e: e.start)))
        for key, day_entries in sorted(grouped.items())
    ]
    logger.debug("Built %d planning sections", len(sections))
    return sections
