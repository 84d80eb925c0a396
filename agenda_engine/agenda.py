"""Pure agenda computation: expand, detect, merge, filter.

``compute_agenda`` is a pure function of (definitions, external events,
range, filters) plus the settings that parameterize it. ``AgendaComputer``
memoizes it on that input tuple; all inputs are frozen models so the tuple
is hashable.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Any, Optional

from .event_merger import EventMerger
from .filters import AgendaFilters, AgendaStats, apply_filters, compute_stats
from .models import AgendaEntry, ExternalEvent, RecurringTaskDefinition
from .recurrence_expander import RecurrenceExpander

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgendaView:
    """Result of one agenda computation."""

    entries: tuple[AgendaEntry, ...]
    all_entries: tuple[AgendaEntry, ...]
    conflict_count: int
    is_compact: bool
    stats: AgendaStats
    score_cap: int

    def find(self, entry_id: str) -> Optional[AgendaEntry]:
        """Look up a displayed entry by ID, preferring local entries."""
        matches = [entry for entry in self.entries if entry.id == entry_id]
        local = [entry for entry in matches if not entry.is_external]
        return (local or matches or [None])[0]

    def entries_by_id(self) -> dict[str, AgendaEntry]:
        """Local entries keyed by ID (external entries are never selectable)."""
        return {entry.id: entry for entry in self.all_entries if not entry.is_external}


def compute_agenda(
    definitions: Iterable[RecurringTaskDefinition],
    external_events: Iterable[ExternalEvent],
    range_start: datetime,
    range_end: datetime,
    filters: Optional[AgendaFilters] = None,
    settings: Any = None,
) -> AgendaView:
    """Compute the agenda for the visible range.

    Args:
        definitions: Task definitions
        external_events: Events from the external provider
        range_start: Inclusive start of the visible range
        range_end: Exclusive end of the visible range
        filters: Display filters (conflicts are computed before filtering)
        settings: Optional settings object (see ``AgendaSettings``)

    Returns:
        AgendaView with filtered and unfiltered entries
    """
    if range_end <= range_start:
        raise ValueError("range_end must be after range_start")
    filters = filters or AgendaFilters()

    expander = RecurrenceExpander.from_settings(settings)
    merger = EventMerger.from_settings(settings)

    occurrences = expander.expand(definitions, range_start, range_end)
    local_conflicts = merger.count_local_conflicts(occurrences)
    merged = merger.merge(occurrences, external_events)
    displayed = apply_filters(merged.entries, filters)
    stats = compute_stats(merged.entries, displayed, local_conflicts)

    logger.debug(
        "Agenda [%s, %s): %d total, %d displayed, %d local conflicts, %d merged conflicts",
        range_start.isoformat(),
        range_end.isoformat(),
        stats.total,
        stats.displayed,
        local_conflicts,
        merged.conflict_count,
    )
    return AgendaView(
        entries=tuple(displayed),
        all_entries=merged.entries,
        conflict_count=merged.conflict_count,
        is_compact=merged.is_compact,
        stats=stats,
        score_cap=merged.score_cap,
    )


class AgendaComputer:
    """Memoizing front end to ``compute_agenda`` bound to one settings object."""

    def __init__(self, settings: Any = None, maxsize: int = 32):
        self.settings = settings
        self._cached = lru_cache(maxsize=maxsize)(self._compute)

    def _compute(
        self,
        definitions: tuple[RecurringTaskDefinition, ...],
        external_events: tuple[ExternalEvent, ...],
        range_start: datetime,
        range_end: datetime,
        filters: AgendaFilters,
    ) -> AgendaView:
        return compute_agenda(
            definitions, external_events, range_start, range_end, filters, self.settings
        )

    def compute(
        self,
        definitions: Iterable[RecurringTaskDefinition],
        external_events: Iterable[ExternalEvent],
        range_start: datetime,
        range_end: datetime,
        filters: Optional[AgendaFilters] = None,
    ) -> AgendaView:
        return self._cached(
            tuple(definitions),
            tuple(external_events),
            range_start,
            range_end,
            filters or AgendaFilters(),
        )

    def cache_info(self) -> Any:
        return self._cached.cache_info()

    def clear(self) -> None:
        self._cached.cache_clear()
