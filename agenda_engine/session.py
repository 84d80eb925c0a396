"""Caller-owned agenda session state.

Everything the engine would otherwise keep as hidden mutable state (the
visible range, filters, the single Draft, the selection and busy flags) lives
on an ``AgendaSession`` that the caller owns and passes to each operation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from .filters import AgendaFilters
from .models import CalendarView, Draft, DraftPhase, ExternalEvent

logger = logging.getLogger(__name__)


class DisplayMode(str, Enum):
    CALENDAR = "calendar"
    PLANNING = "planning"


@dataclass
class AgendaSession:
    """State of one user's agenda view."""

    range_start: datetime
    range_end: datetime
    view: CalendarView = CalendarView.MONTH
    display_mode: DisplayMode = DisplayMode.CALENDAR
    filters: AgendaFilters = field(default_factory=AgendaFilters)
    external_events: list[ExternalEvent] = field(default_factory=list)
    draft: Optional[Draft] = None
    draft_phase: DraftPhase = DraftPhase.CLOSED
    draft_saving: bool = False
    selected_ids: list[str] = field(default_factory=list)
    duplicating: bool = False
    error: Optional[str] = None
    external_ticket: int = 0

    @property
    def has_open_draft(self) -> bool:
        return self.draft is not None

    @property
    def is_busy(self) -> bool:
        return self.draft_saving or self.duplicating

    def set_visible_range(self, start: datetime, end: datetime) -> None:
        if end <= start:
            raise ValueError("Visible range end must be after its start")
        self.range_start = start
        self.range_end = end

    def set_display_mode(self, mode: Union[DisplayMode, str]) -> None:
        """Switch between calendar and planning; the calendar has no selection."""
        self.display_mode = DisplayMode(mode)
        if self.display_mode is DisplayMode.CALENDAR and self.selected_ids:
            logger.debug("Clearing %d selected entries on calendar mode", len(self.selected_ids))
            self.selected_ids = []

    def close_draft(self) -> None:
        self.draft = None
        self.draft_phase = DraftPhase.CLOSED

    def clear_error(self) -> None:
        self.error = None
