"""Multi-select and duplication of local occurrences into standalone events."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime
from typing import Optional, Union

from .datetime_utils import days_between, parse_local_date_only, shift_days, start_of_day
from .draft_manager import optional_priority
from .exceptions import to_user_error_message
from .models import AgendaEntry, LocalOrigin
from .ports import CreateEventInput, EventPersistence
from .session import AgendaSession

logger = logging.getLogger(__name__)

DUPLICATE_ERROR_MESSAGE = "Could not duplicate the selection."
INVALID_TARGET_MESSAGE = "Invalid target date."
DUPLICATE_TITLE_FALLBACK = "Agenda item"

ShiftBuilder = Callable[[AgendaEntry, datetime], int]


def parse_target_date(value: Union[date, datetime, str]) -> Optional[date]:
    """Accept a date, a datetime or a ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = parse_local_date_only(value.strip())
    return parsed.date() if parsed else None


class SelectionDuplicator:
    """Maintains the planning selection and duplicates it.

    Duplicates are always single non-recurring events; the selection is
    cleared only after every duplicate was created.
    """

    def __init__(self, persistence: EventPersistence):
        self.persistence = persistence

    def toggle(self, session: AgendaSession, entry: AgendaEntry) -> bool:
        """Add or remove a local entry; returns whether it is now selected."""
        if entry.is_external:
            logger.debug("External event %s cannot be selected", entry.id)
            return False
        if entry.id in session.selected_ids:
            session.selected_ids = [i for i in session.selected_ids if i != entry.id]
            return False
        session.selected_ids = [*session.selected_ids, entry.id]
        return True

    def clear(self, session: AgendaSession) -> None:
        session.selected_ids = []

    def selected_entries(
        self, session: AgendaSession, entries: Iterable[AgendaEntry]
    ) -> list[AgendaEntry]:
        """Selected local entries in ascending start order; unknown IDs are ignored."""
        by_id = {entry.id: entry for entry in entries if not entry.is_external}
        selected = [by_id[i] for i in session.selected_ids if i in by_id]
        return sorted(selected, key=lambda entry: entry.start)

    async def duplicate_by_days(
        self, session: AgendaSession, entries: Iterable[AgendaEntry], days: int
    ) -> bool:
        """Duplicate every selected entry ``days`` days later (or earlier)."""
        return await self._duplicate(session, entries, lambda entry, anchor: days)

    async def duplicate_to_date(
        self,
        session: AgendaSession,
        entries: Iterable[AgendaEntry],
        target: Union[date, datetime, str],
    ) -> bool:
        """Duplicate the selection so its earliest entry lands on ``target``.

        Relative day spacing among selected entries is preserved.
        """
        target_date = parse_target_date(target)
        if target_date is None:
            session.error = INVALID_TARGET_MESSAGE
            return False

        def shift(entry: AgendaEntry, anchor: datetime) -> int:
            # One offset for all entries; adding each entry's own offset from
            # the anchor on top would double its distance from the target.
            return days_between(anchor, target_date)

        return await self._duplicate(session, entries, shift)

    async def _duplicate(
        self,
        session: AgendaSession,
        entries: Iterable[AgendaEntry],
        build_shift: ShiftBuilder,
    ) -> bool:
        if not session.selected_ids:
            return False
        if session.duplicating:
            logger.debug("Duplication ignored: already duplicating")
            return False

        selected = self.selected_entries(session, entries)
        if not selected:
            return False
        anchor = start_of_day(selected[0].start)

        session.duplicating = True
        session.clear_error()
        created = 0
        try:
            for entry in selected:
                shift = build_shift(entry, anchor)
                await self.persistence.create_event(self._duplicate_input(entry, shift))
                created += 1
        except Exception as exc:
            logger.exception("Duplication failed after %d of %d events", created, len(selected))
            session.error = to_user_error_message(exc, DUPLICATE_ERROR_MESSAGE)
            return False
        finally:
            session.duplicating = False

        logger.info("Duplicated %d selected events", created)
        session.selected_ids = []
        return True

    @staticmethod
    def _duplicate_input(entry: AgendaEntry, shift: int) -> CreateEventInput:
        origin = entry.origin
        workspace_id = origin.workspace_id if isinstance(origin, LocalOrigin) else None
        return CreateEventInput(
            title=entry.title or DUPLICATE_TITLE_FALLBACK,
            start=shift_days(entry.start, shift),
            end=shift_days(entry.end, shift),
            all_day=entry.all_day,
            workspace_id=workspace_id or None,
            priority=optional_priority(entry.priority),
            recurrence=None,
        )
