"""Drag and resize commits, the non-modal path to the mutation engine."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Optional

from .datetime_utils import DEFAULT_TIMED_DURATION, ONE_DAY
from .draft_manager import detach_occurrence, optional_priority, recurrence_input_from_rule
from .exceptions import OccurrenceDetachError, to_user_error_message
from .models import AgendaEntry, LocalOrigin
from .ports import CreateEventInput, EventPersistence, UpdateEventInput
from .session import AgendaSession

logger = logging.getLogger(__name__)

MOVE_ERROR_MESSAGE = "Could not move or resize this agenda item."
OCCURRENCE_TITLE_FALLBACK = "Occurrence"


class EventMutationHandler:
    """Applies a pointer-driven move or resize to the underlying task.

    Bare events are updated in place. Dated instances of a series are
    detached: skipped in the series and recreated standalone at the new time.
    Any failure calls ``revert`` so the caller can restore the previous
    position; nothing is partially applied on the display side.
    """

    def __init__(self, persistence: EventPersistence):
        self.persistence = persistence

    async def handle_move_or_resize(
        self,
        session: AgendaSession,
        entry: AgendaEntry,
        start: Optional[datetime],
        end: Optional[datetime],
        all_day: bool,
        revert: Callable[[], None],
    ) -> bool:
        """Persist a moved or resized entry.

        Args:
            session: Caller's agenda session (busy flag and error)
            entry: Entry as it was before the gesture
            start: New start; None when the display could not provide one
            end: New end; None defaults to one day (all-day) or one hour
            all_day: New all-day flag
            revert: Restores the entry's previous display position

        Returns:
            True when the change was persisted
        """
        origin = entry.origin
        if not isinstance(origin, LocalOrigin) or not origin.task_id or start is None:
            logger.debug("Reverting unusable move of %s", entry.id)
            revert()
            return False

        if end is None:
            end = start + (ONE_DAY if all_day else DEFAULT_TIMED_DURATION)
        if end <= start:
            logger.debug("Reverting move of %s: end not after start", entry.id)
            revert()
            return False

        if session.draft_saving:
            logger.debug("Reverting move of %s: a mutation is already in progress", entry.id)
            revert()
            return False

        session.draft_saving = True
        session.clear_error()
        try:
            await self._persist(entry, origin, start, end, all_day)
        except Exception as exc:
            logger.exception("Failed to move or resize %s", entry.id)
            revert()
            if isinstance(exc, OccurrenceDetachError) and exc.instance_removed:
                session.error = to_user_error_message(exc, MOVE_ERROR_MESSAGE)
            else:
                session.error = MOVE_ERROR_MESSAGE
            return False
        finally:
            session.draft_saving = False
        return True

    async def _persist(
        self,
        entry: AgendaEntry,
        origin: LocalOrigin,
        start: datetime,
        end: datetime,
        all_day: bool,
    ) -> None:
        workspace_id = origin.workspace_id or None
        priority = optional_priority(origin.priority)

        if origin.instance_date and origin.recurrence is not None:
            replacement = CreateEventInput(
                title=entry.title or OCCURRENCE_TITLE_FALLBACK,
                start=start,
                end=end,
                all_day=all_day,
                workspace_id=workspace_id,
                priority=priority,
                recurrence=None,
            )
            await detach_occurrence(self.persistence, origin.task_id, origin.instance_date, replacement)
            logger.info(
                "Moved occurrence %s of task %s to %s", origin.instance_date, origin.task_id, start.isoformat()
            )
            return

        await self.persistence.update_event(
            UpdateEventInput(
                task_id=origin.task_id,
                start=start,
                end=end,
                all_day=all_day,
                workspace_id=workspace_id,
                priority=priority,
                recurrence=recurrence_input_from_rule(origin.recurrence),
            )
        )
        logger.info("Moved task %s to %s", origin.task_id, start.isoformat())
