"""Draft lifecycle: create, edit a whole series, detach one occurrence, skip.

The single active Draft lives on the caller's ``AgendaSession``. Its phase
moves ``closed -> open_new | open_edit -> validating -> persisting -> closed``;
validation and persistence failures fall back to the open phase with
``session.error`` set so the user can retry.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Optional, Union

from .datetime_utils import (
    DEFAULT_TIMED_DURATION,
    ONE_DAY,
    date_key,
    parse_draft_datetime,
    parse_local_date_only,
    to_local_date_input_value,
    to_local_input_value,
)
from .exceptions import (
    DraftNotOpenError,
    DraftValidationError,
    OccurrenceDetachError,
    to_user_error_message,
)
from .models import (
    AgendaEntry,
    CalendarView,
    Draft,
    DraftPhase,
    EditScope,
    LocalOrigin,
    Priority,
    RecurrenceRule,
)
from .ports import CreateEventInput, EventPersistence, RecurrenceInput, SupportsDetach, UpdateEventInput
from .session import AgendaSession

logger = logging.getLogger(__name__)

SAVE_ERROR_MESSAGE = "Could not save the event."
SKIP_ERROR_MESSAGE = "Could not skip this occurrence."
INVALID_DATE_MESSAGE = "Invalid date/time."
INVALID_UNTIL_MESSAGE = "Invalid recurrence end date."
END_BEFORE_START_MESSAGE = "End must be after start."
TITLE_REQUIRED_MESSAGE = "Title is required."

# All-day ends are exclusive; the edit buffer shows the last included day
_INCLUSIVE_END_OFFSET = timedelta(microseconds=1)


def _display_end(end: datetime, all_day: bool) -> str:
    if all_day:
        return to_local_date_input_value(end - _INCLUSIVE_END_OFFSET)
    return to_local_input_value(end)


def _display_start(start: datetime, all_day: bool) -> str:
    return to_local_date_input_value(start) if all_day else to_local_input_value(start)


def optional_priority(priority: Optional[Priority]) -> Optional[Priority]:
    """Map the "none" priority to an unset one for persistence."""
    if priority is None or priority is Priority.NONE:
        return None
    return priority


def recurrence_input_from_rule(rule: Optional[RecurrenceRule]) -> Optional[RecurrenceInput]:
    if rule is None:
        return None
    return RecurrenceInput(
        freq=rule.freq,
        interval=rule.interval,
        until=rule.until,
        exceptions=tuple(sorted(rule.exceptions)),
    )


async def detach_occurrence(
    persistence: Any, task_id: str, instance_date: str, event: CreateEventInput
) -> None:
    """Remove one instance from its series and create its standalone replacement.

    Uses the collaborator's single ``detach_occurrence`` call when available.
    Otherwise runs skip then create, which is not atomic: a failure in the
    create step leaves the instance removed without a replacement and is
    raised as ``OccurrenceDetachError`` with ``step="create"``.

    Raises:
        OccurrenceDetachError: If either step fails
    """
    if isinstance(persistence, SupportsDetach):
        logger.debug("Detaching %s@%s with single-call detach", task_id, instance_date)
        await persistence.detach_occurrence(task_id, instance_date, event)
        return

    try:
        await persistence.skip_occurrence(task_id, instance_date)
    except Exception as exc:
        raise OccurrenceDetachError(
            f"Could not detach the occurrence: {exc}",
            step="skip",
            task_id=task_id,
            instance_date=instance_date,
        ) from exc

    try:
        await persistence.create_event(event)
    except Exception as exc:
        logger.error(
            "Occurrence %s@%s was skipped but its replacement could not be created",
            task_id,
            instance_date,
        )
        raise OccurrenceDetachError(
            f"The occurrence of {instance_date} was removed from its series "
            f"but its replacement could not be created: {exc}",
            step="create",
            task_id=task_id,
            instance_date=instance_date,
        ) from exc


class DraftMutationManager:
    """Opens, validates and persists the session's Draft.

    Every persisting operation checks ``session.draft_saving`` first and
    returns ``False`` without touching the persistence collaborator when a
    mutation is already in flight.
    """

    def __init__(self, persistence: EventPersistence, settings: Any = None):
        self.persistence = persistence
        self.settings = settings
        minutes = getattr(settings, "default_event_minutes", 60)
        self.default_duration = timedelta(minutes=minutes) if minutes else DEFAULT_TIMED_DURATION

    # Opening

    def open_from_selection(
        self,
        session: AgendaSession,
        start: datetime,
        end: datetime,
        all_day: bool,
        view: Union[CalendarView, str, None] = None,
    ) -> Optional[Draft]:
        """Seed a new Draft from a user-selected range.

        Week and day views are hourly grids, so their selections are always
        timed regardless of the selection's own all-day flag.
        """
        if session.draft_saving:
            logger.debug("Ignoring selection while a save is in progress")
            return None

        if view is not None and CalendarView(view).is_time_grid:
            all_day = False
        if end <= start:
            end = start + self.default_duration

        draft = Draft(
            title="",
            start_local=_display_start(start, all_day),
            end_local=_display_end(end, all_day),
            all_day=all_day,
        )
        self._open(session, draft, DraftPhase.OPEN_NEW)
        return draft

    def open_from_event(self, session: AgendaSession, entry: AgendaEntry) -> Optional[Draft]:
        """Seed an edit Draft from a local entry; external entries are read-only."""
        origin = entry.origin
        if not isinstance(origin, LocalOrigin):
            logger.debug("Ignoring click on external event %s", entry.id)
            return None
        if session.draft_saving:
            logger.debug("Ignoring event click while a save is in progress")
            return None

        recurrence = origin.recurrence
        scope = (
            EditScope.OCCURRENCE
            if recurrence is not None and origin.instance_date
            else EditScope.SERIES
        )
        draft = Draft(
            task_id=origin.task_id,
            instance_date=origin.instance_date,
            title=entry.title,
            start_local=_display_start(entry.start, entry.all_day),
            end_local=_display_end(entry.end, entry.all_day),
            all_day=entry.all_day,
            workspace_id=origin.workspace_id or "",
            priority=optional_priority(origin.priority),
            recurrence_freq=recurrence.freq if recurrence else None,
            recurrence_until=date_key(recurrence.until) if recurrence and recurrence.until else "",
            recurrence_interval=recurrence.interval if recurrence else 1,
            recurrence_exceptions=recurrence.exceptions if recurrence else frozenset(),
            edit_scope=scope,
        )
        self._open(session, draft, DraftPhase.OPEN_EDIT)
        return draft

    def open_quick_draft(self, session: AgendaSession, now: Optional[datetime] = None) -> Optional[Draft]:
        """Open a blank timed Draft starting now."""
        if session.draft_saving:
            return None
        start = (now or datetime.now()).replace(second=0, microsecond=0)
        draft = Draft(
            start_local=to_local_input_value(start),
            end_local=to_local_input_value(start + self.default_duration),
        )
        self._open(session, draft, DraftPhase.OPEN_NEW)
        return draft

    @staticmethod
    def _open(session: AgendaSession, draft: Draft, phase: DraftPhase) -> None:
        session.draft = draft
        session.draft_phase = phase
        logger.debug("Draft opened (%s, scope=%s)", phase.value, draft.edit_scope.value)

    # Editing

    def update_draft(self, session: AgendaSession, **changes: Any) -> Draft:
        """Assign Draft fields; values are validated on assignment."""
        draft = self._require_draft(session)
        for name, value in changes.items():
            if name not in Draft.model_fields:
                raise AttributeError(f"Draft has no field {name!r}")
            setattr(draft, name, value)
        return draft

    def set_edit_scope(self, session: AgendaSession, scope: Union[EditScope, str]) -> None:
        draft = self._require_draft(session)
        draft.edit_scope = EditScope(scope)

    def cancel(self, session: AgendaSession) -> bool:
        """Discard the Draft unless it is being persisted."""
        if session.draft_saving:
            return False
        session.close_draft()
        return True

    @staticmethod
    def _require_draft(session: AgendaSession) -> Draft:
        if session.draft is None:
            raise DraftNotOpenError("No draft is open")
        return session.draft

    # Validation

    def validate(self, draft: Draft) -> tuple[datetime, datetime]:
        """Parse and check the Draft's window.

        Returns:
            ``(start, end)`` with an exclusive all-day end

        Raises:
            DraftValidationError: If a date is invalid, the end is not after
                the start or the title is blank
        """
        start = parse_draft_datetime(draft.start_local, draft.all_day)
        end = parse_draft_datetime(draft.end_local, draft.all_day)
        if start is None or end is None:
            raise DraftValidationError(INVALID_DATE_MESSAGE)

        if draft.all_day:
            end = end + ONE_DAY
        if end <= start:
            raise DraftValidationError(END_BEFORE_START_MESSAGE)
        if not draft.title.strip():
            raise DraftValidationError(TITLE_REQUIRED_MESSAGE)
        if draft.recurrence_freq is not None and draft.recurrence_until:
            if parse_local_date_only(draft.recurrence_until) is None:
                raise DraftValidationError(INVALID_UNTIL_MESSAGE)
        return start, end

    @staticmethod
    def build_recurrence(draft: Draft) -> Optional[RecurrenceInput]:
        """Recurrence payload for the Draft, or None without a frequency.

        ``until`` covers the whole chosen day. New definitions start with
        interval 1 and no exceptions; series updates keep the existing ones.
        """
        if draft.recurrence_freq is None:
            return None
        until_day = parse_local_date_only(draft.recurrence_until) if draft.recurrence_until else None
        until = until_day.replace(hour=23, minute=59, second=59) if until_day else None
        if draft.is_new:
            return RecurrenceInput(freq=draft.recurrence_freq, interval=1, until=until)
        return RecurrenceInput(
            freq=draft.recurrence_freq,
            interval=draft.recurrence_interval,
            until=until,
            exceptions=tuple(sorted(draft.recurrence_exceptions)),
        )

    @staticmethod
    def is_occurrence_edit(draft: Draft) -> bool:
        return bool(
            draft.task_id
            and draft.instance_date
            and draft.recurrence_freq is not None
            and draft.edit_scope is EditScope.OCCURRENCE
        )

    # Persisting

    async def save(self, session: AgendaSession) -> bool:
        """Validate and persist the Draft.

        Returns:
            True when the Draft was persisted and closed
        """
        draft = session.draft
        if draft is None:
            logger.debug("save() called without an open draft")
            return False
        if session.draft_saving:
            logger.debug("save() ignored: a mutation is already in progress")
            return False

        open_phase = DraftPhase.OPEN_NEW if draft.is_new else DraftPhase.OPEN_EDIT
        session.draft_phase = DraftPhase.VALIDATING
        try:
            start, end = self.validate(draft)
        except DraftValidationError as exc:
            logger.debug("Draft validation failed: %s", exc)
            session.error = str(exc)
            session.draft_phase = open_phase
            return False

        title = draft.title.strip()
        workspace_id = draft.workspace_id or None
        priority = optional_priority(draft.priority)

        session.draft_saving = True
        session.draft_phase = DraftPhase.PERSISTING
        session.clear_error()
        try:
            if self.is_occurrence_edit(draft):
                replacement = CreateEventInput(
                    title=title,
                    start=start,
                    end=end,
                    all_day=draft.all_day,
                    workspace_id=workspace_id,
                    priority=priority,
                    recurrence=None,
                )
                await detach_occurrence(self.persistence, draft.task_id, draft.instance_date, replacement)
                logger.info("Detached occurrence %s of task %s", draft.instance_date, draft.task_id)
            elif draft.task_id:
                await self.persistence.update_event(
                    UpdateEventInput(
                        task_id=draft.task_id,
                        title=title,
                        start=start,
                        end=end,
                        all_day=draft.all_day,
                        workspace_id=workspace_id,
                        priority=priority,
                        recurrence=self.build_recurrence(draft),
                    )
                )
                logger.info("Updated task %s", draft.task_id)
            else:
                await self.persistence.create_event(
                    CreateEventInput(
                        title=title,
                        start=start,
                        end=end,
                        all_day=draft.all_day,
                        workspace_id=workspace_id,
                        priority=priority,
                        recurrence=self.build_recurrence(draft),
                    )
                )
                logger.info("Created event %r", title)
        except Exception as exc:
            logger.exception("Failed to persist draft")
            session.error = to_user_error_message(exc, SAVE_ERROR_MESSAGE)
            session.draft_phase = open_phase
            return False
        finally:
            session.draft_saving = False

        session.close_draft()
        return True

    async def skip_occurrence(self, session: AgendaSession) -> bool:
        """Add the Draft's instance date to its series exceptions, no replacement."""
        draft = session.draft
        if draft is None or not (draft.task_id and draft.instance_date and draft.recurrence_freq):
            logger.debug("skip_occurrence() needs an open draft on a recurring instance")
            return False
        if session.draft_saving:
            return False

        session.draft_saving = True
        session.draft_phase = DraftPhase.PERSISTING
        session.clear_error()
        try:
            await self.persistence.skip_occurrence(draft.task_id, draft.instance_date)
        except Exception as exc:
            logger.exception("Failed to skip occurrence %s of %s", draft.instance_date, draft.task_id)
            session.error = to_user_error_message(exc, SKIP_ERROR_MESSAGE)
            session.draft_phase = DraftPhase.OPEN_EDIT
            return False
        finally:
            session.draft_saving = False

        logger.info("Skipped occurrence %s of task %s", draft.instance_date, draft.task_id)
        session.close_draft()
        return True

