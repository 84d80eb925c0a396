"""Unit tests for agenda_engine.draft_manager."""

from datetime import datetime

import pytest

from agenda_engine.draft_manager import (
    END_BEFORE_START_MESSAGE,
    INVALID_DATE_MESSAGE,
    TITLE_REQUIRED_MESSAGE,
    DraftMutationManager,
)
from agenda_engine.exceptions import DraftNotOpenError, PersistenceError
from agenda_engine.models import (
    CalendarView,
    DraftPhase,
    EditScope,
    Priority,
    RecurrenceFreq,
    RecurrenceRule,
    RecurringTaskDefinition,
)
from agenda_engine.recurrence_expander import RecurrenceExpander

pytestmark = pytest.mark.unit


@pytest.fixture
def manager(persistence):
    return DraftMutationManager(persistence)


@pytest.fixture
def weekly_instance(make_local_entry):
    """Jan 8 instance of a weekly series with one prior exception."""
    rule = RecurrenceRule(
        freq=RecurrenceFreq.WEEKLY,
        interval=2,
        until=datetime(2024, 3, 31, 23, 59, 59),
        exceptions=frozenset({"2024-01-22"}),
    )
    return make_local_entry(
        "series__2024-01-08T10:00:00",
        datetime(2024, 1, 8, 10),
        datetime(2024, 1, 8, 11),
        title="Yoga",
        task_id="series",
        instance_date="2024-01-08",
        recurrence=rule,
        workspace_id="home",
        priority=Priority.MEDIUM,
    )


class TestOpenDraft:
    """Tests for opening drafts."""

    def test_open_from_selection_in_time_grid_forces_timed(self, manager, session):
        draft = manager.open_from_selection(
            session, datetime(2024, 1, 3), datetime(2024, 1, 4), all_day=True, view=CalendarView.WEEK
        )

        assert not draft.all_day
        assert draft.start_local == "2024-01-03T00:00"
        assert draft.end_local == "2024-01-04T00:00"
        assert session.draft_phase is DraftPhase.OPEN_NEW
        assert draft.edit_scope is EditScope.SERIES

    def test_open_from_selection_month_all_day_shows_inclusive_end(self, manager, session):
        draft = manager.open_from_selection(
            session, datetime(2024, 1, 3), datetime(2024, 1, 5), all_day=True, view="month"
        )

        assert draft.all_day
        assert draft.start_local == "2024-01-03"
        assert draft.end_local == "2024-01-04"

    def test_open_from_selection_empty_range_defaults_to_one_hour(self, manager, session):
        start = datetime(2024, 1, 3, 14)
        draft = manager.open_from_selection(session, start, start, all_day=False, view="day")
        assert draft.end_local == "2024-01-03T15:00"

    def test_open_from_event_ignores_external(self, manager, session, make_external_entry):
        entry = make_external_entry("ext", datetime(2024, 1, 3, 9), datetime(2024, 1, 3, 10))

        assert manager.open_from_event(session, entry) is None
        assert session.draft is None
        assert session.draft_phase is DraftPhase.CLOSED

    def test_open_from_event_recurring_instance_defaults_to_occurrence(self, manager, session, weekly_instance):
        draft = manager.open_from_event(session, weekly_instance)

        assert draft.task_id == "series"
        assert draft.instance_date == "2024-01-08"
        assert draft.edit_scope is EditScope.OCCURRENCE
        assert draft.recurrence_freq is RecurrenceFreq.WEEKLY
        assert draft.recurrence_until == "2024-03-31"
        assert draft.workspace_id == "home"
        assert draft.priority is Priority.MEDIUM
        assert session.draft_phase is DraftPhase.OPEN_EDIT

    def test_open_from_event_bare_task_defaults_to_series(self, manager, session, make_local_entry):
        entry = make_local_entry("task", datetime(2024, 1, 3, 9), datetime(2024, 1, 3, 10))
        draft = manager.open_from_event(session, entry)
        assert draft.edit_scope is EditScope.SERIES
        assert draft.priority is None

    def test_open_quick_draft(self, manager, session):
        draft = manager.open_quick_draft(session, now=datetime(2024, 1, 3, 9, 17, 42))
        assert draft.start_local == "2024-01-03T09:17"
        assert draft.end_local == "2024-01-03T10:17"
        assert draft.is_new

    def test_set_scope_requires_open_draft(self, manager, session):
        with pytest.raises(DraftNotOpenError):
            manager.set_edit_scope(session, EditScope.SERIES)

    def test_cancel_closes(self, manager, session):
        manager.open_quick_draft(session)
        assert manager.cancel(session)
        assert session.draft is None
        assert session.draft_phase is DraftPhase.CLOSED


class TestSaveValidation:
    """Validation keeps the draft open and never calls persistence."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "changes,message",
        [
            ({"title": "   "}, TITLE_REQUIRED_MESSAGE),
            ({"title": "x", "end_local": "2024-01-03T08:00"}, END_BEFORE_START_MESSAGE),
            ({"title": "x", "end_local": "2024-01-03T09:00"}, END_BEFORE_START_MESSAGE),
            ({"title": "x", "start_local": "2024-02-30T09:00"}, INVALID_DATE_MESSAGE),
            ({"title": "x", "end_local": "tomorrow"}, INVALID_DATE_MESSAGE),
        ],
    )
    async def test_invalid_draft_rejected(self, manager, session, persistence, changes, message):
        manager.open_from_selection(session, datetime(2024, 1, 3, 9), datetime(2024, 1, 3, 10), False)
        manager.update_draft(session, **changes)

        assert await manager.save(session) is False

        assert session.error == message
        assert session.draft is not None
        assert session.draft_phase is DraftPhase.OPEN_NEW
        assert persistence.calls == []

    @pytest.mark.asyncio
    async def test_single_day_all_day_is_valid(self, manager, session, persistence):
        """All-day end equal to start is one full day once made exclusive."""
        manager.open_from_selection(session, datetime(2024, 1, 3), datetime(2024, 1, 4), True, "month")
        manager.update_draft(session, title="Holiday")

        assert await manager.save(session) is True

        created = persistence.payloads("create_event")[0]
        assert created.start == datetime(2024, 1, 3)
        assert created.end == datetime(2024, 1, 4)
        assert created.all_day


class TestSaveDispatch:
    """Tests for save dispatch to persistence."""

    @pytest.mark.asyncio
    async def test_new_recurring_draft_creates_with_interval_one(self, manager, session, persistence):
        manager.open_from_selection(session, datetime(2024, 1, 3, 9), datetime(2024, 1, 3, 10), False)
        manager.update_draft(
            session,
            title="  Gym  ",
            recurrence_freq=RecurrenceFreq.DAILY,
            recurrence_until="2024-01-31",
            priority=Priority.HIGH,
            workspace_id="ws",
        )

        assert await manager.save(session) is True

        assert persistence.names() == ["create_event"]
        created = persistence.payloads("create_event")[0]
        assert created.title == "Gym"
        assert created.recurrence.interval == 1
        assert created.recurrence.exceptions == ()
        assert created.recurrence.until == datetime(2024, 1, 31, 23, 59, 59)
        assert created.priority is Priority.HIGH
        assert created.workspace_id == "ws"
        assert session.draft is None
        assert session.draft_phase is DraftPhase.CLOSED
        assert not session.draft_saving

    @pytest.mark.asyncio
    async def test_occurrence_scope_detaches(self, manager, session, persistence, weekly_instance):
        """Editing one occurrence skips it and creates one standalone definition."""
        manager.open_from_event(session, weekly_instance)
        manager.update_draft(session, title="Yoga (moved)", start_local="2024-01-09T18:00", end_local="2024-01-09T19:00")

        assert await manager.save(session) is True

        assert persistence.names() == ["skip_occurrence", "create_event"]
        assert persistence.payloads("skip_occurrence") == [("series", "2024-01-08")]
        created = persistence.payloads("create_event")[0]
        assert created.title == "Yoga (moved)"
        assert created.start == datetime(2024, 1, 9, 18)
        assert created.recurrence is None
        assert created.workspace_id == "home"
        assert persistence.exceptions == {"series": {"2024-01-08"}}

    @pytest.mark.asyncio
    async def test_occurrence_detach_reexpands_without_that_date(
        self, manager, session, persistence, weekly_instance
    ):
        """After a detach the series loses only that date and gains one standalone task."""
        rule = weekly_instance.origin.recurrence
        parent = RecurringTaskDefinition(
            id="series",
            title="Yoga",
            start=datetime(2024, 1, 8, 10),
            end=datetime(2024, 1, 8, 11),
            recurrence=rule,
            workspace_id="home",
        )
        expander = RecurrenceExpander()
        range_start, range_end = datetime(2024, 1, 1), datetime(2024, 4, 1)
        before = expander.expand([parent], range_start, range_end)

        manager.open_from_event(session, weekly_instance)
        manager.update_draft(session, start_local="2024-01-09T18:00", end_local="2024-01-09T19:00")
        assert await manager.save(session) is True

        exceptions = rule.exceptions | persistence.exceptions["series"]
        updated_parent = parent.model_copy(
            update={"recurrence": rule.model_copy(update={"exceptions": exceptions})}
        )
        standalone = [
            RecurringTaskDefinition(id=f"new-{i}", title=event.title, start=event.start, end=event.end)
            for i, event in enumerate(persistence.payloads("create_event"))
        ]
        after = expander.expand([updated_parent, *standalone], range_start, range_end)

        series_after = [o for o in after if o.task_id == "series"]
        assert [(o.start, o.end) for o in series_after] == [
            (o.start, o.end) for o in before if o.instance_date != "2024-01-08"
        ]
        assert len(series_after) == len(before) - 1
        others = [o for o in after if o.task_id != "series"]
        assert len(others) == 1
        assert others[0].recurrence is None
        assert (others[0].start, others[0].end) == (datetime(2024, 1, 9, 18), datetime(2024, 1, 9, 19))

    @pytest.mark.asyncio
    async def test_occurrence_scope_uses_single_call_detach(self, session, detaching_persistence, weekly_instance):
        manager = DraftMutationManager(detaching_persistence)
        manager.open_from_event(session, weekly_instance)

        assert await manager.save(session) is True

        assert detaching_persistence.names() == ["detach_occurrence"]
        task_id, instance_date, event = detaching_persistence.payloads("detach_occurrence")[0]
        assert (task_id, instance_date) == ("series", "2024-01-08")
        assert event.recurrence is None

    @pytest.mark.asyncio
    async def test_series_scope_updates_and_preserves_rule(self, manager, session, persistence, weekly_instance):
        manager.open_from_event(session, weekly_instance)
        manager.set_edit_scope(session, "series")
        manager.update_draft(session, title="Yoga flow")

        assert await manager.save(session) is True

        assert persistence.names() == ["update_event"]
        update = persistence.payloads("update_event")[0]
        assert update.task_id == "series"
        assert update.title == "Yoga flow"
        assert update.recurrence.interval == 2
        assert update.recurrence.exceptions == ("2024-01-22",)
        assert update.recurrence.until == datetime(2024, 3, 31, 23, 59, 59)

    @pytest.mark.asyncio
    async def test_persistence_failure_keeps_draft_open(self, manager, session, persistence):
        persistence.fail_on["create_event"] = PersistenceError("Network down")
        manager.open_from_selection(session, datetime(2024, 1, 3, 9), datetime(2024, 1, 3, 10), False)
        manager.update_draft(session, title="Call")

        assert await manager.save(session) is False

        assert session.error == "Network down"
        assert session.draft is not None
        assert session.draft_phase is DraftPhase.OPEN_NEW
        assert not session.draft_saving

    @pytest.mark.asyncio
    async def test_detach_create_failure_reports_removed_instance(
        self, manager, session, persistence, weekly_instance
    ):
        persistence.fail_on["create_event"] = RuntimeError("quota exceeded")
        manager.open_from_event(session, weekly_instance)

        assert await manager.save(session) is False

        assert persistence.names() == ["skip_occurrence"]
        assert "removed from its series" in session.error
        assert "quota exceeded" in session.error
        assert session.draft_phase is DraftPhase.OPEN_EDIT

    @pytest.mark.asyncio
    async def test_busy_session_rejects_second_save(self, manager, session, persistence):
        manager.open_quick_draft(session, now=datetime(2024, 1, 3, 9))
        manager.update_draft(session, title="Call")
        session.draft_saving = True

        assert await manager.save(session) is False
        assert persistence.calls == []

    @pytest.mark.asyncio
    async def test_save_without_draft(self, manager, session, persistence):
        assert await manager.save(session) is False
        assert persistence.calls == []


class TestSkipOccurrence:
    """Tests for skipping one occurrence."""

    @pytest.mark.asyncio
    async def test_skip_adds_exception_only(self, manager, session, persistence, weekly_instance):
        manager.open_from_event(session, weekly_instance)

        assert await manager.skip_occurrence(session) is True

        assert persistence.names() == ["skip_occurrence"]
        assert session.draft is None

    @pytest.mark.asyncio
    async def test_skip_requires_recurring_instance(self, manager, session, persistence, make_local_entry):
        manager.open_from_event(session, make_local_entry("t", datetime(2024, 1, 3, 9), datetime(2024, 1, 3, 10)))

        assert await manager.skip_occurrence(session) is False
        assert persistence.calls == []

    @pytest.mark.asyncio
    async def test_skip_failure_surfaces_error(self, manager, session, persistence, weekly_instance):
        persistence.fail_on["skip_occurrence"] = RuntimeError("")
        manager.open_from_event(session, weekly_instance)

        assert await manager.skip_occurrence(session) is False
        assert session.error == "Could not skip this occurrence."
        assert session.draft is not None
