"""Unit tests for agenda_engine.selection."""

from datetime import date, datetime

import pytest

from agenda_engine.models import Priority
from agenda_engine.selection import INVALID_TARGET_MESSAGE, SelectionDuplicator, parse_target_date
from agenda_engine.session import DisplayMode

pytestmark = pytest.mark.unit


@pytest.fixture
def duplicator(persistence):
    return SelectionDuplicator(persistence)


@pytest.fixture
def planning_entries(make_local_entry, make_external_entry, weekly_rule):
    return [
        make_local_entry(
            "standup__2024-05-01T10:00:00",
            datetime(2024, 5, 1, 10),
            datetime(2024, 5, 1, 11),
            title="Standup",
            task_id="standup",
            instance_date="2024-05-01",
            recurrence=weekly_rule,
            workspace_id="team",
            priority=Priority.NONE,
        ),
        make_local_entry(
            "review", datetime(2024, 5, 3, 15), datetime(2024, 5, 3, 16), title="", priority=Priority.HIGH
        ),
        make_external_entry("ext", datetime(2024, 5, 2, 9), datetime(2024, 5, 2, 10)),
    ]


class TestSelection:
    """Tests for toggling the selection."""

    def test_toggle_adds_and_removes(self, duplicator, session, planning_entries):
        entry = planning_entries[1]

        assert duplicator.toggle(session, entry) is True
        assert session.selected_ids == ["review"]
        assert duplicator.toggle(session, entry) is False
        assert session.selected_ids == []

    def test_external_entries_not_selectable(self, duplicator, session, planning_entries):
        assert duplicator.toggle(session, planning_entries[2]) is False
        assert session.selected_ids == []

    def test_selected_entries_sorted_and_filtered(self, duplicator, session, planning_entries):
        session.selected_ids = ["review", "ext", "gone", "standup__2024-05-01T10:00:00"]

        selected = duplicator.selected_entries(session, planning_entries)

        assert [e.id for e in selected] == ["standup__2024-05-01T10:00:00", "review"]

    def test_calendar_mode_clears_selection(self, duplicator, session, planning_entries):
        session.set_display_mode(DisplayMode.PLANNING)
        duplicator.toggle(session, planning_entries[0])

        session.set_display_mode("calendar")

        assert session.selected_ids == []


class TestDuplicate:
    """Tests for duplicating the selection."""

    @pytest.mark.asyncio
    async def test_duplicate_by_days_creates_standalone_copy(self, duplicator, session, persistence, planning_entries):
        duplicator.toggle(session, planning_entries[0])

        assert await duplicator.duplicate_by_days(session, planning_entries, 7) is True

        created = persistence.payloads("create_event")
        assert len(created) == 1
        assert created[0].title == "Standup"
        assert created[0].start == datetime(2024, 5, 8, 10)
        assert created[0].end == datetime(2024, 5, 8, 11)
        assert created[0].recurrence is None
        assert created[0].priority is None
        assert created[0].workspace_id == "team"
        assert session.selected_ids == []
        assert not session.duplicating

    @pytest.mark.asyncio
    async def test_duplicate_to_date_preserves_spacing(self, duplicator, session, persistence, planning_entries):
        session.selected_ids = ["review", "standup__2024-05-01T10:00:00"]

        assert await duplicator.duplicate_to_date(session, planning_entries, "2024-06-10") is True

        first, second = persistence.payloads("create_event")
        assert first.start == datetime(2024, 6, 10, 10)
        assert second.start == datetime(2024, 6, 12, 15)
        assert second.title == "Agenda item"
        assert second.priority is Priority.HIGH

    @pytest.mark.asyncio
    async def test_duplicate_to_earlier_date(self, duplicator, session, persistence, planning_entries):
        session.selected_ids = ["review"]

        await duplicator.duplicate_to_date(session, planning_entries, date(2024, 4, 30))

        assert persistence.payloads("create_event")[0].start == datetime(2024, 4, 30, 15)

    @pytest.mark.asyncio
    async def test_invalid_target_rejected(self, duplicator, session, persistence, planning_entries):
        session.selected_ids = ["review"]

        assert await duplicator.duplicate_to_date(session, planning_entries, "2024-13-01") is False

        assert session.error == INVALID_TARGET_MESSAGE
        assert persistence.calls == []
        assert session.selected_ids == ["review"]

    @pytest.mark.asyncio
    async def test_failure_keeps_selection(self, duplicator, session, persistence, planning_entries):
        persistence.fail_on["create_event"] = RuntimeError("disk full")
        persistence.fail_after["create_event"] = 1
        session.selected_ids = ["review", "standup__2024-05-01T10:00:00"]

        assert await duplicator.duplicate_by_days(session, planning_entries, 1) is False

        assert len(persistence.payloads("create_event")) == 1
        assert session.error == "disk full"
        assert session.selected_ids == ["review", "standup__2024-05-01T10:00:00"]
        assert not session.duplicating

    @pytest.mark.asyncio
    async def test_busy_or_empty_selection_is_noop(self, duplicator, session, persistence, planning_entries):
        assert await duplicator.duplicate_by_days(session, planning_entries, 1) is False

        session.selected_ids = ["review"]
        session.duplicating = True
        assert await duplicator.duplicate_by_days(session, planning_entries, 1) is False
        assert persistence.calls == []


@pytest.mark.parametrize(
    "value,expected",
    [
        ("2024-05-08", date(2024, 5, 8)),
        (" 2024-05-08 ", date(2024, 5, 8)),
        (datetime(2024, 5, 8, 13), date(2024, 5, 8)),
        (date(2024, 5, 8), date(2024, 5, 8)),
        ("08/05/2024", None),
        ("2024-02-30", None),
    ],
)
def test_parse_target_date(value, expected):
    assert parse_target_date(value) == expected
