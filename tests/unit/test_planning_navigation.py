"""Unit tests for agenda_engine.planning and agenda_engine.navigation."""

from datetime import date, datetime

import pytest

from agenda_engine.models import CalendarView
from agenda_engine.navigation import default_range, shift_anchor, visible_range
from agenda_engine.planning import planning_sections, scope_to_window

pytestmark = [pytest.mark.unit, pytest.mark.fast]


class TestPlanning:
    """Tests for planning window scoping and sections."""

    def test_scope_to_window_keeps_overlapping(self, make_local_entry):
        entries = [
            make_local_entry("before", datetime(2024, 4, 1, 9), datetime(2024, 4, 1, 10)),
            make_local_entry("inside", datetime(2024, 4, 2, 9), datetime(2024, 4, 2, 10)),
            make_local_entry("straddle", datetime(2024, 4, 3, 23), datetime(2024, 4, 4, 1)),
        ]

        scoped = scope_to_window(entries, datetime(2024, 4, 2), datetime(2024, 4, 4))

        assert [e.id for e in scoped] == ["inside", "straddle"]

    def test_scope_without_window_is_identity(self, make_local_entry):
        entries = [make_local_entry("a", datetime(2024, 4, 1, 9), datetime(2024, 4, 1, 10))]
        assert scope_to_window(entries, None, None) == entries
        assert scope_to_window(entries, datetime(2024, 4, 5), datetime(2024, 4, 5)) == entries

    def test_sections_grouped_by_start_day(self, make_local_entry, make_external_entry):
        entries = [
            make_local_entry("b", datetime(2024, 4, 2, 15), datetime(2024, 4, 2, 16)),
            make_external_entry("a", datetime(2024, 4, 2, 8), datetime(2024, 4, 2, 9)),
            make_local_entry("c", datetime(2024, 4, 1, 12), datetime(2024, 4, 1, 13)),
        ]

        sections = planning_sections(entries)

        assert [s.date_key for s in sections] == ["2024-04-01", "2024-04-02"]
        assert [e.id for e in sections[1].entries] == ["a", "b"]


class TestNavigation:
    """Tests for visible ranges."""

    def test_day_range(self):
        assert visible_range(CalendarView.DAY, datetime(2024, 5, 15, 13, 45)) == (
            datetime(2024, 5, 15),
            datetime(2024, 5, 16),
        )

    def test_week_range_starts_monday(self):
        # 2024-05-15 is a Wednesday
        assert visible_range("week", date(2024, 5, 15)) == (datetime(2024, 5, 13), datetime(2024, 5, 20))

    def test_month_range_is_six_week_grid(self):
        start, end = visible_range(CalendarView.MONTH, date(2024, 5, 15))
        # May 1st 2024 is a Wednesday
        assert start == datetime(2024, 4, 29)
        assert (end - start).days == 42

    @pytest.mark.parametrize(
        "view,action,expected",
        [
            ("day", "next", date(2024, 1, 1)),
            ("day", "prev", date(2023, 12, 30)),
            ("week", "next", date(2024, 1, 7)),
            ("month", "next", date(2024, 1, 1)),
            ("month", "prev", date(2023, 11, 1)),
        ],
    )
    def test_shift_anchor(self, view, action, expected):
        assert shift_anchor(view, date(2023, 12, 31), action) == expected

    def test_shift_anchor_today(self):
        assert shift_anchor("month", date(2020, 1, 1), "today", today=date(2024, 7, 4)) == date(2024, 7, 4)

    def test_default_range(self):
        now = datetime(2024, 3, 1, 12)
        start, end = default_range(now)
        assert (now - start).days == 45
        assert (end - now).days == 45


class TestSessionRange:
    """Tests for the session's visible range and busy state."""

    def test_set_visible_range(self, session):
        session.set_visible_range(datetime(2024, 4, 29), datetime(2024, 6, 10))
        assert (session.range_start, session.range_end) == (datetime(2024, 4, 29), datetime(2024, 6, 10))

    def test_empty_range_rejected(self, session):
        with pytest.raises(ValueError):
            session.set_visible_range(datetime(2024, 5, 1), datetime(2024, 5, 1))

    def test_busy_flags(self, session):
        assert not session.is_busy
        session.duplicating = True
        assert session.is_busy
