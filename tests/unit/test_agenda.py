"""Unit tests for agenda_engine.agenda."""

from datetime import datetime

import pytest

from agenda_engine.agenda import AgendaComputer, compute_agenda
from agenda_engine.config import AgendaSettings
from agenda_engine.filters import AgendaFilters
from agenda_engine.models import ExternalEvent, RecurrenceFreq, RecurrenceRule, RecurringTaskDefinition

pytestmark = pytest.mark.unit

RANGE = (datetime(2024, 1, 1), datetime(2024, 1, 8))


@pytest.fixture
def definitions():
    return [
        RecurringTaskDefinition(
            id="standup",
            title="Standup",
            start=datetime(2024, 1, 1, 9, 0),
            end=datetime(2024, 1, 1, 9, 30),
            recurrence=RecurrenceRule(freq=RecurrenceFreq.DAILY),
        ),
        RecurringTaskDefinition(
            id="review",
            title="Review",
            start=datetime(2024, 1, 2, 9, 15),
            end=datetime(2024, 1, 2, 10, 0),
            priority="high",
        ),
    ]


@pytest.fixture
def external_events():
    return [
        ExternalEvent(
            id="ext-1", title="Call", start=datetime(2024, 1, 3, 9, 0), end=datetime(2024, 1, 3, 9, 45)
        )
    ]


class TestComputeAgenda:
    """Tests for the pure agenda pipeline."""

    def test_pipeline_counts(self, definitions, external_events):
        view = compute_agenda(definitions, external_events, *RANGE)

        assert view.stats.total == 7 + 1 + 1
        assert view.stats.recurring == 7
        # Local-only conflict: review overlaps the Jan 2 standup
        assert view.stats.conflicts == 2
        # The external call adds a conflict with the Jan 3 standup
        assert view.conflict_count == 4
        assert not view.is_compact

    def test_filters_do_not_change_annotations(self, definitions, external_events):
        full = compute_agenda(definitions, external_events, *RANGE)
        filtered = compute_agenda(
            definitions, external_events, *RANGE, filters=AgendaFilters(conflicts_only=True)
        )

        assert len(filtered.entries) == 4
        assert filtered.all_entries == full.all_entries
        assert filtered.stats.displayed == 4

    def test_deterministic(self, definitions, external_events):
        assert compute_agenda(definitions, external_events, *RANGE) == compute_agenda(
            definitions, external_events, *RANGE
        )

    def test_find_prefers_local(self, definitions):
        clash = ExternalEvent(
            id="review", title="Same id", start=datetime(2024, 1, 5, 14), end=datetime(2024, 1, 5, 15)
        )
        view = compute_agenda(definitions, [clash], *RANGE)

        assert not view.find("review").is_external
        assert "review" in view.entries_by_id()
        assert all(not entry.is_external for entry in view.entries_by_id().values())
        assert view.find("missing") is None

    def test_settings_applied(self, definitions):
        settings = AgendaSettings(recurrence_iteration_cap=2)
        view = compute_agenda(definitions, [], *RANGE, settings=settings)
        assert view.stats.recurring == 2

    def test_empty_range_rejected(self, definitions):
        with pytest.raises(ValueError):
            compute_agenda(definitions, [], RANGE[1], RANGE[0])


class TestAgendaComputer:
    """Tests for the memoizing front end."""

    def test_identical_inputs_hit_cache(self, definitions, external_events):
        computer = AgendaComputer()

        first = computer.compute(definitions, external_events, *RANGE)
        second = computer.compute(list(definitions), list(external_events), *RANGE)

        assert first is second
        assert computer.cache_info().hits == 1

    def test_changed_filters_miss_cache(self, definitions):
        computer = AgendaComputer()

        computer.compute(definitions, [], *RANGE)
        computer.compute(definitions, [], *RANGE, filters=AgendaFilters(recurring_only=True))

        assert computer.cache_info().misses == 2

    def test_clear(self, definitions):
        computer = AgendaComputer()
        computer.compute(definitions, [], *RANGE)
        computer.clear()
        assert computer.cache_info().currsize == 0
