"""Shared fixtures for agenda_engine tests."""

from __future__ import annotations

import os
from collections.abc import Generator
from datetime import datetime
from typing import Any, Callable, Optional

import pytest

from agenda_engine.config import reset_settings
from agenda_engine.models import (
    AgendaEntry,
    ExternalOrigin,
    LocalOrigin,
    Priority,
    RecurrenceFreq,
    RecurrenceRule,
)
from agenda_engine.ports import CreateEventInput, UpdateEventInput
from agenda_engine.session import AgendaSession


def pytest_configure(config: Any) -> None:
    """Register markers used across the suite."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "fast: Tests with no I/O")


class FakePersistence:
    """In-memory persistence port recording every call.

    ``fail_on`` maps a method name ("create_event", "update_event",
    "skip_occurrence") to an exception raised on that call; ``fail_after``
    lets the first N calls of that method succeed.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.fail_on: dict[str, Exception] = {}
        self.fail_after: dict[str, int] = {}
        self.exceptions: dict[str, set[str]] = {}

    def _maybe_fail(self, name: str) -> None:
        exc = self.fail_on.get(name)
        if exc is None:
            return
        done = sum(1 for call, _ in self.calls if call == name)
        if done >= self.fail_after.get(name, 0):
            raise exc

    async def create_event(self, event: CreateEventInput) -> None:
        self._maybe_fail("create_event")
        self.calls.append(("create_event", event))

    async def update_event(self, event: UpdateEventInput) -> None:
        self._maybe_fail("update_event")
        self.calls.append(("update_event", event))

    async def skip_occurrence(self, task_id: str, instance_date: str) -> None:
        self._maybe_fail("skip_occurrence")
        self.calls.append(("skip_occurrence", (task_id, instance_date)))
        self.exceptions.setdefault(task_id, set()).add(instance_date)

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def payloads(self, name: str) -> list[Any]:
        return [payload for call, payload in self.calls if call == name]


class DetachingPersistence(FakePersistence):
    """Persistence offering the single-call detach command."""

    async def detach_occurrence(self, task_id: str, instance_date: str, event: CreateEventInput) -> None:
        self._maybe_fail("detach_occurrence")
        self.calls.append(("detach_occurrence", (task_id, instance_date, event)))


@pytest.fixture(autouse=True)
def clean_agenda_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Strip AGENDA_* variables and the global settings between tests."""
    for key in list(os.environ):
        if key.upper().startswith("AGENDA_"):
            monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def persistence() -> FakePersistence:
    return FakePersistence()


@pytest.fixture
def detaching_persistence() -> DetachingPersistence:
    return DetachingPersistence()


@pytest.fixture
def session() -> AgendaSession:
    return AgendaSession(range_start=datetime(2024, 1, 1), range_end=datetime(2024, 2, 1))


@pytest.fixture
def weekly_rule() -> RecurrenceRule:
    return RecurrenceRule(freq=RecurrenceFreq.WEEKLY, interval=1)


@pytest.fixture
def make_local_entry() -> Callable[..., AgendaEntry]:
    """Factory for local agenda entries."""

    def _make(
        entry_id: str,
        start: datetime,
        end: datetime,
        *,
        title: str = "Task",
        all_day: bool = False,
        task_id: Optional[str] = None,
        instance_date: Optional[str] = None,
        recurrence: Optional[RecurrenceRule] = None,
        workspace_id: Optional[str] = None,
        priority: Priority = Priority.NONE,
    ) -> AgendaEntry:
        return AgendaEntry(
            id=entry_id,
            title=title,
            start=start,
            end=end,
            all_day=all_day,
            origin=LocalOrigin(
                task_id=task_id or entry_id,
                instance_date=instance_date,
                recurrence=recurrence,
                workspace_id=workspace_id,
                priority=priority,
            ),
        )

    return _make


@pytest.fixture
def make_external_entry() -> Callable[..., AgendaEntry]:
    """Factory for external agenda entries."""

    def _make(entry_id: str, start: datetime, end: datetime, *, title: str = "Meeting") -> AgendaEntry:
        return AgendaEntry(
            id=entry_id,
            title=title,
            start=start,
            end=end,
            origin=ExternalOrigin(external_id=entry_id),
        )

    return _make
