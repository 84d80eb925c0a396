"""Ports the agenda engine consumes, implemented by the surrounding feature.

Persistence and the external calendar provider are reached only through
these protocols. Inputs are pydantic models so implementations receive
validated, serializable payloads.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from .models import ExternalEvent, Priority, RecurrenceFreq


class RecurrenceInput(BaseModel):
    """Recurrence payload sent with create/update."""

    model_config = ConfigDict(frozen=True)

    freq: RecurrenceFreq
    interval: int = Field(default=1, ge=1)
    until: Optional[datetime] = None
    exceptions: tuple[str, ...] = ()


class CreateEventInput(BaseModel):
    """A new task definition. All-day ends are exclusive."""

    model_config = ConfigDict(frozen=True)

    title: str
    start: datetime
    end: datetime
    all_day: bool = False
    workspace_id: Optional[str] = None
    priority: Optional[Priority] = None
    recurrence: Optional[RecurrenceInput] = None


class UpdateEventInput(BaseModel):
    """Changes to an existing task definition.

    ``title`` is None when the edit does not touch it (drag/resize).
    """

    model_config = ConfigDict(frozen=True)

    task_id: str
    title: Optional[str] = None
    start: datetime
    end: datetime
    all_day: bool = False
    workspace_id: Optional[str] = None
    priority: Optional[Priority] = None
    recurrence: Optional[RecurrenceInput] = None


class EventPersistence(Protocol):
    """Writes task definitions."""

    async def create_event(self, event: CreateEventInput) -> None: ...

    async def update_event(self, event: UpdateEventInput) -> None: ...

    async def skip_occurrence(self, task_id: str, instance_date: str) -> None:
        """Append ``instance_date`` (``YYYY-MM-DD``) to the task's exceptions."""
        ...


@runtime_checkable
class SupportsDetach(Protocol):
    """Optional single-call detach: skip one instance and create its replacement."""

    async def detach_occurrence(
        self, task_id: str, instance_date: str, event: CreateEventInput
    ) -> None: ...


class ExternalEventSource(Protocol):
    """Read-only external calendar provider."""

    async def fetch_external_events(self, start: datetime, end: datetime) -> list[ExternalEvent]: ...
