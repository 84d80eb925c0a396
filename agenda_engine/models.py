"""Data models for the agenda scheduling engine.

Definitions, occurrences, external events and annotations are frozen pydantic
models: they are recomputed on every change and never mutated, and being
hashable lets the pure pipeline be memoized on its inputs. The Draft is the
one mutable model, since it is an edit buffer.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Priority(str, Enum):
    """Task priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    NONE = "none"


class RecurrenceFreq(str, Enum):
    """Supported recurrence frequencies."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class EventSource(str, Enum):
    LOCAL = "local"
    EXTERNAL = "external"


class ConflictSource(str, Enum):
    """Provenance of an event's conflicting partners."""

    LOCAL = "local"
    EXTERNAL = "external"
    MIX = "mix"


class EditScope(str, Enum):
    """Whether a pending edit applies to one occurrence or the whole series."""

    SERIES = "series"
    OCCURRENCE = "occurrence"


class CalendarView(str, Enum):
    MONTH = "month"
    WEEK = "week"
    DAY = "day"

    @property
    def is_time_grid(self) -> bool:
        """Week and day views lay events out on an hourly grid."""
        return self in (CalendarView.WEEK, CalendarView.DAY)


class DraftPhase(str, Enum):
    """Lifecycle of the single active Draft."""

    CLOSED = "closed"
    OPEN_NEW = "open_new"
    OPEN_EDIT = "open_edit"
    VALIDATING = "validating"
    PERSISTING = "persisting"


def to_local_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Drop timezone info after converting to local wall-clock time."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


class RecurrenceRule(BaseModel):
    """Fixed-interval recurrence attached to a task definition."""

    model_config = ConfigDict(frozen=True)

    freq: RecurrenceFreq = Field(..., description="Recurrence frequency")
    interval: int = Field(default=1, ge=1, description="Steps of freq between instances")
    until: Optional[datetime] = Field(default=None, description="Last allowed instance start")
    exceptions: frozenset[str] = Field(
        default_factory=frozenset, description="Skipped instance date-keys (YYYY-MM-DD)"
    )

    @field_validator("until")
    @classmethod
    def _naive_until(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_local_naive(value)


class RecurringTaskDefinition(BaseModel):
    """A task definition as owned by the surrounding task feature.

    The engine only reads it; skip writes to ``recurrence.exceptions`` go
    through the persistence port.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Task ID")
    title: str = Field(default="", description="Task title")
    start: datetime = Field(..., description="Start of the first instance")
    end: Optional[datetime] = Field(default=None, description="End of the first instance")
    recurrence: Optional[RecurrenceRule] = Field(default=None, description="Recurrence rule")
    workspace_id: Optional[str] = Field(default=None, description="Workspace reference")
    priority: Priority = Field(default=Priority.NONE, description="Task priority")

    @field_validator("start", "end")
    @classmethod
    def _naive_window(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_local_naive(value)

    @field_validator("priority", mode="before")
    @classmethod
    def _blank_priority(cls, value: object) -> object:
        return Priority.NONE if value in (None, "") else value

    def event_window(self, default_duration: timedelta = timedelta(hours=1)) -> tuple[datetime, datetime, bool]:
        """Derive the concrete ``(start, end, all_day)`` window of the first instance.

        A missing or non-positive end falls back to ``start + default_duration``.
        The window is all-day when start and end are both local midnight and
        the span is a whole number of days; the end is then exclusive.
        """
        start = self.start
        if self.end is None or self.end <= start:
            return start, start + default_duration, False

        span = self.end - start
        all_day = (
            _is_midnight(start)
            and _is_midnight(self.end)
            and span.total_seconds() % 86400 == 0
        )
        return start, self.end, all_day


def _is_midnight(value: datetime) -> bool:
    return value.hour == 0 and value.minute == 0 and value.second == 0 and value.microsecond == 0


class _TimedModel(BaseModel):
    """Shared ``end > start`` invariant."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    all_day: bool = False

    @field_validator("start", "end")
    @classmethod
    def _naive_window(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_local_naive(value)

    @model_validator(mode="after")
    def _end_after_start(self) -> "_TimedModel":
        if self.end <= self.start:
            raise ValueError(f"end ({self.end.isoformat()}) must be after start ({self.start.isoformat()})")
        return self


class Occurrence(_TimedModel):
    """One concrete instance of a local task, derived and never persisted."""

    id: str = Field(..., description="task_id, or task_id + '__' + ISO start for series instances")
    task_id: str
    title: str = ""
    instance_date: Optional[str] = Field(default=None, description="Date-key when derived from a series")
    recurrence: Optional[RecurrenceRule] = None
    workspace_id: Optional[str] = None
    priority: Priority = Priority.NONE

    @property
    def is_recurring_instance(self) -> bool:
        return self.instance_date is not None and self.recurrence is not None


class ExternalEvent(_TimedModel):
    """Read-only event from the external calendar provider."""

    id: str
    title: str = ""


class LocalOrigin(BaseModel):
    """Back-reference from a merged entry to its local task."""

    model_config = ConfigDict(frozen=True)

    source: Literal["local"] = "local"
    task_id: str
    instance_date: Optional[str] = None
    recurrence: Optional[RecurrenceRule] = None
    workspace_id: Optional[str] = None
    priority: Priority = Priority.NONE


class ExternalOrigin(BaseModel):
    """Back-reference from a merged entry to its external event."""

    model_config = ConfigDict(frozen=True)

    source: Literal["external"] = "external"
    external_id: str


EventOrigin = Annotated[Union[LocalOrigin, ExternalOrigin], Field(discriminator="source")]


class ConflictAnnotation(BaseModel):
    """Per-event conflict information."""

    model_config = ConfigDict(frozen=True)

    has_conflict: bool = False
    source: Optional[ConflictSource] = None
    score: int = Field(default=0, ge=0, description="Raw accumulated conflict score")

    def display_score(self, cap: int = 9) -> int:
        """Score clipped for display."""
        return min(self.score, cap)


NO_CONFLICT = ConflictAnnotation()


class AgendaEntry(_TimedModel):
    """An event in the merged agenda, local or external."""

    id: str
    title: str = ""
    origin: EventOrigin
    conflict: ConflictAnnotation = Field(default=NO_CONFLICT)

    @property
    def source(self) -> EventSource:
        return EventSource(self.origin.source)

    @property
    def is_external(self) -> bool:
        return isinstance(self.origin, ExternalOrigin)

    @property
    def priority(self) -> Priority:
        if isinstance(self.origin, LocalOrigin):
            return self.origin.priority
        return Priority.NONE

    @property
    def is_recurring_instance(self) -> bool:
        origin = self.origin
        return (
            isinstance(origin, LocalOrigin)
            and origin.instance_date is not None
            and origin.recurrence is not None
        )

    @property
    def key(self) -> tuple[str, str]:
        """Identity that cannot collide between local and external IDs."""
        return (self.origin.source, self.id)


class AvailabilitySlot(BaseModel):
    """A free window inside a day's working interval."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    duration_minutes: int


class Draft(BaseModel):
    """Transient edit buffer backing the create/edit form.

    ``start_local``/``end_local`` hold ``YYYY-MM-DDTHH:MM`` values, or
    ``YYYY-MM-DD`` with an inclusive last day when ``all_day`` is set.
    """

    model_config = ConfigDict(validate_assignment=True)

    task_id: Optional[str] = None
    instance_date: Optional[str] = None
    title: str = ""
    start_local: str = ""
    end_local: str = ""
    all_day: bool = False
    workspace_id: str = ""
    priority: Optional[Priority] = None
    recurrence_freq: Optional[RecurrenceFreq] = None
    recurrence_until: str = ""
    recurrence_interval: int = Field(default=1, ge=1)
    recurrence_exceptions: frozenset[str] = Field(default_factory=frozenset)
    edit_scope: EditScope = EditScope.SERIES

    @property
    def is_new(self) -> bool:
        return self.task_id is None
