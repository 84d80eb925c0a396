"""Agenda filters, statistics and JSON-backed filter persistence."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
from collections.abc import Iterable, Sequence
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict

from .models import AgendaEntry, Priority

logger = logging.getLogger(__name__)

MORNING_END_HOUR = 12
EVENING_START_HOUR = 18


class TimeWindowFilter(str, Enum):
    ALL_DAY = "all_day"
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


class AgendaFilters(BaseModel):
    """User-selected agenda filters. ``None`` means "no restriction"."""

    model_config = ConfigDict(frozen=True)

    recurring_only: bool = False
    conflicts_only: bool = False
    priority: Optional[Priority] = None
    time_window: Optional[TimeWindowFilter] = None

    @property
    def is_active(self) -> bool:
        return (
            self.recurring_only
            or self.conflicts_only
            or self.priority is not None
            or self.time_window is not None
        )


class AgendaStats(BaseModel):
    """Summary counts for the visible range."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    displayed: int = 0
    recurring: int = 0
    conflicts: int = 0


def matches_time_window(entry: AgendaEntry, window: TimeWindowFilter) -> bool:
    """Classify an entry by its start time of day."""
    if window is TimeWindowFilter.ALL_DAY:
        return entry.all_day
    if entry.all_day:
        return False
    hour = entry.start.hour
    if window is TimeWindowFilter.MORNING:
        return hour < MORNING_END_HOUR
    if window is TimeWindowFilter.AFTERNOON:
        return MORNING_END_HOUR <= hour < EVENING_START_HOUR
    return hour >= EVENING_START_HOUR


def matches_filters(entry: AgendaEntry, filters: AgendaFilters) -> bool:
    if filters.recurring_only and not entry.is_recurring_instance:
        return False
    if filters.conflicts_only and not entry.conflict.has_conflict:
        return False
    if filters.priority is not None and entry.priority != filters.priority:
        return False
    if filters.time_window is not None and not matches_time_window(entry, filters.time_window):
        return False
    return True


def apply_filters(entries: Iterable[AgendaEntry], filters: AgendaFilters) -> list[AgendaEntry]:
    """Keep entries matching every active filter, preserving order.

    Conflict annotations are not recomputed: they describe the whole
    visible range, not the filtered subset.
    """
    if not filters.is_active:
        return list(entries)
    return [entry for entry in entries if matches_filters(entry, filters)]


def compute_stats(
    all_entries: Sequence[AgendaEntry], displayed: Sequence[AgendaEntry], local_conflicts: int
) -> AgendaStats:
    return AgendaStats(
        total=len(all_entries),
        displayed=len(displayed),
        recurring=sum(1 for entry in all_entries if entry.is_recurring_instance),
        conflicts=local_conflicts,
    )


class FilterStore:
    """Persists ``AgendaFilters`` as a JSON object.

    Unknown or invalid fields in the stored payload are ignored one by one so
    that a partially corrupt file still restores the valid filters.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> AgendaFilters:
        """Load filters, falling back to defaults on missing or unreadable files."""
        if not self._path.exists():
            logger.debug("Filter store not found; using defaults: %s", self._path)
            return AgendaFilters()

        try:
            with self._path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.warning("Failed to read filter store %s: %s", self._path, exc)
            return AgendaFilters()

        if not isinstance(data, dict):
            logger.warning("Ignoring filter store %s: root must be an object", self._path)
            return AgendaFilters()

        return AgendaFilters(**_valid_filter_fields(data))

    def save(self, filters: AgendaFilters) -> None:
        """Write filters atomically (temp file + ``os.replace``)."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = filters.model_dump(mode="json")
        fd, tmp_path = tempfile.mkstemp(prefix=".filters-", suffix=".json", dir=str(self._path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2, sort_keys=True)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self._path)
        except Exception:
            with contextlib.suppress(OSError):
                os.unlink(tmp_path)
            raise
        logger.debug("Saved filters to %s", self._path)


def _valid_filter_fields(data: dict[str, Any]) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for name in ("recurring_only", "conflicts_only"):
        if isinstance(data.get(name), bool):
            fields[name] = data[name]

    priority = data.get("priority")
    if priority in {p.value for p in Priority}:
        fields["priority"] = Priority(priority)

    window = data.get("time_window")
    if window in {w.value for w in TimeWindowFilter}:
        fields["time_window"] = TimeWindowFilter(window)
    return fields
