"""Merging of local occurrences with read-only external events.

Provenance is resolved once here into a tagged origin (``LocalOrigin`` or
``ExternalOrigin``) so downstream code never inspects ad hoc properties.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Optional

from .conflict_detector import ConflictDetector, count_conflicts
from .models import AgendaEntry, ExternalEvent, ExternalOrigin, LocalOrigin, Occurrence

logger = logging.getLogger(__name__)

DEFAULT_SCORE_CAP = 9
DEFAULT_COMPACT_THRESHOLD = 8
EXTERNAL_TITLE_FALLBACK = "External event"


@dataclass(frozen=True)
class MergedAgenda:
    """Chronological union of local and external events with conflicts."""

    entries: tuple[AgendaEntry, ...]
    conflict_count: int
    is_compact: bool
    score_cap: int = DEFAULT_SCORE_CAP

    def display_score(self, entry: AgendaEntry) -> int:
        return entry.conflict.display_score(self.score_cap)


def occurrence_to_entry(occurrence: Occurrence) -> AgendaEntry:
    """Wrap a local occurrence with its local origin."""
    return AgendaEntry(
        id=occurrence.id,
        title=occurrence.title,
        start=occurrence.start,
        end=occurrence.end,
        all_day=occurrence.all_day,
        origin=LocalOrigin(
            task_id=occurrence.task_id,
            instance_date=occurrence.instance_date,
            recurrence=occurrence.recurrence,
            workspace_id=occurrence.workspace_id,
            priority=occurrence.priority,
        ),
    )


def external_to_entry(event: ExternalEvent) -> AgendaEntry:
    """Wrap an external event; its ID is carried unchanged."""
    return AgendaEntry(
        id=event.id,
        title=event.title.strip() or EXTERNAL_TITLE_FALLBACK,
        start=event.start,
        end=event.end,
        all_day=event.all_day,
        origin=ExternalOrigin(external_id=event.id),
    )


class EventMerger:
    """Builds the merged agenda and re-runs conflict detection on the union.

    Conflicts are recomputed over local and external events together so that
    cross-source overlaps surface. The conflicting-event count drives the
    compact density hint.
    """

    def __init__(
        self,
        score_cap: int = DEFAULT_SCORE_CAP,
        compact_threshold: int = DEFAULT_COMPACT_THRESHOLD,
        detector: Optional[ConflictDetector] = None,
    ):
        self.score_cap = score_cap
        self.compact_threshold = compact_threshold
        self.detector = detector or ConflictDetector()

    @classmethod
    def from_settings(cls, settings: Any) -> "EventMerger":
        return cls(
            score_cap=getattr(settings, "conflict_score_cap", DEFAULT_SCORE_CAP),
            compact_threshold=getattr(settings, "compact_density_threshold", DEFAULT_COMPACT_THRESHOLD),
        )

    def merge(
        self,
        occurrences: Iterable[Occurrence],
        external_events: Iterable[ExternalEvent] = (),
    ) -> MergedAgenda:
        """Merge local occurrences and external events.

        Args:
            occurrences: Local occurrences (any order)
            external_events: External provider events (any order)

        Returns:
            MergedAgenda sorted by start with conflict annotations
        """
        local_entries = [occurrence_to_entry(occ) for occ in occurrences]
        external_entries = [external_to_entry(event) for event in external_events]

        # Stable sort: local entries stay ahead of external ones on equal starts
        union = sorted(local_entries + external_entries, key=lambda entry: entry.start)
        annotated = self.annotate(union)
        conflict_count = sum(1 for entry in annotated if entry.conflict.has_conflict)
        is_compact = conflict_count >= self.compact_threshold

        logger.debug(
            "Merged %d local + %d external events: %d conflicted (compact=%s)",
            len(local_entries),
            len(external_entries),
            conflict_count,
            is_compact,
        )
        return MergedAgenda(
            entries=tuple(annotated),
            conflict_count=conflict_count,
            is_compact=is_compact,
            score_cap=self.score_cap,
        )

    def annotate(self, entries: Sequence[AgendaEntry]) -> list[AgendaEntry]:
        """Return copies of sorted ``entries`` carrying fresh conflict annotations."""
        annotations = self.detector.detect(entries)
        return [
            entry.model_copy(update={"conflict": annotation})
            for entry, annotation in zip(entries, annotations)
        ]

    def count_local_conflicts(self, occurrences: Sequence[Occurrence]) -> int:
        """Conflicting-event count among local occurrences only."""
        entries = sorted((occurrence_to_entry(occ) for occ in occurrences), key=lambda e: e.start)
        return count_conflicts(self.detector.detect(entries))
