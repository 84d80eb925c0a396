"""Sorted-sweep overlap detection and weighted conflict scoring."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .models import AgendaEntry, ConflictAnnotation, ConflictSource, Priority

logger = logging.getLogger(__name__)

PRIORITY_CONFLICT_WEIGHTS = {
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
    Priority.NONE: 1,
}

SAME_SOURCE_PAIR_BONUS = 1
CROSS_SOURCE_PAIR_BONUS = 2


def priority_conflict_weight(entry: AgendaEntry) -> int:
    """Weight of one event in a conflicting pair; external events weigh 1."""
    return PRIORITY_CONFLICT_WEIGHTS.get(entry.priority, 1)


@dataclass
class _ConflictTally:
    with_local: bool = False
    with_external: bool = False
    score: int = 0

    def annotation(self) -> ConflictAnnotation:
        if self.with_local and self.with_external:
            source = ConflictSource.MIX
        elif self.with_external:
            source = ConflictSource.EXTERNAL
        else:
            source = ConflictSource.LOCAL
        return ConflictAnnotation(has_conflict=True, source=source, score=self.score)


class ConflictDetector:
    """Detects overlapping events in a start-sorted list.

    For each event ``i`` the sweep scans forward while the next start is
    before ``i``'s end. Sorted order guarantees that once a start reaches
    ``i``'s end no later event can overlap ``i``, so the scan stops there.
    Adjacent events (``b.start == a.end``) never conflict.
    """

    def detect(self, entries: Sequence[AgendaEntry]) -> list[ConflictAnnotation]:
        """Annotate every entry with its conflict status.

        Args:
            entries: Events sorted ascending by start

        Returns:
            One annotation per entry, aligned with ``entries``

        Raises:
            ValueError: If ``entries`` is not sorted by start
        """
        self._check_sorted(entries)
        tallies: dict[int, _ConflictTally] = {}
        pair_count = 0

        for i, left in enumerate(entries):
            for j in range(i + 1, len(entries)):
                right = entries[j]
                if right.start >= left.end:
                    break
                pair_count += 1
                cross_source = left.is_external != right.is_external
                bonus = CROSS_SOURCE_PAIR_BONUS if cross_source else SAME_SOURCE_PAIR_BONUS
                self._bump(tallies, i, left, partner=right, bonus=bonus)
                self._bump(tallies, j, right, partner=left, bonus=bonus)

        annotations = [
            tallies[index].annotation() if index in tallies else ConflictAnnotation()
            for index in range(len(entries))
        ]
        logger.debug(
            "Conflict sweep over %d events: %d overlapping pairs, %d conflicted events",
            len(entries),
            pair_count,
            len(tallies),
        )
        return annotations

    @staticmethod
    def _bump(
        tallies: dict[int, _ConflictTally],
        index: int,
        entry: AgendaEntry,
        partner: AgendaEntry,
        bonus: int,
    ) -> None:
        tally = tallies.setdefault(index, _ConflictTally())
        if partner.is_external:
            tally.with_external = True
        else:
            tally.with_local = True
        tally.score += priority_conflict_weight(entry) + bonus

    @staticmethod
    def _check_sorted(entries: Sequence[AgendaEntry]) -> None:
        for previous, current in zip(entries, entries[1:]):
            if current.start < previous.start:
                raise ValueError(
                    f"Events must be sorted by start: {current.id!r} starts before {previous.id!r}"
                )


def count_conflicts(annotations: Sequence[ConflictAnnotation]) -> int:
    """Number of events involved in at least one conflict."""
    return sum(1 for annotation in annotations if annotation.has_conflict)
