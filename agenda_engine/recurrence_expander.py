"""Recurrence expansion for the agenda engine.

Turns task definitions into concrete occurrences inside a visible range.
Only fixed-interval daily/weekly/monthly rules are supported and all
arithmetic is local wall-clock.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any, Optional

from .datetime_utils import add_recurrence_step, date_key, overlaps_range
from .models import Occurrence, RecurringTaskDefinition

logger = logging.getLogger(__name__)

DEFAULT_ITERATION_CAP = 400


class RecurrenceExpander:
    """Expands task definitions into occurrences within ``[range_start, range_end)``.

    The iteration cap bounds work for series without ``until``. Reaching it is
    acceptable: the visible range is itself bounded, so only series whose start
    lies far before the range can lose occurrences.
    """

    def __init__(self, iteration_cap: int = DEFAULT_ITERATION_CAP, default_duration: timedelta = timedelta(hours=1)):
        if iteration_cap < 1:
            raise ValueError("iteration_cap must be >= 1")
        self.iteration_cap = iteration_cap
        self.default_duration = default_duration

    @classmethod
    def from_settings(cls, settings: Any) -> "RecurrenceExpander":
        return cls(
            iteration_cap=getattr(settings, "recurrence_iteration_cap", DEFAULT_ITERATION_CAP),
            default_duration=timedelta(minutes=getattr(settings, "default_event_minutes", 60)),
        )

    def expand(
        self,
        definitions: Iterable[RecurringTaskDefinition],
        range_start: datetime,
        range_end: datetime,
    ) -> list[Occurrence]:
        """Expand all definitions and return occurrences sorted by start.

        Args:
            definitions: Task definitions (recurring or not)
            range_start: Inclusive start of the visible range
            range_end: Exclusive end of the visible range

        Returns:
            Occurrences overlapping the range, ascending by start
        """
        occurrences: list[Occurrence] = []
        for definition in definitions:
            if definition.recurrence is None:
                occurrence = self._single(definition, range_start, range_end)
                if occurrence is not None:
                    occurrences.append(occurrence)
            else:
                occurrences.extend(self.expand_series(definition, range_start, range_end))

        occurrences.sort(key=lambda occ: occ.start)
        logger.debug(
            "Expanded definitions into %d occurrences for [%s, %s)",
            len(occurrences),
            range_start.isoformat(),
            range_end.isoformat(),
        )
        return occurrences

    def _single(
        self, definition: RecurringTaskDefinition, range_start: datetime, range_end: datetime
    ) -> Optional[Occurrence]:
        start, end, all_day = definition.event_window(self.default_duration)
        if not overlaps_range(start, end, range_start, range_end):
            return None
        return Occurrence(
            id=definition.id,
            task_id=definition.id,
            title=definition.title,
            start=start,
            end=end,
            all_day=all_day,
            workspace_id=definition.workspace_id,
            priority=definition.priority,
        )

    def expand_series(
        self, definition: RecurringTaskDefinition, range_start: datetime, range_end: datetime
    ) -> list[Occurrence]:
        """Expand one recurring definition.

        Both cursors are stepped from the first instance so that monthly
        clamping in a short month does not shift later instances.
        """
        rule = definition.recurrence
        if rule is None:
            raise ValueError(f"Task {definition.id} has no recurrence rule")

        start, end, all_day = definition.event_window(self.default_duration)
        duration = end - start
        exceptions = rule.exceptions
        cursor_start, cursor_end = start, end
        emitted: list[Occurrence] = []
        skipped = 0

        steps = 0
        for steps in range(1, self.iteration_cap + 1):
            if rule.until is not None and cursor_start > rule.until:
                break
            if cursor_start > range_end:
                break

            instance_date = date_key(cursor_start)
            # Month-end clamping can pull the end before the start
            instance_end = cursor_end if cursor_end > cursor_start else cursor_start + duration
            if instance_date in exceptions:
                skipped += 1
            elif overlaps_range(cursor_start, instance_end, range_start, range_end):
                emitted.append(
                    Occurrence(
                        id=f"{definition.id}__{cursor_start.isoformat()}",
                        task_id=definition.id,
                        title=definition.title,
                        start=cursor_start,
                        end=instance_end,
                        all_day=all_day,
                        instance_date=instance_date,
                        recurrence=rule,
                        workspace_id=definition.workspace_id,
                        priority=definition.priority,
                    )
                )

            cursor_start = add_recurrence_step(start, rule.freq, rule.interval, steps)
            cursor_end = add_recurrence_step(end, rule.freq, rule.interval, steps)
        else:
            logger.debug(
                "Recurrence expansion for task %s stopped at iteration cap %d",
                definition.id,
                self.iteration_cap,
            )

        if skipped:
            logger.debug("Task %s: %d occurrences suppressed by exceptions", definition.id, skipped)
        logger.debug(
            "Task %s (%s every %d): %d occurrences after %d steps",
            definition.id,
            rule.freq.value,
            rule.interval,
            len(emitted),
            steps,
        )
        return emitted
