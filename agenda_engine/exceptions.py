"""Exception hierarchy for the agenda engine.

Validation problems, persistence failures and external-provider failures are
kept apart so that callers can decide which ones block a Draft, which ones are
surfaced for retry and which ones silently degrade.
"""

from __future__ import annotations

from typing import Optional


class AgendaError(Exception):
    """Base exception for all agenda engine errors."""


class DraftValidationError(AgendaError):
    """A Draft failed local validation.

    Raised when:
    - The title is empty or only whitespace
    - A start/end string cannot be parsed as a local date or datetime
    - The end is not strictly after the start (after all-day normalization)

    The Draft stays open and the message is shown inline.
    """


class DraftNotOpenError(AgendaError):
    """An operation needed an open Draft but none was open."""


class PersistenceError(AgendaError):
    """A persistence collaborator failed during save, skip or duplicate.

    The operation is aborted and the Draft or selection is kept for retry.
    """


class OccurrenceDetachError(PersistenceError):
    """The skip-then-create detach sequence failed part way.

    Attributes:
        step: ``"skip"`` when nothing was written, ``"create"`` when the
            instance was already removed from its series but the standalone
            replacement could not be created.
    """

    def __init__(self, message: str, step: str, task_id: str, instance_date: str):
        super().__init__(message)
        self.step = step
        self.task_id = task_id
        self.instance_date = instance_date

    @property
    def instance_removed(self) -> bool:
        """True when the series exception was written without a replacement."""
        return self.step == "create"


class ExternalFetchError(AgendaError):
    """Fetching read-only external events failed.

    Never escapes ``ExternalEventFetcher``: the external list degrades to empty.
    """


def to_user_error_message(exc: Optional[BaseException], fallback: str) -> str:
    """Turn an exception into a message suitable for display.

    Args:
        exc: Exception raised by a collaborator (may be None)
        fallback: Message used when the exception carries no usable text

    Returns:
        Non-empty user-facing message
    """
    if exc is None:
        return fallback
    message = str(exc).strip()
    if not message:
        return fallback
    return message
