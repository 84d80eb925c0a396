"""Command-line entry for agenda_engine.

Loads task definitions (YAML or JSON), computes the agenda for a range and
prints conflicts, planning sections and free slots as JSON.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from . import _init_logging
from .agenda import AgendaView, compute_agenda
from .availability import AvailabilityComputer
from .config import ALLOWED_SLOT_MINUTES, AgendaSettings
from .datetime_utils import parse_local_date_only, start_of_day
from .external_events import ExternalEventFetcher, build_external_source, parse_external_event
from .filters import FilterStore
from .logging_config import configure_agenda_logging
from .models import ExternalEvent, RecurringTaskDefinition
from .navigation import default_range
from .planning import planning_sections
from .session import AgendaSession

logger = logging.getLogger(__name__)


class CliError(Exception):
    """Invalid CLI input; reported without a traceback."""


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the agenda-engine CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="agenda-engine",
        description="Agenda engine - expand recurring tasks, score conflicts, find free time",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  agenda-engine --tasks tasks.yaml --start 2024-01-01 --end 2024-02-01
  agenda-engine --tasks tasks.json --external google.json --min-slot 30 --today 2024-01-10
        """,
    )
    parser.add_argument("--tasks", required=True, type=Path, metavar="FILE", help="Task definitions (YAML or JSON)")
    parser.add_argument("--start", metavar="YYYY-MM-DD", help="First day of the range (inclusive)")
    parser.add_argument("--end", metavar="YYYY-MM-DD", help="Day after the range (exclusive)")
    parser.add_argument(
        "--external",
        type=Path,
        metavar="FILE",
        help="External events file ({'events': [...]}); defaults to AGENDA_EXTERNAL_EVENTS_URL",
    )
    parser.add_argument(
        "--min-slot",
        type=int,
        choices=ALLOWED_SLOT_MINUTES,
        help="Minimum free-slot duration in minutes (default: from settings)",
    )
    parser.add_argument("--today", metavar="YYYY-MM-DD", help="Days before this are skipped for availability")
    parser.add_argument("--config", type=Path, metavar="FILE", help="YAML settings file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def _parse_day(raw: Optional[str], option: str) -> Optional[datetime]:
    if raw is None:
        return None
    parsed = parse_local_date_only(raw)
    if parsed is None:
        raise CliError(f"{option} must be a valid YYYY-MM-DD date, got {raw!r}")
    return parsed


def _read_document(path: Path) -> Any:
    try:
        with path.open(encoding="utf-8") as fh:
            return yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        raise CliError(f"Could not read {path}: {exc}") from exc


def load_task_definitions(path: Path) -> list[RecurringTaskDefinition]:
    """Read a list of definitions, bare or under a ``tasks`` key."""
    data = _read_document(path)
    items = data.get("tasks", []) if isinstance(data, dict) else data
    if not isinstance(items, list):
        raise CliError(f"{path} must contain a list of tasks")
    try:
        return [RecurringTaskDefinition.model_validate(item) for item in items]
    except ValidationError as exc:
        raise CliError(f"Invalid task definition in {path}: {exc}") from exc


def load_external_events(path: Path) -> list[ExternalEvent]:
    """Read external events in the provider's JSON shape; malformed items are skipped."""
    data = _read_document(path)
    items = data.get("events", []) if isinstance(data, dict) else data
    if not isinstance(items, list):
        raise CliError(f"{path} must contain an 'events' list")
    return [event for event in (parse_external_event(item) for item in items) if event]


async def _fetch_external(settings: AgendaSettings, session: AgendaSession) -> None:
    source = build_external_source(settings)
    if source is None:
        return
    async with source:
        await ExternalEventFetcher(source).refresh(session, session.range_start, session.range_end)


def render(view: AgendaView, availability: dict[str, Any]) -> dict[str, Any]:
    """JSON-ready summary of an agenda computation."""

    def entry_payload(entry: Any) -> dict[str, Any]:
        payload = entry.model_dump(mode="json")
        payload["display_score"] = entry.conflict.display_score(view.score_cap)
        return payload

    return {
        "stats": view.stats.model_dump(),
        "conflict_count": view.conflict_count,
        "compact": view.is_compact,
        "entries": [entry_payload(entry) for entry in view.entries],
        "planning": [
            {"date": section.date_key, "entries": [entry.id for entry in section.entries]}
            for section in planning_sections(view.entries)
        ],
        "availability": {
            key: [slot.model_dump(mode="json") for slot in slots] for key, slots in availability.items()
        },
    }


def run(args: argparse.Namespace) -> dict[str, Any]:
    """Compute the agenda described by parsed CLI arguments."""
    settings = AgendaSettings.from_yaml(args.config)
    configure_agenda_logging(debug_mode=args.debug or settings.debug)

    now = datetime.now()
    default_start, default_end = default_range(now, settings.default_range_days)
    range_start = _parse_day(args.start, "--start") or start_of_day(default_start)
    range_end = _parse_day(args.end, "--end") or start_of_day(default_end)
    if range_end <= range_start:
        raise CliError("--end must be after --start")
    today_dt = _parse_day(args.today, "--today")
    today = today_dt.date() if today_dt else date.today()

    definitions = load_task_definitions(args.tasks)
    session = AgendaSession(range_start=range_start, range_end=range_end)
    if settings.filters_file:
        session.filters = FilterStore(settings.filters_file).load()

    if args.external is not None:
        session.external_events = load_external_events(args.external)
    else:
        asyncio.run(_fetch_external(settings, session))

    view = compute_agenda(
        definitions,
        session.external_events,
        session.range_start,
        session.range_end,
        session.filters,
        settings,
    )
    availability = AvailabilityComputer.from_settings(settings).compute(
        view.all_entries,
        session.range_start,
        session.range_end,
        today,
        args.min_slot or settings.min_slot_minutes,
    )
    logger.info(
        "Computed %d entries (%d conflicts) for %s..%s",
        view.stats.displayed,
        view.conflict_count,
        range_start.date().isoformat(),
        range_end.date().isoformat(),
    )
    return render(view, availability)


def main(argv: Optional[list[str]] = None) -> int:
    """Run the agenda-engine CLI and return the process exit code."""
    parser = _create_parser()
    args = parser.parse_args(argv)
    _init_logging("DEBUG" if args.debug else os.environ.get("AGENDA_LOG_LEVEL"))

    try:
        result = run(args)
    except (CliError, ValidationError) as exc:
        logger.error("%s", exc)
        return 2
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    json.dump(result, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
