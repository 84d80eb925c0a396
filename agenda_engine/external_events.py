"""Read-only external calendar events: fetch coordination and HTTP adapter."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

import httpx
from dateutil import parser as date_parser
from pydantic import ValidationError

from .exceptions import ExternalFetchError
from .models import ExternalEvent, to_local_naive
from .ports import ExternalEventSource
from .session import AgendaSession

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


def parse_external_event(item: Any) -> Optional[ExternalEvent]:
    """Build an ExternalEvent from one JSON item, or None when malformed."""
    if not isinstance(item, dict):
        return None
    event_id = item.get("id")
    start_raw = item.get("start")
    end_raw = item.get("end")
    if not event_id or not isinstance(start_raw, str) or not isinstance(end_raw, str):
        return None

    try:
        start = to_local_naive(date_parser.isoparse(start_raw))
        end = to_local_naive(date_parser.isoparse(end_raw))
        return ExternalEvent(
            id=str(event_id),
            title=item.get("title") or "",
            start=start,
            end=end,
            all_day=bool(item.get("allDay", False)),
        )
    except (ValueError, OverflowError, ValidationError) as e:
        logger.debug("Skipping malformed external event %r: %s", event_id, e)
        return None


class HttpExternalEventSource:
    """Fetches external events from a JSON endpoint.

    ``GET <base_url>?timeMin=<iso>&timeMax=<iso>`` must answer
    ``{"events": [{"id", "title", "start", "end", "allDay"}, ...]}``.
    """

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.base_url = base_url
        self.client = client
        self._owns_client = client is None
        self.timeout = timeout

    async def __aenter__(self) -> "HttpExternalEventSource":
        self._ensure_client()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self.client is None or self.client.is_closed:
            self.client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout), follow_redirects=True)
            self._owns_client = True
        return self.client

    async def aclose(self) -> None:
        """Close the HTTP client if this source created it."""
        if self.client is not None and self._owns_client and not self.client.is_closed:
            await self.client.aclose()
            logger.debug("Closed external events HTTP client")
        if self._owns_client:
            self.client = None

    async def fetch_external_events(self, start: datetime, end: datetime) -> list[ExternalEvent]:
        """Fetch events overlapping ``[start, end)``.

        Raises:
            ExternalFetchError: On network errors, non-2xx answers or a
                payload that is not a JSON object with an ``events`` list
        """
        client = self._ensure_client()
        params = {"timeMin": start.isoformat(), "timeMax": end.isoformat()}
        try:
            response = await client.get(self.base_url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise ExternalFetchError(f"External events request failed: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ExternalFetchError(f"External events request failed: {e}") from e
        except ValueError as e:
            raise ExternalFetchError("External events response is not valid JSON") from e

        items = payload.get("events") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise ExternalFetchError("External events response has no 'events' list")

        events = [event for event in (parse_external_event(item) for item in items) if event]
        skipped = len(items) - len(events)
        if skipped:
            logger.debug("Skipped %d malformed external events", skipped)
        logger.debug("Fetched %d external events", len(events))
        return events


class ExternalEventFetcher:
    """Refreshes ``session.external_events`` with last-request-wins semantics.

    Each refresh takes a ticket from the session. A response is applied only
    if no newer refresh started meanwhile, so a slow fetch for a stale range
    never overwrites a newer one. Failures degrade to an empty list.
    """

    def __init__(self, source: Optional[ExternalEventSource]):
        self.source = source

    async def refresh(self, session: AgendaSession, start: datetime, end: datetime) -> bool:
        """Fetch external events for ``[start, end)`` into the session.

        Returns:
            True when this refresh's result was applied to the session
        """
        session.external_ticket += 1
        ticket = session.external_ticket

        events: list[ExternalEvent] = []
        if self.source is not None:
            try:
                events = list(await self.source.fetch_external_events(start, end))
            except Exception as e:
                logger.warning("External events unavailable, continuing without them: %s", e)
                events = []

        if ticket != session.external_ticket:
            logger.debug(
                "Discarding stale external events for [%s, %s) (ticket %d < %d)",
                start.isoformat(),
                end.isoformat(),
                ticket,
                session.external_ticket,
            )
            return False

        session.external_events = events
        return True


def build_external_source(settings: Any) -> Optional[HttpExternalEventSource]:
    """HTTP source from settings, or None when no URL is configured."""
    url = getattr(settings, "external_events_url", None)
    if not url:
        return None
    return HttpExternalEventSource(
        str(url), timeout=getattr(settings, "external_fetch_timeout", DEFAULT_TIMEOUT_SECONDS)
    )
