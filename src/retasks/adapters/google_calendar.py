"""Google Calendar API v3 adapter (read-only)."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime, time, timedelta
from typing import Any
from urllib.parse import quote

import httpx

from ..auth import TokenSupplier
from ..errors import AuthError, BackendError, UnsupportedOperationError
from ..models import Command, RemoteResult, RemoteTask
from ..utils import from_iso, parse_date
from .protocol import AdapterCapabilities
from .rest import RestAdapter

logger = logging.getLogger(__name__)


def _local_now() -> datetime:
    return datetime.now().astimezone()


class GoogleCalendarAdapter(RestAdapter):
    """Lists today's events from the user's selected calendars as tasks.

    Each event becomes a task titled with its summary, due on its start
    date and ordered by start time. Nothing can be written back.
    """

    key = "google-calendar"
    name = "GoogleCalendar"
    BASE_URL = "https://www.googleapis.com/calendar/v3"
    MAX_CALENDARS = 50
    MAX_EVENTS = 50

    def __init__(
        self,
        token_supplier: TokenSupplier,
        client: httpx.AsyncClient | None = None,
        calendar_ids: Iterable[str] = (),
        clock: Callable[[], datetime] = _local_now,
    ) -> None:
        super().__init__(token_supplier, client)
        self.calendar_ids = list(calendar_ids)
        self._clock = clock

    @property
    def capabilities(self) -> AdapterCapabilities:
        return AdapterCapabilities.read_only()

    def _today_bounds(self) -> tuple[str, str]:
        now = self._clock()
        start = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
        end = start + timedelta(days=1) - timedelta(microseconds=1)
        return start.isoformat(), end.isoformat()

    async def fetch_snapshot(self) -> list[RemoteTask]:
        """Fetch today's events across the selected calendars."""
        data = await self._request(
            "GET",
            f"{self.BASE_URL}/users/me/calendarList",
            params={"maxResults": self.MAX_CALENDARS},
        ) or {}
        calendars = [c for c in data.get("items", []) if c.get("selected") is not False]
        if self.calendar_ids:
            calendars = [c for c in calendars if c["id"] in self.calendar_ids]

        time_min, time_max = self._today_bounds()
        tasks: list[RemoteTask] = []

        for calendar in calendars:
            try:
                events = await self._list_events(calendar["id"], time_min, time_max)
            except AuthError:
                raise
            except BackendError as e:
                logger.warning(
                    "Failed to fetch events from calendar %r: %s", calendar.get("summary"), e
                )
                continue
            for event in events:
                if event.get("status") == "cancelled":
                    continue
                task = self._parse_event(calendar["id"], event)
                if task is not None:
                    tasks.append(task)

        logger.debug("Google Calendar snapshot: %d events from %d calendars", len(tasks), len(calendars))
        return tasks

    async def _list_events(self, calendar_id: str, time_min: str, time_max: str) -> list[dict[str, Any]]:
        data = await self._request(
            "GET",
            f"{self.BASE_URL}/calendars/{quote(calendar_id, safe='')}/events",
            params={
                "timeMin": time_min,
                "timeMax": time_max,
                "singleEvents": "true",
                "orderBy": "startTime",
                "maxResults": self.MAX_EVENTS,
            },
        ) or {}
        return data.get("items", [])

    async def apply_command(self, command: Command, remote_id: str | None) -> RemoteResult:
        raise UnsupportedOperationError("Google Calendar is read-only")

    @staticmethod
    def _parse_event(calendar_id: str, event: dict[str, Any]) -> RemoteTask | None:
        """Map a calendar event onto RemoteTask, or None if it has no start."""
        start = event.get("start") or {}
        if start.get("dateTime"):
            starts_at = from_iso(start["dateTime"])
            order = starts_at.timestamp()
            due = starts_at.date()
        elif start.get("date"):
            due = parse_date(start["date"])
            # All-day events sort before timed ones on the same day
            order = 0
        else:
            return None

        return RemoteTask(
            remote_id=f"{calendar_id}/{event['id']}",
            title=event.get("summary") or "(No title)",
            due_date=due,
            notes=event.get("location") or event.get("hangoutLink") or None,
            order=order,
            revision=event.get("etag"),
        )
