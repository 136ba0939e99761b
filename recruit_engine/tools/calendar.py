"""
Calendar capability used by the scheduler.

One production adapter (Google Calendar through a service account) and one
deterministic in-memory fake. The scheduler receives either by injection.
"""

import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from recruit_engine.config import settings
from recruit_engine.errors import CalendarError
from recruit_engine.schemas.interview_schema import (
    BusyInterval,
    CalendarEvent,
    CalendarEventRequest,
)

logger = logging.getLogger(__name__)

CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar"]

# HTTP status errors, credential refresh failures and socket-level failures
API_ERRORS = (HttpError, GoogleAuthError, httplib2.HttpLib2Error, OSError)


class CalendarProvider(ABC):
    """Busy-time lookup, event creation and removal against an external calendar."""

    @abstractmethod
    async def list_events(
        self, calendar_id: str, start: datetime, end: datetime
    ) -> list[BusyInterval]:
        """Return busy intervals intersecting ``[start, end)``."""

    @abstractmethod
    async def create_event(
        self, calendar_id: str, request: CalendarEventRequest
    ) -> CalendarEvent:
        """Create an event and return its external reference."""

    @abstractmethod
    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        """Remove an event created by ``create_event``."""


class GoogleCalendarProvider(CalendarProvider):
    """
    Google Calendar v3 adapter.

    The discovery client is synchronous, so every request runs in a worker
    thread. The service is built lazily on first use.
    """

    def __init__(
        self,
        service_account_file: str = settings.scheduling.service_account_file,
        timezone: str = settings.scheduling.timezone,
    ) -> None:
        self._service_account_file = service_account_file
        self._timezone = timezone
        self._service = None

    def _get_service(self):
        if self._service is None:
            if not self._service_account_file:
                raise CalendarError("GOOGLE_SERVICE_ACCOUNT_FILE is not configured")
            credentials = service_account.Credentials.from_service_account_file(
                self._service_account_file, scopes=CALENDAR_SCOPES
            )
            self._service = build("calendar", "v3", credentials=credentials, cache_discovery=False)
            logger.info("Created Google Calendar API service")
        return self._service

    def _parse_time(self, value: dict) -> datetime:
        # All-day events carry a date instead of a dateTime
        if "dateTime" in value:
            return datetime.fromisoformat(value["dateTime"].replace("Z", "+00:00"))
        return datetime.fromisoformat(value["date"]).replace(tzinfo=ZoneInfo(self._timezone))

    async def list_events(
        self, calendar_id: str, start: datetime, end: datetime
    ) -> list[BusyInterval]:
        def _fetch() -> list[dict]:
            response = (
                self._get_service()
                .events()
                .list(
                    calendarId=calendar_id,
                    timeMin=start.isoformat(),
                    timeMax=end.isoformat(),
                    singleEvents=True,
                    orderBy="startTime",
                )
                .execute()
            )
            return response.get("items", [])

        try:
            items = await asyncio.to_thread(_fetch)
        except API_ERRORS as exc:
            logger.error("Failed to list events for %s: %s", calendar_id, exc)
            raise CalendarError(f"Could not list events for {calendar_id}") from exc

        busy = [
            BusyInterval(start=self._parse_time(item["start"]), end=self._parse_time(item["end"]))
            for item in items
            if item.get("transparency") != "transparent" and "start" in item and "end" in item
        ]
        logger.info("Found %d busy events on %s", len(busy), calendar_id)
        return busy

    async def create_event(
        self, calendar_id: str, request: CalendarEventRequest
    ) -> CalendarEvent:
        body = {
            "summary": request.summary,
            "description": request.description,
            "start": {"dateTime": request.start.isoformat(), "timeZone": self._timezone},
            "end": {"dateTime": request.end.isoformat(), "timeZone": self._timezone},
        }

        def _insert() -> dict:
            return self._get_service().events().insert(calendarId=calendar_id, body=body).execute()

        try:
            created = await asyncio.to_thread(_insert)
        except API_ERRORS as exc:
            logger.error("Failed to create event on %s: %s", calendar_id, exc)
            raise CalendarError(f"Could not create event on {calendar_id}") from exc

        logger.info("Created calendar event %s on %s", created.get("id"), calendar_id)
        return CalendarEvent(id=created["id"], html_link=created.get("htmlLink"))

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        def _delete() -> None:
            self._get_service().events().delete(calendarId=calendar_id, eventId=event_id).execute()

        try:
            await asyncio.to_thread(_delete)
        except API_ERRORS as exc:
            logger.error("Failed to delete event %s on %s: %s", event_id, calendar_id, exc)
            raise CalendarError(f"Could not delete event {event_id} on {calendar_id}") from exc
        logger.info("Deleted calendar event %s on %s", event_id, calendar_id)


class FakeCalendarProvider(CalendarProvider):
    """
    Deterministic in-memory calendar for tests and local development.

    Created events become busy intervals, so a slot booked once is no longer
    offered. Deleting an event frees its interval again. Set ``fail_on_create``,
    ``fail_on_list`` or ``fail_on_delete`` to simulate outages.
    """

    def __init__(self, busy: Optional[dict[str, list[BusyInterval]]] = None) -> None:
        self.busy: dict[str, list[BusyInterval]] = {k: list(v) for k, v in (busy or {}).items()}
        self.created: list[tuple[str, CalendarEventRequest, CalendarEvent]] = []
        self.deleted: list[str] = []
        self.fail_on_create = False
        self.fail_on_list = False
        self.fail_on_delete = False
        self._ids = itertools.count(1)

    def add_busy(self, calendar_id: str, start: datetime, end: datetime) -> None:
        self.busy.setdefault(calendar_id, []).append(BusyInterval(start=start, end=end))

    async def list_events(
        self, calendar_id: str, start: datetime, end: datetime
    ) -> list[BusyInterval]:
        if self.fail_on_list:
            raise CalendarError("Calendar unavailable")
        return [
            interval
            for interval in self.busy.get(calendar_id, [])
            if interval.start < end and interval.end > start
        ]

    async def create_event(
        self, calendar_id: str, request: CalendarEventRequest
    ) -> CalendarEvent:
        if self.fail_on_create:
            raise CalendarError("Calendar unavailable")
        event = CalendarEvent(id=f"evt-{next(self._ids)}")
        self.created.append((calendar_id, request, event))
        self.add_busy(calendar_id, request.start, request.end)
        return event

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        if self.fail_on_delete:
            raise CalendarError("Calendar unavailable")
        for entry in self.created:
            created_on, request, event = entry
            if created_on == calendar_id and event.id == event_id:
                self.created.remove(entry)
                self.deleted.append(event_id)
                busy = self.busy.get(calendar_id, [])
                busy[:] = [b for b in busy if (b.start, b.end) != (request.start, request.end)]
                return
        raise CalendarError(f"Unknown event {event_id}")


def build_calendar_provider(backend: str = settings.scheduling.calendar_backend) -> CalendarProvider:
    if backend == "google":
        return GoogleCalendarProvider()
    return FakeCalendarProvider()
