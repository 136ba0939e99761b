"""
Interview slot generation, availability filtering and booking.

The scheduler is the only writer of a vacancy's open-slot counter. A
booking reserves one slot with a compare-and-set decrement, creates the
calendar event, and only then writes the candidate's interview. A calendar
failure releases the reservation, and a failed record write also deletes
the event, so no partial booking survives.
"""

import asyncio
import logging
import uuid
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from recruit_engine.config import SchedulingConfig, settings
from recruit_engine.errors import (
    BookingConflictError,
    CalendarError,
    CandidateNotFoundError,
    ConcurrentUpdateError,
    DocumentNotFoundError,
    StorageError,
)
from recruit_engine.persistence import DocumentStore, collections
from recruit_engine.schemas.catalog_schema import Vacancy, VacancyStatus
from recruit_engine.schemas.conversation_schema import utcnow
from recruit_engine.schemas.interview_schema import (
    ApplicationEntry,
    CalendarEventRequest,
    Interview,
    InterviewRequest,
    InterviewStatus,
    TimeSlot,
)
from recruit_engine.tools.calendar import CalendarProvider
from recruit_engine.tools.candidates import CandidateRepository
from recruit_engine.tools.catalog import Catalog

logger = logging.getLogger(__name__)

DAY_NAMES = ["Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado", "Domingo"]
MONTH_NAMES = ["Ene", "Feb", "Mar", "Abr", "May", "Jun", "Jul", "Ago", "Sep", "Oct", "Nov", "Dic"]


def format_slot(start: datetime) -> str:
    """Spanish display string, e.g. ``"Lunes 3 Mar - 9:00 AM"``."""
    hour = start.hour % 12 or 12
    meridiem = "PM" if start.hour >= 12 else "AM"
    return (
        f"{DAY_NAMES[start.weekday()]} {start.day} {MONTH_NAMES[start.month - 1]}"
        f" - {hour}:{start.minute:02d} {meridiem}"
    )


class Scheduler:
    """Offers interview slots and books them against a calendar."""

    def __init__(
        self,
        documents: DocumentStore,
        calendar: CalendarProvider,
        config: SchedulingConfig = settings.scheduling,
        retries: int = settings.screening.save_retries,
    ) -> None:
        self._documents = documents
        self._calendar = calendar
        self._config = config
        self._retries = retries
        self._tz = ZoneInfo(config.timezone)
        self._catalog = Catalog(documents)
        self._candidates = CandidateRepository(documents, retries)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._retries),
            retry=retry_if_exception_type(ConcurrentUpdateError),
            reraise=True,
        )

    def generate_slots(self, start: datetime, days_ahead: Optional[int] = None) -> list[TimeSlot]:
        """
        Enumerate slots from the day after ``start`` for ``days_ahead`` days.

        Naive datetimes are taken as local time in the configured timezone.
        The non-working weekday is skipped but still counts as a calendar day.
        """
        days_ahead = self._config.days_ahead if days_ahead is None else days_ahead
        local = start.astimezone(self._tz) if start.tzinfo else start.replace(tzinfo=self._tz)
        first_day: date = local.date()
        duration = timedelta(minutes=self._config.duration_minutes)

        slots = []
        for offset in range(1, days_ahead + 1):
            day = first_day + timedelta(days=offset)
            if day.weekday() == self._config.non_working_weekday:
                continue
            for hour in self._config.interview_hours:
                slot_start = datetime.combine(day, time(hour=hour), tzinfo=self._tz)
                slots.append(
                    TimeSlot(start=slot_start, end=slot_start + duration, display=format_slot(slot_start))
                )
        return slots

    async def filter_available(self, calendar_id: str, slots: list[TimeSlot]) -> list[TimeSlot]:
        """Drop every slot that intersects a busy interval; touching edges do not overlap."""
        if not slots:
            return []
        window_start = min(slot.start for slot in slots)
        window_end = max(slot.end for slot in slots)
        try:
            busy = await asyncio.wait_for(
                self._calendar.list_events(calendar_id, window_start, window_end),
                timeout=self._config.calendar_timeout_sec,
            )
        except asyncio.TimeoutError as exc:
            raise CalendarError(f"Timed out listing events for {calendar_id}") from exc

        return [
            slot
            for slot in slots
            if not any(slot.start < event.end and slot.end > event.start for event in busy)
        ]

    async def available_slots(
        self,
        calendar_id: str,
        now: Optional[datetime] = None,
        days_ahead: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[TimeSlot]:
        """Generate, filter and truncate slots for offering to a candidate."""
        limit = self._config.slots_offered if limit is None else limit
        slots = self.generate_slots(now or utcnow(), days_ahead)
        available = await self.filter_available(calendar_id, slots)
        logger.info(
            "%d of %d slots free on %s", len(available), len(slots), calendar_id
        )
        return available[:limit]

    async def _reserve_slot(self, tenant_id: str, store_id: str, vacancy_id: str) -> Vacancy:
        path = collections.vacancy(tenant_id, store_id, vacancy_id)
        async for attempt in self._retrying():
            with attempt:
                doc = await self._documents.get(path)
                if doc is None:
                    raise BookingConflictError(f"Vacancy {vacancy_id} does not exist")
                vacancy = Vacancy.model_validate({**doc.data, "id": doc.id, "store_id": store_id})
                if not vacancy.is_open:
                    raise BookingConflictError(f"Vacancy {vacancy_id} has no open slots")

                remaining = vacancy.open_slots - 1
                status = VacancyStatus.CLOSED if remaining == 0 else vacancy.status
                await self._documents.replace(
                    path, {**doc.data, "open_slots": remaining, "status": status.value}, doc.version
                )
                logger.info("Reserved slot on vacancy %s (%d left)", vacancy_id, remaining)
                return vacancy.model_copy(update={"open_slots": remaining, "status": status})

    async def _release_slot(self, tenant_id: str, store_id: str, vacancy_id: str) -> None:
        path = collections.vacancy(tenant_id, store_id, vacancy_id)
        async for attempt in self._retrying():
            with attempt:
                doc = await self._documents.get(path)
                if doc is None:
                    logger.warning("Vacancy %s vanished before release", vacancy_id)
                    return
                open_slots = int(doc.data.get("open_slots", 0))
                data = {**doc.data, "open_slots": open_slots + 1}
                if open_slots == 0:
                    data["status"] = VacancyStatus.ACTIVE.value
                await self._documents.replace(path, data, doc.version)
                logger.info("Released slot on vacancy %s", vacancy_id)

    async def _cancel_event(self, calendar_id: str, event_id: str) -> None:
        try:
            await asyncio.wait_for(
                self._calendar.delete_event(calendar_id, event_id),
                timeout=self._config.calendar_timeout_sec,
            )
        except (asyncio.TimeoutError, CalendarError) as exc:
            logger.error("Orphaned calendar event %s on %s: %s", event_id, calendar_id, exc)

    async def schedule_interview(
        self, tenant_id: str, candidate_id: str, request: InterviewRequest
    ) -> Interview:
        """
        Book ``request`` for the candidate.

        Raises:
            CandidateNotFoundError: If the candidate record does not exist.
            BookingConflictError: If the vacancy has no open slot left.
            CalendarError: If the event could not be created; the slot is released.
        """
        record = await self._candidates.get(tenant_id, candidate_id)
        if record is None:
            raise CandidateNotFoundError(f"Candidate {candidate_id} not found in {tenant_id}")

        existing = record.interview
        if (
            existing is not None
            and existing.vacancy_id == request.vacancy_id
            and existing.start_time == request.start_time
        ):
            logger.info("Candidate already holds this slot, returning existing interview")
            return existing

        store = await self._catalog.get_store(tenant_id, request.store_id)
        calendar_id = await self._calendar_id(tenant_id)
        start = request.start_time
        end = start + timedelta(minutes=self._config.duration_minutes)

        # The slot may have been taken on the calendar since it was offered
        requested = TimeSlot(start=start, end=end, display=format_slot(start.astimezone(self._tz)))
        if not await self.filter_available(calendar_id, [requested]):
            raise BookingConflictError(f"Slot {start.isoformat()} is no longer free")

        vacancy = await self._reserve_slot(tenant_id, request.store_id, request.vacancy_id)
        store_name = store.name if store else request.store_id
        event_request = CalendarEventRequest(
            summary=f"Entrevista - {record.profile.name or candidate_id}",
            description=(
                f"Tienda: {store_name}\nDirección: {request.address}\n"
                f"Puesto: {vacancy.position}"
            ),
            start=start,
            end=end,
        )
        try:
            event = await asyncio.wait_for(
                self._calendar.create_event(calendar_id, event_request),
                timeout=self._config.calendar_timeout_sec,
            )
        except (asyncio.TimeoutError, CalendarError) as exc:
            logger.error("Calendar event creation failed, releasing reservation: %s", exc)
            await self._release_slot(tenant_id, request.store_id, request.vacancy_id)
            raise CalendarError("Could not create the interview event") from exc

        interview = Interview(
            store_id=request.store_id,
            vacancy_id=request.vacancy_id,
            start_time=start,
            address=request.address,
            calendar_event_id=event.id,
        )
        application = ApplicationEntry(
            id=uuid.uuid4().hex,
            store_id=request.store_id,
            store_name=store_name,
            brand=store.brand if store else "",
            vacancy_id=request.vacancy_id,
            position=vacancy.position,
            status="interview_scheduled",
        )

        try:
            async for attempt in self._retrying():
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        record = await self._candidates.get(tenant_id, candidate_id)
                        if record is None:
                            raise CandidateNotFoundError(candidate_id)
                    record.interview = interview
                    record.applications = [*record.applications, application]
                    record.status = "interview_scheduled"
                    await self._candidates.save(record)
        except (
            ConcurrentUpdateError, CandidateNotFoundError, DocumentNotFoundError, StorageError
        ):
            logger.error("Could not record interview for candidate, undoing event and reservation")
            await self._cancel_event(calendar_id, event.id)
            await self._release_slot(tenant_id, request.store_id, request.vacancy_id)
            raise

        logger.info("Scheduled interview on %s at %s", request.vacancy_id, start.isoformat())
        return interview

    async def confirm_interview(self, tenant_id: str, candidate_id: str) -> Interview:
        """Mark the candidate's interview confirmed. Repeated calls change nothing."""
        async for attempt in self._retrying():
            with attempt:
                record = await self._candidates.get(tenant_id, candidate_id)
                if record is None:
                    raise CandidateNotFoundError(
                        f"Candidate {candidate_id} not found in {tenant_id}"
                    )
                if record.interview is None:
                    raise DocumentNotFoundError(f"No interview scheduled for {candidate_id}")
                if record.interview.confirmed:
                    return record.interview

                record.interview = record.interview.model_copy(
                    update={
                        "status": InterviewStatus.CONFIRMED,
                        "confirmed": True,
                        "confirmed_at": utcnow(),
                    }
                )
                record.status = "interview_confirmed"
                await self._candidates.save(record)
                logger.info("Interview confirmed for candidate in %s", tenant_id)
                return record.interview

    async def _calendar_id(self, tenant_id: str) -> str:
        doc = await self._documents.get(collections.tenant(tenant_id))
        if doc is not None and doc.data.get("calendar_id"):
            return doc.data["calendar_id"]
        return self._config.default_calendar_id
