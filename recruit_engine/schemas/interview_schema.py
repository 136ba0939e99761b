"""Interview slots, bookings and candidate application records."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from recruit_engine.schemas.conversation_schema import CandidateFacts, utcnow


class TimeSlot(BaseModel):
    """A proposed interview time before acceptance."""
    start: datetime
    end: datetime
    display: str


class BusyInterval(BaseModel):
    """An existing calendar commitment, half-open ``[start, end)``."""
    start: datetime
    end: datetime


class CalendarEventRequest(BaseModel):
    summary: str
    description: str = ""
    start: datetime
    end: datetime


class CalendarEvent(BaseModel):
    id: str
    html_link: Optional[str] = None


class InterviewRequest(BaseModel):
    """Booking request for one accepted slot."""
    store_id: str
    vacancy_id: str
    start_time: datetime
    address: str = ""


class InterviewStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"


class Interview(BaseModel):
    store_id: str
    vacancy_id: str
    start_time: datetime
    address: str = ""
    calendar_event_id: str
    status: InterviewStatus = InterviewStatus.SCHEDULED
    confirmed: bool = False
    scheduled_at: datetime = Field(default_factory=utcnow)
    confirmed_at: Optional[datetime] = None


class ApplicationEntry(BaseModel):
    """Immutable history entry captured at booking time."""
    id: str
    store_id: str
    store_name: str
    brand: str
    vacancy_id: str
    position: str
    status: str
    applied_at: datetime = Field(default_factory=utcnow)
    source: str = "bot_whatsapp"


class CandidateRecord(BaseModel):
    """Tenant-scoped candidate application record."""
    candidate_id: str
    tenant_id: str
    profile: CandidateFacts = Field(default_factory=CandidateFacts)
    status: str = "in_screening"
    interview: Optional[Interview] = None
    applications: list[ApplicationEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: Any = Field(default=None, exclude=True)
