"""Conversation records, candidate facts and transport envelopes."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from recruit_engine.schemas.catalog_schema import ShiftType


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecruitmentState(str, Enum):
    """All possible states of a candidate conversation."""
    START = "start"
    TERMS_CHECK = "terms_check"
    BASIC_INFO = "basic_info"
    HARD_FILTERS = "hard_filters"
    SALARY_EXPECTATION = "salary_expectation"
    LOCATION_INPUT = "location_input"
    STORE_SELECTION = "store_selection"
    VACANCY_SELECTION = "vacancy_selection"
    SCREENING = "screening"
    INTERVIEW_SLOT_OFFER = "interview_slot_offer"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    role: Role
    text: str
    timestamp: datetime = Field(default_factory=utcnow)


class CandidateFacts(BaseModel):
    """
    Structured facts extracted from the candidate's messages.

    Every field is optional. ``merged`` is the only way facts are combined:
    a field set to None in the update never erases a known value.
    """
    name: Optional[str] = None
    birth_date: Optional[str] = None
    age: Optional[int] = None
    national_id: Optional[str] = None
    email: Optional[str] = None
    terms_accepted: Optional[bool] = None
    rotating_shifts: Optional[bool] = None
    closing_shifts: Optional[bool] = None
    salary_expectation: Optional[float] = None
    district: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    store_selection: Optional[int] = None
    vacancy_selection: Optional[int] = None
    slot_selection: Optional[int] = None

    def merged(self, update: "CandidateFacts") -> "CandidateFacts":
        """Return a new record with the non-empty fields of ``update`` applied."""
        data = self.model_dump()
        data.update(update.model_dump(exclude_none=True))
        return CandidateFacts(**data)

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)

    @property
    def has_location(self) -> bool:
        return bool(self.district) or (
            self.latitude is not None and self.longitude is not None
        )

    @property
    def shift_availability(self) -> ShiftType:
        """Candidates who accept rotating shifts and closings can take any shift."""
        if self.rotating_shifts and self.closing_shifts:
            return ShiftType.FLEXIBLE
        return ShiftType.FIXED


class OfferedVacancy(BaseModel):
    vacancy_id: str
    position: str
    shift_type: ShiftType
    open_slots: int


class OfferedStore(BaseModel):
    store_id: str
    name: str
    address: str = ""
    brand: str = ""
    distance_km: float
    vacancies: list[OfferedVacancy] = Field(default_factory=list)


class OfferedSlot(BaseModel):
    start: datetime
    display: str


class OfferSnapshot(BaseModel):
    """What the candidate was last shown, so numeric picks resolve against it."""

    stores: list[OfferedStore] = Field(default_factory=list)
    slots: list[OfferedSlot] = Field(default_factory=list)
    interview_start: Optional[datetime] = None
    interview_address: Optional[str] = None


class Conversation(BaseModel):
    """One conversation per channel identity, keyed globally by identity."""

    identity: str
    tenant_id: str
    origin_id: str
    state: RecruitmentState = RecruitmentState.START
    messages: list[Message] = Field(default_factory=list)
    facts: CandidateFacts = Field(default_factory=CandidateFacts)
    offers: OfferSnapshot = Field(default_factory=OfferSnapshot)
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_inbound_at: Optional[datetime] = None
    # Opaque storage version used for compare-and-set; never serialized
    version: Any = Field(default=None, exclude=True)

    def recent_messages(self, limit: int) -> list[Message]:
        return self.messages[-limit:] if limit > 0 else []


class InboundMessage(BaseModel):
    """Inbound envelope from the messaging transport."""

    sender: str
    text: str = ""
    origin_id: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    message_id: Optional[str] = None


class OutboundMessage(BaseModel):
    to: str
    text: str
