"""Tenant, store and vacancy records read by the matcher and scheduler."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class GeoPoint(BaseModel):
    lat: float
    lng: float


class ShiftType(str, Enum):
    FIXED = "fixed"
    FLEXIBLE = "flexible"


class VacancyStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class Tenant(BaseModel):
    """Isolation boundary with its own stores, vacancies and branding."""

    tenant_id: str
    name: str = ""
    bot_name: str = "Asistente"
    brand: str = ""
    language: str = "Spanish"
    webhook_origin: Optional[str] = None
    calendar_id: Optional[str] = None
    max_distance_km: Optional[float] = None
    max_salary: Optional[float] = None


class Store(BaseModel):
    """Physical location. Coordinates may be absent and derived from the district."""

    id: str
    name: str
    address: str = ""
    district: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    coordinates: Optional[GeoPoint] = None
    brand: str = ""
    code: Optional[str] = None
    zone: Optional[str] = None


class Vacancy(BaseModel):
    id: str
    store_id: str
    position: str = "Crew member"
    shift_type: ShiftType = ShiftType.FIXED
    open_slots: int = Field(default=0, ge=0)
    status: VacancyStatus = VacancyStatus.ACTIVE

    @property
    def is_open(self) -> bool:
        return self.status == VacancyStatus.ACTIVE and self.open_slots > 0


class StoreMatch(BaseModel):
    """One ranked matcher result."""

    store: Store
    vacancies: list[Vacancy]
    total_open_slots: int
    distance_km: float
