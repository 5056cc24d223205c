"""Availability schemas."""

from datetime import date

from pydantic import BaseModel

from app.schemas.enums import DoctorType, ServiceType
from app.schemas.settings import DayHours


class DoctorInfo(BaseModel):
    """A bookable doctor."""

    name: str
    doctor_type: DoctorType
    hours: dict[str, DayHours]
    services: list[ServiceType]


class AvailableDatesResponse(BaseModel):
    """Working dates within the booking horizon."""

    doctor_name: str
    dates: list[date]


class AvailableSlotsResponse(BaseModel):
    """Slots offered on a date, split by availability."""

    doctor_name: str
    appointment_date: date
    working: bool
    available: list[str]
    taken: list[str]


class SlotCheckResponse(BaseModel):
    """Single slot check."""

    available: bool
    reason: str | None = None
