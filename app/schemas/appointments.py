"""Appointment schemas for request/response validation."""

from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.timeslots import normalize_time
from app.schemas.approvals import ApprovalRequest, RescheduledFrom
from app.schemas.enums import (
    SERVICES_BY_DOCTOR_TYPE,
    AppointmentStatus,
    BookingSource,
    DoctorType,
    ServiceType,
)


def _validate_time(value: str) -> str:
    return normalize_time(value)


def _validate_phone(value: str | None) -> str | None:
    if value is None:
        return value
    cleaned = (
        value.replace("-", "").replace(" ", "").replace("(", "").replace(")", "").replace("+", "")
    )
    if not cleaned.isdigit():
        raise ValueError("Phone number must contain only digits and separators")
    if len(cleaned) < 7:
        raise ValueError("Phone number must have at least 7 digits")
    return value


class AppointmentBookingBase(BaseModel):
    """Fields shared by staff-created and portal bookings."""

    doctor_type: DoctorType
    appointment_date: date
    appointment_time: str = Field(..., examples=["09:00 AM"])
    service_type: ServiceType
    reason: str | None = Field(None, max_length=500)

    @field_validator("appointment_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        """Canonicalize the 12-hour time label."""
        return _validate_time(v)

    @model_validator(mode="after")
    def validate_service_for_doctor(self) -> "AppointmentBookingBase":
        """Service type must belong to the chosen specialty."""
        if self.service_type not in SERVICES_BY_DOCTOR_TYPE[self.doctor_type]:
            raise ValueError(
                f"Service {self.service_type.value} is not offered for {self.doctor_type.value}"
            )
        return self


class AppointmentCreate(AppointmentBookingBase):
    """Staff-created appointment for an existing patient record."""

    patient_id: UUID
    doctor_name: str | None = Field(None, min_length=1, max_length=200)
    notes: str | None = Field(None, max_length=1000)


class DependentInfo(BaseModel):
    """Who a portal booking is for when it is not the account holder."""

    name: str = Field(..., min_length=1, max_length=200)
    relationship: str = Field(..., min_length=1, max_length=50, examples=["daughter"])
    date_of_birth: date | None = None


class PortalBookingCreate(AppointmentBookingBase):
    """Appointment booked by a patient through the portal."""

    doctor_name: str | None = Field(None, min_length=1, max_length=200)
    booked_for: Literal["self", "dependent"] = "self"
    patient_name: str | None = Field(None, min_length=1, max_length=200)
    dependent_relationship: str | None = Field(None, min_length=1, max_length=50)
    dependent_date_of_birth: date | None = None
    contact_number: str | None = Field(None, min_length=7, max_length=20)

    @field_validator("contact_number")
    @classmethod
    def validate_phone(cls, v: str | None) -> str | None:
        """Validate phone number format."""
        return _validate_phone(v)

    @model_validator(mode="after")
    def validate_dependent(self) -> "PortalBookingCreate":
        """Dependents must be named and their relationship given."""
        if self.booked_for == "dependent":
            if not self.patient_name:
                raise ValueError("patient_name is required when booking for a dependent")
            if not self.dependent_relationship:
                raise ValueError(
                    "dependent_relationship is required when booking for a dependent"
                )
        return self

    def dependent_info(self) -> DependentInfo | None:
        if self.booked_for != "dependent":
            return None
        return DependentInfo(
            name=self.patient_name,
            relationship=self.dependent_relationship,
            date_of_birth=self.dependent_date_of_birth,
        )


class AppointmentStatusUpdate(BaseModel):
    """Staff status change: confirm, cancel, no-show or complete."""

    status: Literal["confirmed", "cancelled", "no-show", "completed"]
    reason: str | None = Field(None, max_length=500)
    notes: str | None = Field(None, max_length=1000)


class StaffReschedule(BaseModel):
    """Staff move of an appointment to a new slot."""

    new_date: date
    new_time: str
    reason: str | None = Field(None, max_length=500)

    @field_validator("new_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        """Canonicalize the 12-hour time label."""
        return _validate_time(v)


class PatientRescheduleRequest(StaffReschedule):
    """Patient proposal for a new slot."""

    reason: str = Field(..., min_length=1, max_length=500)


class CancellationRequestCreate(BaseModel):
    """Patient request to cancel."""

    reason: str = Field(..., min_length=1, max_length=500)


class ReviewDecision(BaseModel):
    """Staff decision on a pending request."""

    admin_notes: str | None = Field(None, max_length=1000)


class RescheduleDecline(BaseModel):
    """Patient declining a staff-proposed slot."""

    reason: str | None = Field(None, max_length=500)


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    appointment_id: str
    patient_id: UUID | None = None
    patient_user_id: UUID | None = None
    patient_name: str
    contact_number: str | None = None
    email: str | None = None
    doctor_type: DoctorType
    doctor_name: str
    appointment_date: date
    appointment_time: str
    end_time: str | None = None
    service_type: ServiceType
    reason: str | None = None
    notes: str | None = None
    status: AppointmentStatus
    booking_source: BookingSource
    booked_for: str
    dependent_info: DependentInfo | None = None
    confirmed_by: str | None = None
    confirmed_at: datetime | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    completed_at: datetime | None = None
    no_show_at: datetime | None = None
    cancellation_request: ApprovalRequest | None = None
    reschedule_request: ApprovalRequest | None = None
    rescheduled_from: RescheduledFrom | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    appointment_date: date | None = None
    status: AppointmentStatus | None = None
    doctor_type: DoctorType | None = None
    doctor_name: str | None = None
    patient_id: str | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class DailySlot(BaseModel):
    """One slot of a doctor's day and whatever occupies it."""

    time: str
    appointments: list[AppointmentResponse]


class DailyScheduleResponse(BaseModel):
    """A doctor's appointments for one date, laid out by slot."""

    doctor_name: str
    appointment_date: date
    working: bool
    slots: list[DailySlot]
    unslotted: list[AppointmentResponse] = []


class BookingStatusResponse(BaseModel):
    """Whether a portal account can book right now."""

    appointment_locked: bool
    no_show_count: int
    has_active_booking: bool
    active_appointment_id: str | None = None
