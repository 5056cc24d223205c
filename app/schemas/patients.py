"""Patient record schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from app.schemas.enums import PatientStatus, PatientType


class PatientCreate(BaseModel):
    """Schema for creating a patient record."""

    patient_type: PatientType
    full_name: str = Field(..., min_length=1, max_length=200)
    contact_number: str | None = Field(None, max_length=20)
    email: EmailStr | None = None
    medical_record: dict[str, Any] | None = None


class PatientUpdate(BaseModel):
    """Schema for updating a patient record."""

    full_name: str | None = Field(None, min_length=1, max_length=200)
    contact_number: str | None = Field(None, max_length=20)
    email: EmailStr | None = None
    status: PatientStatus | None = None
    medical_record: dict[str, Any] | None = None


class PatientResponse(BaseModel):
    """Schema for patient response."""

    id: UUID
    patient_id: str
    patient_type: PatientType
    full_name: str
    contact_number: str | None = None
    email: str | None = None
    patient_user_id: UUID | None = None
    status: PatientStatus
    no_show_count: int
    appointment_locked: bool
    last_no_show_at: datetime | None = None
    medical_record: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PatientListResponse(BaseModel):
    """Paginated patient list."""

    total: int
    page: int
    page_size: int
    items: list[PatientResponse]


class PatientStatsResponse(BaseModel):
    """Patient record counts for the staff overview."""

    total: int
    by_type: dict[str, int]
    by_status: dict[str, int]
    recent: int = Field(..., description="Records created in the last 30 days")
    locked: int
