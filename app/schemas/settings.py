"""Clinic settings schemas."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.timeslots import WEEKDAYS, parse_time_24h


class DayHours(BaseModel):
    """Opening window for one weekday."""

    start: str = Field(..., examples=["08:00"])
    end: str = Field(..., examples=["12:00"])
    enabled: bool = True

    @field_validator("start", "end")
    @classmethod
    def validate_clock(cls, v: str) -> str:
        """Times are HH:MM, 24-hour."""
        return parse_time_24h(v).strftime("%H:%M")

    @model_validator(mode="after")
    def validate_window(self) -> "DayHours":
        """Closing time must follow opening time."""
        if self.enabled and parse_time_24h(self.end) <= parse_time_24h(self.start):
            raise ValueError("end must be after start")
        return self


class DoctorSchedule(BaseModel):
    """A doctor's name and weekly hours keyed by lower-case weekday."""

    name: str = Field(..., min_length=1, max_length=200)
    hours: dict[str, DayHours]

    @field_validator("hours")
    @classmethod
    def validate_weekdays(cls, v: dict[str, DayHours]) -> dict[str, DayHours]:
        """Keys must be weekday names; missing days are closed."""
        unknown = set(v) - set(WEEKDAYS)
        if unknown:
            raise ValueError(f"Unknown weekday(s): {', '.join(sorted(unknown))}")
        closed = DayHours(start="08:00", end="17:00", enabled=False)
        return {day: v.get(day, closed) for day in WEEKDAYS}


class ClinicSettingsUpdate(BaseModel):
    """Admin update of the clinic settings document."""

    clinic_name: str | None = Field(None, min_length=1, max_length=200)
    obgyne_doctor: DoctorSchedule | None = None
    pediatrician: DoctorSchedule | None = None


class ClinicSettingsResponse(BaseModel):
    """Clinic settings document."""

    clinic_name: str
    obgyne_doctor: DoctorSchedule
    pediatrician: DoctorSchedule
    updated_by: str | None = None
    updated_at: datetime | None = None
