"""Report schemas."""

from datetime import date

from pydantic import BaseModel

from app.schemas.appointments import AppointmentResponse


class DailyReportResponse(BaseModel):
    """Appointment counts for one day."""

    report_date: date
    doctor_name: str | None = None
    total: int
    by_status: dict[str, int]
    by_doctor_type: dict[str, int]
    by_service_type: dict[str, int]
    by_doctor: dict[str, int]


class DayCounts(BaseModel):
    """Appointment counts for one calendar day of a longer report."""

    day: date
    total: int = 0
    completed: int = 0
    cancelled: int = 0
    by_doctor_type: dict[str, int] = {}


class WeeklyReportResponse(BaseModel):
    """Sunday-to-Saturday appointment counts."""

    week_start: date
    week_end: date
    doctor_name: str | None = None
    total: int
    by_status: dict[str, int]
    by_doctor_type: dict[str, int]
    # Keyed by lower-case weekday name
    days: dict[str, DayCounts]


class MonthlyReportResponse(BaseModel):
    """Appointment counts for a calendar month."""

    year: int
    month: int
    month_name: str
    total: int
    by_status: dict[str, int]
    by_doctor_type: dict[str, int]
    # Keyed by day of month
    days: dict[int, DayCounts]


class PeriodSummary(BaseModel):
    """Totals for one dashboard period."""

    total: int = 0
    completed: int = 0
    cancelled: int = 0
    pending: int = 0


class DashboardResponse(BaseModel):
    """Front-desk overview of today, this week and this month."""

    today: PeriodSummary
    this_week: PeriodSummary
    this_month: PeriodSummary
    patients: dict[str, int]
    upcoming: list[AppointmentResponse]
