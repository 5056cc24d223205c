"""Daily, weekly, monthly and dashboard appointment reports."""

import calendar
from collections import Counter
from datetime import date, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.timeslots import parse_time_12h, weekday_name
from app.models.appointments import appointments
from app.models.patients import patients
from app.schemas.appointments import AppointmentResponse
from app.schemas.enums import ACTIVE_BOOKING_STATUSES, AppointmentStatus, PatientType
from app.schemas.reports import (
    DailyReportResponse,
    DashboardResponse,
    DayCounts,
    MonthlyReportResponse,
    PeriodSummary,
    WeeklyReportResponse,
)

PENDING_STATUS_VALUES = [status.value for status in ACTIVE_BOOKING_STATUSES]

UPCOMING_LIMIT = 5


def _doctor_filter(doctor_name: str | None) -> list:
    if not doctor_name:
        return []
    return [func.lower(appointments.c.doctor_name) == doctor_name.strip().lower()]


def _day_counts(start: date, length: int) -> dict[date, DayCounts]:
    days = [start + timedelta(days=offset) for offset in range(length)]
    return {day: DayCounts(day=day) for day in days}


class ReportService:
    """Aggregates appointment counts for staff reports."""

    @staticmethod
    async def _counts(db: AsyncSession, column, conditions: list) -> dict[str, int]:
        result = await db.execute(
            select(column, func.count()).where(*conditions).group_by(column).order_by(column)
        )
        return {str(key): int(count) for key, count in result.all()}

    @staticmethod
    async def _range_rows(
        db: AsyncSession, start: date, end: date, conditions: list
    ) -> list[tuple[date, str, str, int]]:
        """(date, status, doctor type, count) groups for start <= date < end."""
        result = await db.execute(
            select(
                appointments.c.appointment_date,
                appointments.c.status,
                appointments.c.doctor_type,
                func.count(),
            )
            .where(
                appointments.c.appointment_date >= start,
                appointments.c.appointment_date < end,
                *conditions,
            )
            .group_by(
                appointments.c.appointment_date,
                appointments.c.status,
                appointments.c.doctor_type,
            )
        )
        return [(day, status, kind, int(count)) for day, status, kind, count in result.all()]

    @staticmethod
    def _tally(
        rows: list[tuple[date, str, str, int]], days: dict[date, DayCounts]
    ) -> tuple[Counter, Counter]:
        by_status: Counter = Counter()
        by_doctor_type: Counter = Counter()
        for day, status, doctor_type, count in rows:
            by_status[status] += count
            by_doctor_type[doctor_type] += count
            counts = days[day]
            counts.total += count
            counts.by_doctor_type[doctor_type] = counts.by_doctor_type.get(doctor_type, 0) + count
            if status == AppointmentStatus.COMPLETED.value:
                counts.completed += count
            elif status == AppointmentStatus.CANCELLED.value:
                counts.cancelled += count
        return by_status, by_doctor_type

    @staticmethod
    async def daily_report(
        db: AsyncSession,
        report_date: date,
        doctor_name: str | None = None,
    ) -> DailyReportResponse:
        """
        Appointment totals for a day.

        Args:
            db: Database session
            report_date: Day to report on
            doctor_name: Restrict to one doctor

        Returns:
            Counts per status, doctor type, service type and doctor
        """
        conditions = [appointments.c.appointment_date == report_date, *_doctor_filter(doctor_name)]

        by_status = await ReportService._counts(db, appointments.c.status, conditions)
        return DailyReportResponse(
            report_date=report_date,
            doctor_name=doctor_name,
            total=sum(by_status.values()),
            by_status=by_status,
            by_doctor_type=await ReportService._counts(db, appointments.c.doctor_type, conditions),
            by_service_type=await ReportService._counts(
                db, appointments.c.service_type, conditions
            ),
            by_doctor=await ReportService._counts(db, appointments.c.doctor_name, conditions),
        )

    @staticmethod
    async def weekly_report(
        db: AsyncSession,
        start_date: date,
        doctor_name: str | None = None,
    ) -> WeeklyReportResponse:
        """
        Appointment totals for the Sunday-to-Saturday week containing a date.

        Args:
            db: Database session
            start_date: Any day of the week to report on
            doctor_name: Restrict to one doctor

        Returns:
            Week totals plus a breakdown per weekday
        """
        week_start = start_date - timedelta(days=(start_date.weekday() + 1) % 7)
        week_end = week_start + timedelta(days=7)
        day_counts = _day_counts(week_start, 7)

        rows = await ReportService._range_rows(
            db, week_start, week_end, _doctor_filter(doctor_name)
        )
        by_status, by_doctor_type = ReportService._tally(rows, day_counts)

        return WeeklyReportResponse(
            week_start=week_start,
            week_end=week_end - timedelta(days=1),
            doctor_name=doctor_name,
            total=sum(by_status.values()),
            by_status=dict(by_status),
            by_doctor_type=dict(by_doctor_type),
            days={weekday_name(day): counts for day, counts in day_counts.items()},
        )

    @staticmethod
    async def monthly_report(db: AsyncSession, year: int, month: int) -> MonthlyReportResponse:
        """
        Appointment totals for a calendar month.

        Args:
            db: Database session
            year: Calendar year
            month: Month number, 1 to 12

        Returns:
            Month totals plus a breakdown per day of month
        """
        _, last_day = calendar.monthrange(year, month)
        month_start = date(year, month, 1)
        month_end = month_start + timedelta(days=last_day)
        day_counts = _day_counts(month_start, last_day)

        rows = await ReportService._range_rows(db, month_start, month_end, [])
        by_status, by_doctor_type = ReportService._tally(rows, day_counts)

        return MonthlyReportResponse(
            year=year,
            month=month,
            month_name=calendar.month_name[month],
            total=sum(by_status.values()),
            by_status=dict(by_status),
            by_doctor_type=dict(by_doctor_type),
            days={day.day: counts for day, counts in day_counts.items()},
        )

    @staticmethod
    async def _period_summary(db: AsyncSession, start: date, end: date) -> PeriodSummary:
        by_status = await ReportService._counts(
            db,
            appointments.c.status,
            [appointments.c.appointment_date >= start, appointments.c.appointment_date < end],
        )
        return PeriodSummary(
            total=sum(by_status.values()),
            completed=by_status.get(AppointmentStatus.COMPLETED.value, 0),
            cancelled=by_status.get(AppointmentStatus.CANCELLED.value, 0),
            pending=sum(by_status.get(status, 0) for status in PENDING_STATUS_VALUES),
        )

    @staticmethod
    async def _upcoming(db: AsyncSession, today: date) -> list[AppointmentResponse]:
        """Next outstanding bookings in date and slot order."""
        result = await db.execute(
            select(appointments)
            .where(
                appointments.c.appointment_date >= today,
                appointments.c.status.in_(PENDING_STATUS_VALUES),
            )
            .order_by(appointments.c.appointment_date)
        )
        # Slot labels are 12-hour strings, so the day's order is settled here
        rows = []
        for row in result.mappings():
            last_date = rows[-1]["appointment_date"] if rows else None
            if len(rows) >= UPCOMING_LIMIT and row["appointment_date"] > last_date:
                break
            rows.append(dict(row))
        rows.sort(
            key=lambda row: (row["appointment_date"], parse_time_12h(row["appointment_time"]))
        )
        return [AppointmentResponse.model_validate(row) for row in rows[:UPCOMING_LIMIT]]

    @staticmethod
    async def dashboard(db: AsyncSession, today: date) -> DashboardResponse:
        """
        Front-desk overview.

        Args:
            db: Database session
            today: Current clinic date

        Returns:
            Today, this week (from Sunday) and this month summaries, patient
            counts and the next few outstanding bookings
        """
        week_start = today - timedelta(days=(today.weekday() + 1) % 7)
        month_start = today.replace(day=1)
        _, last_day = calendar.monthrange(today.year, today.month)

        patient_counts = await ReportService._counts(db, patients.c.patient_type, [])
        patient_summary = {patient_type.value: 0 for patient_type in PatientType}
        patient_summary.update(patient_counts)
        patient_summary["total"] = sum(patient_counts.values())

        return DashboardResponse(
            today=await ReportService._period_summary(db, today, today + timedelta(days=1)),
            this_week=await ReportService._period_summary(
                db, week_start, week_start + timedelta(days=7)
            ),
            this_month=await ReportService._period_summary(
                db, month_start, month_start + timedelta(days=last_day)
            ),
            patients=patient_summary,
            upcoming=await ReportService._upcoming(db, today),
        )
