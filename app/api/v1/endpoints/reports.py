"""Staff report endpoints."""

from datetime import date

from fastapi import APIRouter, Query, status

from app.dependencies import CurrentStaff, DatabaseSession
from app.schemas.reports import (
    DailyReportResponse,
    DashboardResponse,
    MonthlyReportResponse,
    WeeklyReportResponse,
)
from app.services.availability_service import clinic_now
from app.services.report_service import ReportService

router = APIRouter()


@router.get(
    "/daily",
    response_model=DailyReportResponse,
    status_code=status.HTTP_200_OK,
    tags=["Reports"],
    summary="Daily appointment report",
)
async def daily_report(
    staff: CurrentStaff,
    db: DatabaseSession,
    report_date: date = Query(..., alias="date"),
    doctor_name: str | None = Query(None),
) -> DailyReportResponse:
    """Appointment counts for a day by status, specialty, service and doctor."""
    return await ReportService.daily_report(db, report_date, doctor_name)


@router.get(
    "/weekly",
    response_model=WeeklyReportResponse,
    status_code=status.HTTP_200_OK,
    tags=["Reports"],
    summary="Weekly appointment report",
)
async def weekly_report(
    staff: CurrentStaff,
    db: DatabaseSession,
    start_date: date | None = Query(None, description="Any day of the week, defaults to today"),
    doctor_name: str | None = Query(None),
) -> WeeklyReportResponse:
    """Appointment counts for a Sunday-to-Saturday week, broken down per day."""
    return await ReportService.weekly_report(db, start_date or clinic_now().date(), doctor_name)


@router.get(
    "/monthly",
    response_model=MonthlyReportResponse,
    status_code=status.HTTP_200_OK,
    tags=["Reports"],
    summary="Monthly appointment report",
)
async def monthly_report(
    staff: CurrentStaff,
    db: DatabaseSession,
    month: int | None = Query(None, ge=1, le=12),
    year: int | None = Query(None, ge=2020),
) -> MonthlyReportResponse:
    """Appointment counts for a calendar month, defaulting to the current one."""
    today = clinic_now().date()
    return await ReportService.monthly_report(db, year or today.year, month or today.month)


@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    status_code=status.HTTP_200_OK,
    tags=["Reports"],
    summary="Dashboard overview",
)
async def dashboard(staff: CurrentStaff, db: DatabaseSession) -> DashboardResponse:
    """Today, this week and this month at a glance, with the next bookings."""
    return await ReportService.dashboard(db, clinic_now().date())
