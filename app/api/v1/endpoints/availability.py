"""Doctor and slot availability endpoints, open to the portal without login."""

from datetime import date

from fastapi import APIRouter, Depends, Query, status

from app.core.timeslots import normalize_time
from app.dependencies import CacheManagerDep, DatabaseSession
from app.schemas.availability import (
    AvailableDatesResponse,
    AvailableSlotsResponse,
    DoctorInfo,
    SlotCheckResponse,
)
from app.services.availability_service import AvailabilityService
from app.services.schedule_service import ClinicScheduleProvider

router = APIRouter()


def get_availability_service(cache_manager: CacheManagerDep) -> AvailabilityService:
    """Get availability service instance."""
    return AvailabilityService(ClinicScheduleProvider(cache_manager))


@router.get(
    "/doctors",
    response_model=list[DoctorInfo],
    status_code=status.HTTP_200_OK,
    tags=["Availability"],
    summary="Bookable doctors",
)
async def list_doctors(
    db: DatabaseSession,
    service: AvailabilityService = Depends(get_availability_service),
) -> list[DoctorInfo]:
    """Both clinic doctors with weekly hours and offered services."""
    doctors = await service.schedule.get_doctors(db)
    return [DoctorInfo.model_validate(doctor) for doctor in doctors]


@router.get(
    "/dates",
    response_model=AvailableDatesResponse,
    status_code=status.HTTP_200_OK,
    tags=["Availability"],
    summary="Working dates",
)
async def available_dates(
    db: DatabaseSession,
    doctor_name: str = Query(..., min_length=1),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailableDatesResponse:
    """
    Dates the doctor works, from tomorrow through the booking horizon.

    Raises:
        BadRequestException: If the doctor is unknown
    """
    dates = await service.get_available_dates(db, doctor_name)
    return AvailableDatesResponse(doctor_name=doctor_name, dates=dates)


@router.get(
    "/slots",
    response_model=AvailableSlotsResponse,
    status_code=status.HTTP_200_OK,
    tags=["Availability"],
    summary="Slots for a date",
)
async def available_slots(
    db: DatabaseSession,
    doctor_name: str = Query(..., min_length=1),
    appointment_date: date = Query(..., alias="date"),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailableSlotsResponse:
    """
    Half-hour slots for a doctor and date, split into available and taken.

    Raises:
        BadRequestException: If the doctor is unknown
    """
    working, available, taken = await service.get_day_slots(db, doctor_name, appointment_date)
    return AvailableSlotsResponse(
        doctor_name=doctor_name,
        appointment_date=appointment_date,
        working=working,
        available=available,
        taken=taken,
    )


@router.get(
    "/check-slot",
    response_model=SlotCheckResponse,
    status_code=status.HTTP_200_OK,
    tags=["Availability"],
    summary="Check one slot",
)
async def check_slot(
    db: DatabaseSession,
    doctor_name: str = Query(..., min_length=1),
    appointment_date: date = Query(..., alias="date"),
    appointment_time: str = Query(..., alias="time", examples=["09:00 AM"]),
    service: AvailabilityService = Depends(get_availability_service),
) -> SlotCheckResponse:
    """Whether a slot can be booked right now, with the reason when it cannot."""
    try:
        slot = normalize_time(appointment_time)
    except ValueError as e:
        return SlotCheckResponse(available=False, reason=str(e))

    problem = await service.slot_problem(db, doctor_name, appointment_date, slot)
    return SlotCheckResponse(available=problem is None, reason=problem)
