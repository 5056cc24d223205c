"""Staff appointment endpoints."""

from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from app.dependencies import CacheManagerDep, CurrentStaff, DatabaseSession, SessionFactory
from app.schemas.appointments import (
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatusUpdate,
    DailyScheduleResponse,
    ReviewDecision,
    StaffReschedule,
)
from app.schemas.enums import AppointmentStatus, DoctorType
from app.services.appointment_service import AppointmentService
from app.services.notification_service import NotificationDispatcher

router = APIRouter()


def get_appointment_service(
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
    session_factory: SessionFactory,
    background_tasks: BackgroundTasks,
) -> AppointmentService:
    """Get appointment service instance; notifications go out after the response."""
    return AppointmentService(
        db, cache_manager, notifier=NotificationDispatcher(session_factory, background_tasks)
    )


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Create new appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    staff: CurrentStaff,
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    """
    Create an appointment for an existing patient record.

    Args:
        data: Appointment creation data
        staff: Authenticated staff account
        service: Appointment service

    Returns:
        Created appointment with status scheduled

    Raises:
        AppointmentLockedException: If the patient is locked for no-shows
        SlotUnavailableException: If the slot is taken or outside doctor hours
    """
    return await service.create_appointment(data, staff)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    staff: CurrentStaff,
    service: AppointmentService = Depends(get_appointment_service),
    appointment_date: date | None = Query(None, alias="date"),
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    doctor_type: DoctorType | None = Query(None),
    doctor_name: str | None = Query(None),
    patient_id: str | None = Query(None, description="Clinic patient ID, e.g. PED000001"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List appointments with filtering.

    Args:
        staff: Authenticated staff account
        service: Appointment service
        appointment_date: Filter by date
        status_filter: Filter by status
        doctor_type: Filter by specialty
        doctor_name: Filter by doctor
        patient_id: Filter by clinic patient ID
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of appointments
    """
    filters = AppointmentFilters(
        appointment_date=appointment_date,
        status=status_filter,
        doctor_type=doctor_type,
        doctor_name=doctor_name,
        patient_id=patient_id,
        page=page,
        page_size=page_size,
    )
    return await service.list_appointments(filters)


@router.get(
    "/daily",
    response_model=DailyScheduleResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Doctor's day by slot",
)
async def daily_schedule(
    staff: CurrentStaff,
    doctor_name: str = Query(..., min_length=1),
    appointment_date: date = Query(..., alias="date"),
    service: AppointmentService = Depends(get_appointment_service),
) -> DailyScheduleResponse:
    """Appointments for one doctor and date, laid out by slot."""
    return await service.get_daily_schedule(doctor_name, appointment_date)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: str,
    staff: CurrentStaff,
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    """
    Get an appointment by storage UUID or clinic appointment ID.

    Raises:
        NotFoundException: If appointment not found
    """
    return await service.get_appointment(appointment_id)


@router.patch(
    "/{appointment_id}/status",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Change appointment status",
)
async def update_appointment_status(
    appointment_id: str,
    data: AppointmentStatusUpdate,
    staff: CurrentStaff,
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    """
    Confirm, cancel, mark no-show or complete an appointment.

    Args:
        appointment_id: Appointment ID
        data: Target status, reason and staff notes
        staff: Authenticated staff account
        service: Appointment service

    Returns:
        Updated appointment

    Raises:
        InvalidTransitionException: If the change is not allowed from the current status
        SlotUnavailableException: If confirming would double-book the slot
        ConflictException: If the appointment changed concurrently
    """
    return await service.update_status(appointment_id, data, staff)


@router.patch(
    "/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: str,
    data: StaffReschedule,
    staff: CurrentStaff,
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    """
    Move an appointment to a new slot.

    Portal bookings become reschedule_pending until the patient responds.

    Args:
        appointment_id: Appointment ID
        data: New date, time and reason
        staff: Authenticated staff account
        service: Appointment service

    Returns:
        Updated appointment
    """
    return await service.reschedule(appointment_id, data, staff)


@router.patch(
    "/{appointment_id}/approve-cancellation",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Approve cancellation request",
)
async def approve_cancellation(
    appointment_id: str,
    staff: CurrentStaff,
    data: ReviewDecision | None = None,
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    """Approve a patient's cancellation request."""
    return await service.approve_cancellation(appointment_id, data or ReviewDecision(), staff)


@router.patch(
    "/{appointment_id}/reject-cancellation",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Reject cancellation request",
)
async def reject_cancellation(
    appointment_id: str,
    staff: CurrentStaff,
    data: ReviewDecision | None = None,
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    """Reject a patient's cancellation request; the appointment returns to its prior status."""
    return await service.reject_cancellation(appointment_id, data or ReviewDecision(), staff)


@router.patch(
    "/{appointment_id}/approve-reschedule",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Approve reschedule request",
)
async def approve_reschedule(
    appointment_id: str,
    staff: CurrentStaff,
    data: ReviewDecision | None = None,
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    """Approve a patient's reschedule request and confirm the new slot."""
    return await service.approve_reschedule(appointment_id, data or ReviewDecision(), staff)


@router.patch(
    "/{appointment_id}/reject-reschedule",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Reject reschedule request",
)
async def reject_reschedule(
    appointment_id: str,
    staff: CurrentStaff,
    data: ReviewDecision | None = None,
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    """Reject a patient's reschedule request; the appointment keeps its original slot."""
    return await service.reject_reschedule(appointment_id, data or ReviewDecision(), staff)
