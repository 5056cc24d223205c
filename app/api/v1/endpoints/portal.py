"""Patient portal appointment endpoints."""

from fastapi import APIRouter, BackgroundTasks, Depends, status

from app.dependencies import CacheManagerDep, CurrentPatientUser, DatabaseSession, SessionFactory
from app.schemas.appointments import (
    AppointmentResponse,
    BookingStatusResponse,
    CancellationRequestCreate,
    PatientRescheduleRequest,
    PortalBookingCreate,
    RescheduleDecline,
)
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
    "/appointments",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Patient Portal"],
    summary="Book an appointment",
)
async def book_appointment(
    data: PortalBookingCreate,
    account: CurrentPatientUser,
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    """
    Book an appointment for yourself or a dependent.

    Args:
        data: Booking data
        account: Authenticated portal account
        service: Appointment service

    Returns:
        Created appointment with status scheduled

    Raises:
        ActiveBookingExistsException: If an upcoming booking already exists
        AppointmentLockedException: If booking is locked for no-shows
        SlotUnavailableException: If the slot is taken or outside doctor hours
    """
    return await service.book_appointment(data, account)


@router.get(
    "/appointments",
    response_model=list[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    tags=["Patient Portal"],
    summary="My appointments",
)
async def my_appointments(
    account: CurrentPatientUser,
    service: AppointmentService = Depends(get_appointment_service),
) -> list[AppointmentResponse]:
    """Appointments booked under the authenticated account, newest first."""
    return await service.list_for_account(account)


@router.get(
    "/booking-status",
    response_model=BookingStatusResponse,
    status_code=status.HTTP_200_OK,
    tags=["Patient Portal"],
    summary="Booking eligibility",
)
async def booking_status(
    account: CurrentPatientUser,
    service: AppointmentService = Depends(get_appointment_service),
) -> BookingStatusResponse:
    """Lock state, no-show count and any outstanding booking."""
    return await service.get_booking_status(account)


@router.post(
    "/appointments/{appointment_id}/cancellation-request",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Patient Portal"],
    summary="Request cancellation",
)
async def request_cancellation(
    appointment_id: str,
    data: CancellationRequestCreate,
    account: CurrentPatientUser,
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    """
    Ask the clinic to cancel an appointment.

    Args:
        appointment_id: Appointment ID
        data: Reason for cancelling
        account: Authenticated portal account
        service: Appointment service

    Returns:
        Appointment with status cancellation_pending

    Raises:
        CutoffExceededException: If the appointment starts within the cutoff window
        InvalidTransitionException: If a request is already pending
    """
    return await service.request_cancellation(appointment_id, data, account)


@router.post(
    "/appointments/{appointment_id}/reschedule-request",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Patient Portal"],
    summary="Request reschedule",
)
async def request_reschedule(
    appointment_id: str,
    data: PatientRescheduleRequest,
    account: CurrentPatientUser,
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    """
    Ask the clinic to move an appointment to another slot.

    Raises:
        CutoffExceededException: If the appointment starts within the cutoff window
        SlotUnavailableException: If the requested slot is taken
    """
    return await service.request_reschedule(appointment_id, data, account)


@router.post(
    "/appointments/{appointment_id}/reschedule/accept",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Patient Portal"],
    summary="Accept proposed time",
)
async def accept_reschedule(
    appointment_id: str,
    account: CurrentPatientUser,
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    """Accept the clinic's proposed slot; the appointment is confirmed there."""
    return await service.accept_reschedule(appointment_id, account)


@router.post(
    "/appointments/{appointment_id}/reschedule/reject",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Patient Portal"],
    summary="Decline proposed time",
)
async def decline_reschedule(
    appointment_id: str,
    account: CurrentPatientUser,
    data: RescheduleDecline | None = None,
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentResponse:
    """Decline the clinic's proposed slot; the appointment keeps its original slot."""
    return await service.decline_reschedule(appointment_id, data or RescheduleDecline(), account)
