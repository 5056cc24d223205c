"""Appointment service for business logic."""

from dataclasses import replace
from datetime import UTC, date, datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    ActiveBookingExistsException,
    AppointmentLockedException,
    ConflictException,
    NotFoundException,
    SlotUnavailableException,
)
from app.core.redis_client import CacheManager
from app.core.timeslots import add_minutes, parse_time_12h, slots_for_day
from app.models.appointments import appointments
from app.models.patients import patients
from app.schemas.appointments import (
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatusUpdate,
    BookingStatusResponse,
    CancellationRequestCreate,
    DailyScheduleResponse,
    DailySlot,
    PatientRescheduleRequest,
    PortalBookingCreate,
    RescheduleDecline,
    ReviewDecision,
    StaffReschedule,
)
from app.schemas.approvals import (
    PendingApproval,
    RescheduledFrom,
    dump_approval,
    load_approval,
)
from app.schemas.enums import (
    ACTIVE_BOOKING_STATUSES,
    AppointmentStatus,
    BookingSource,
    PatientType,
)
from app.schemas.patients import PatientCreate
from app.services import lifecycle
from app.services.availability_service import AvailabilityService, clinic_now, clinic_timezone
from app.services.lifecycle import AppointmentState, Transition, TransitionContext
from app.services.notification_service import NotificationDispatcher, NotificationService
from app.services.patient_service import PatientService
from app.services.schedule_service import ClinicScheduleProvider

logger = structlog.get_logger(__name__)

STATUS_EVENTS = {
    "confirmed": lambda data: lifecycle.Confirm(),
    "cancelled": lambda data: lifecycle.Cancel(reason=data.reason),
    "no-show": lambda data: lifecycle.MarkNoShow(),
    "completed": lambda data: lifecycle.Complete(),
}

# Timestamp column stamped when an appointment enters a status
STATUS_TIMESTAMPS = {
    AppointmentStatus.CONFIRMED: "confirmed_at",
    AppointmentStatus.CANCELLED: "cancelled_at",
    AppointmentStatus.COMPLETED: "completed_at",
    AppointmentStatus.NO_SHOW: "no_show_at",
}


def staff_actor(staff: dict[str, Any]) -> str:
    """Display name recorded for staff actions."""
    return staff.get("full_name") or staff["username"]


def patient_actor(account: dict[str, Any]) -> str:
    """Display name recorded for portal actions."""
    return account["email"]


class AppointmentService:
    """Service for managing appointments."""

    def __init__(
        self,
        db: AsyncSession,
        cache_manager: CacheManager | None = None,
        notifier: NotificationDispatcher | None = None,
    ):
        """Initialize service with database session, optional cache and notifier."""
        self.db = db
        self.notifier = notifier
        self.schedule = ClinicScheduleProvider(cache_manager)
        self.availability = AvailabilityService(self.schedule)
        self.patients = PatientService(db)

    # Reads

    async def _get_row(self, reference: str | UUID) -> dict[str, Any]:
        """Appointment by storage UUID or clinic ID (APT...)."""
        try:
            condition = appointments.c.id == (
                reference if isinstance(reference, UUID) else UUID(reference)
            )
        except ValueError:
            condition = appointments.c.appointment_id == reference

        result = await self.db.execute(select(appointments).where(condition))
        row = result.mappings().first()
        if row is None:
            raise NotFoundException("Appointment not found")
        return dict(row)

    async def _get_owned_row(self, reference: str, account: dict[str, Any]) -> dict[str, Any]:
        row = await self._get_row(reference)
        if row["patient_user_id"] != account["id"]:
            raise NotFoundException("Appointment not found")
        return row

    async def get_appointment(self, reference: str) -> AppointmentResponse:
        """
        Get appointment by ID.

        Args:
            reference: Storage UUID or clinic appointment ID

        Returns:
            Appointment details

        Raises:
            NotFoundException: If appointment not found
        """
        return AppointmentResponse.model_validate(await self._get_row(reference))

    async def list_appointments(self, filters: AppointmentFilters) -> AppointmentListResponse:
        """
        List appointments with filtering and pagination.

        Args:
            filters: Filter and pagination parameters

        Returns:
            Paginated list of appointments
        """
        conditions = []
        if filters.appointment_date:
            conditions.append(appointments.c.appointment_date == filters.appointment_date)
        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)
        if filters.doctor_type:
            conditions.append(appointments.c.doctor_type == filters.doctor_type.value)
        if filters.doctor_name:
            conditions.append(
                func.lower(appointments.c.doctor_name) == filters.doctor_name.strip().lower()
            )
        if filters.patient_id:
            conditions.append(
                appointments.c.patient_id.in_(
                    select(patients.c.id).where(patients.c.patient_id == filters.patient_id)
                )
            )

        count_stmt = select(func.count()).select_from(appointments).where(*conditions)
        total = (await self.db.execute(count_stmt)).scalar() or 0

        stmt = (
            select(appointments)
            .where(*conditions)
            .order_by(appointments.c.appointment_date.desc(), appointments.c.created_at.desc())
            .limit(filters.page_size)
            .offset((filters.page - 1) * filters.page_size)
        )
        result = await self.db.execute(stmt)
        items = [AppointmentResponse.model_validate(dict(row)) for row in result.mappings()]

        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=items,
        )

    async def list_for_account(self, account: dict[str, Any]) -> list[AppointmentResponse]:
        """All appointments booked under a portal account, newest first."""
        result = await self.db.execute(
            select(appointments)
            .where(appointments.c.patient_user_id == account["id"])
            .order_by(appointments.c.appointment_date.desc(), appointments.c.created_at.desc())
        )
        return [AppointmentResponse.model_validate(dict(row)) for row in result.mappings()]

    async def get_daily_schedule(self, doctor_name: str, day: date) -> DailyScheduleResponse:
        """
        A doctor's appointments for one date, grouped into the day's slots.

        Args:
            doctor_name: Doctor name from the clinic settings
            day: Date to show

        Returns:
            Slots with their appointments, plus any outside the current hours
        """
        doctor = await self.schedule.find_doctor(self.db, doctor_name)
        name = doctor["name"] if doctor else doctor_name
        offered = (
            slots_for_day(doctor["hours"], day, settings.slot_duration_minutes) if doctor else []
        )

        result = await self.db.execute(
            select(appointments).where(
                appointments.c.doctor_name == name,
                appointments.c.appointment_date == day,
            )
        )
        by_slot: dict[str, list[AppointmentResponse]] = {slot: [] for slot in offered}
        unslotted = []
        for row in result.mappings():
            item = AppointmentResponse.model_validate(dict(row))
            if item.appointment_time in by_slot:
                by_slot[item.appointment_time].append(item)
            else:
                unslotted.append(item)

        return DailyScheduleResponse(
            doctor_name=name,
            appointment_date=day,
            working=bool(offered),
            slots=[DailySlot(time=slot, appointments=by_slot[slot]) for slot in offered],
            unslotted=sorted(unslotted, key=lambda a: parse_time_12h(a.appointment_time)),
        )

    async def _active_booking(self, account_id: UUID, today: date) -> dict[str, Any] | None:
        result = await self.db.execute(
            select(appointments)
            .where(
                appointments.c.patient_user_id == account_id,
                appointments.c.status.in_([s.value for s in ACTIVE_BOOKING_STATUSES]),
                appointments.c.appointment_date >= today,
            )
            .order_by(appointments.c.appointment_date)
            .limit(1)
        )
        row = result.mappings().first()
        return dict(row) if row else None

    async def get_booking_status(self, account: dict[str, Any]) -> BookingStatusResponse:
        """Lock state, strike count and outstanding booking of a portal account."""
        patient = await self.patients.find_for_account(account["id"], account["email"])
        active = await self._active_booking(account["id"], clinic_now().date())
        return BookingStatusResponse(
            appointment_locked=bool(patient and patient["appointment_locked"]),
            no_show_count=patient["no_show_count"] if patient else 0,
            has_active_booking=active is not None,
            active_appointment_id=active["appointment_id"] if active else None,
        )

    # Creation

    async def _next_appointment_id(self, day: date) -> str:
        prefix = f"APT{day:%Y%m%d}"
        result = await self.db.execute(
            select(func.max(appointments.c.appointment_id)).where(
                appointments.c.appointment_id.like(f"{prefix}%")
            )
        )
        last = result.scalar()
        sequence = int(last[len(prefix) :]) + 1 if last else 1
        return f"{prefix}{sequence:03d}"

    async def _insert(self, values: dict[str, Any]) -> dict[str, Any]:
        today = clinic_now().date()
        for _ in range(3):
            values["appointment_id"] = await self._next_appointment_id(today)
            try:
                result = await self.db.execute(
                    insert(appointments).values(**values).returning(appointments)
                )
                row = result.mappings().first()
                await self.db.commit()
            except IntegrityError:
                # Another booking took the same sequence number
                await self.db.rollback()
                continue
            return dict(row)

        raise ConflictException("Could not allocate an appointment ID, please retry")

    @staticmethod
    def _ensure_not_locked(patient: dict[str, Any] | None) -> None:
        if patient and patient["appointment_locked"]:
            raise AppointmentLockedException(no_show_count=patient["no_show_count"])

    async def create_appointment(
        self,
        data: AppointmentCreate,
        staff: dict[str, Any],
    ) -> AppointmentResponse:
        """
        Create a staff-entered appointment for an existing patient.

        Args:
            data: Appointment creation data
            staff: Authenticated staff account

        Returns:
            Created appointment, status scheduled

        Raises:
            NotFoundException: If the patient does not exist
            AppointmentLockedException: If the patient is locked for no-shows
            SlotUnavailableException: If the slot is taken or outside doctor hours
        """
        patient = await self.patients.get_patient(data.patient_id)
        self._ensure_not_locked(patient)

        doctor = await self.schedule.resolve_doctor(self.db, data.doctor_type, data.doctor_name)
        await self.availability.ensure_slot_available(
            self.db, doctor["name"], data.appointment_date, data.appointment_time
        )

        row = await self._insert(
            {
                "patient_id": patient["id"],
                "patient_user_id": patient["patient_user_id"],
                "created_by": staff["id"],
                "patient_name": patient["full_name"],
                "contact_number": patient["contact_number"],
                "email": patient["email"],
                "doctor_type": data.doctor_type.value,
                "doctor_name": doctor["name"],
                "appointment_date": data.appointment_date,
                "appointment_time": data.appointment_time,
                "end_time": add_minutes(data.appointment_time, settings.slot_duration_minutes),
                "service_type": data.service_type.value,
                "reason": data.reason,
                "notes": data.notes,
                "booking_source": BookingSource.STAFF.value,
                "status": AppointmentStatus.SCHEDULED.value,
            }
        )
        logger.info(
            "appointment_created",
            appointment_id=row["appointment_id"],
            booking_source=row["booking_source"],
            doctor_name=row["doctor_name"],
            created_by=staff_actor(staff),
        )
        await self._notify_created(row)
        return AppointmentResponse.model_validate(row)

    async def book_appointment(
        self,
        data: PortalBookingCreate,
        account: dict[str, Any],
    ) -> AppointmentResponse:
        """
        Book an appointment from the patient portal.

        The linked patient record is reused, else one matching the account email,
        else a new record is created on first booking.

        Args:
            data: Booking data
            account: Authenticated portal account

        Returns:
            Created appointment, status scheduled

        Raises:
            ActiveBookingExistsException: If the account already holds a future booking
            AppointmentLockedException: If the patient is locked for no-shows
            SlotUnavailableException: If the slot is taken or outside doctor hours
        """
        existing = await self._active_booking(account["id"], clinic_now().date())
        if existing:
            raise ActiveBookingExistsException(
                f"You already have an upcoming appointment ({existing['appointment_id']}). "
                "Please wait until it is completed or cancelled before booking another."
            )

        patient = await self.patients.find_for_account(account["id"], account["email"])
        self._ensure_not_locked(patient)

        doctor = await self.schedule.resolve_doctor(self.db, data.doctor_type, data.doctor_name)
        await self.availability.ensure_slot_available(
            self.db, doctor["name"], data.appointment_date, data.appointment_time
        )

        account_name = f"{account['first_name']} {account['last_name']}"
        patient_name = data.patient_name if data.booked_for == "dependent" else account_name
        contact = data.contact_number or account.get("phone")
        dependent = data.dependent_info()

        if patient is None:
            patient = await self.patients.create_patient(
                PatientCreate(
                    patient_type=PatientType(data.doctor_type.value),
                    full_name=patient_name or account_name,
                    contact_number=contact,
                    email=account["email"],
                ),
                patient_user_id=account["id"],
            )
        elif patient["patient_user_id"] is None:
            await self.patients.link_account(patient["id"], account["id"])

        row = await self._insert(
            {
                "patient_id": patient["id"],
                "patient_user_id": account["id"],
                "patient_name": patient_name or account_name,
                "contact_number": contact,
                "email": account["email"],
                "doctor_type": data.doctor_type.value,
                "doctor_name": doctor["name"],
                "appointment_date": data.appointment_date,
                "appointment_time": data.appointment_time,
                "end_time": add_minutes(data.appointment_time, settings.slot_duration_minutes),
                "service_type": data.service_type.value,
                "reason": data.reason,
                "booking_source": BookingSource.PATIENT_PORTAL.value,
                "booked_for": data.booked_for,
                "dependent_info": dependent.model_dump(mode="json") if dependent else None,
                "status": AppointmentStatus.SCHEDULED.value,
            }
        )
        logger.info(
            "appointment_created",
            appointment_id=row["appointment_id"],
            booking_source=row["booking_source"],
            doctor_name=row["doctor_name"],
        )
        await self._notify_created(row)
        return AppointmentResponse.model_validate(row)

    async def _emit(self, patient_user_id: UUID, event: lifecycle.NotificationEvent) -> None:
        """Hand an event to the notifier, or deliver it inline when there is none."""
        if self.notifier is not None:
            self.notifier.dispatch(patient_user_id, event)
        else:
            await NotificationService.emit(self.db, patient_user_id, event)

    async def _notify_created(self, row: dict[str, Any]) -> None:
        if row["patient_user_id"] is None:
            return
        await self._emit(
            row["patient_user_id"],
            lifecycle.NotificationEvent(
                event_type="appointment_scheduled",
                title="Appointment booked",
                message=(
                    f"Your appointment {row['appointment_id']} with {row['doctor_name']} on "
                    f"{row['appointment_date'].isoformat()} at {row['appointment_time']} "
                    "is scheduled and awaiting confirmation."
                ),
                payload={
                    "appointment_id": row["appointment_id"],
                    "patient_name": row["patient_name"],
                    "doctor_name": row["doctor_name"],
                    "appointment_date": row["appointment_date"].isoformat(),
                    "appointment_time": row["appointment_time"],
                    "status": row["status"],
                },
            ),
        )

    # Transitions

    @staticmethod
    def _to_state(row: dict[str, Any]) -> AppointmentState:
        return AppointmentState(
            appointment_id=row["appointment_id"],
            status=AppointmentStatus(row["status"]),
            booking_source=BookingSource(row["booking_source"]),
            has_portal_account=row["patient_user_id"] is not None,
            patient_name=row["patient_name"],
            doctor_name=row["doctor_name"],
            appointment_date=row["appointment_date"],
            appointment_time=row["appointment_time"],
            confirmed_by=row["confirmed_by"],
            cancellation_reason=row["cancellation_reason"],
            cancellation_request=load_approval(row["cancellation_request"]),
            reschedule_request=load_approval(row["reschedule_request"]),
            rescheduled_from=(
                RescheduledFrom.model_validate(row["rescheduled_from"])
                if row["rescheduled_from"]
                else None
            ),
        )

    @staticmethod
    def _state_values(result: Transition, now: datetime) -> dict[str, Any]:
        after = result.after
        values: dict[str, Any] = {
            "status": after.status.value,
            "appointment_date": after.appointment_date,
            "appointment_time": after.appointment_time,
            "end_time": add_minutes(after.appointment_time, settings.slot_duration_minutes),
            "confirmed_by": after.confirmed_by,
            "cancellation_reason": after.cancellation_reason,
            "cancellation_request": dump_approval(after.cancellation_request),
            "reschedule_request": dump_approval(after.reschedule_request),
            "rescheduled_from": (
                after.rescheduled_from.model_dump(mode="json") if after.rescheduled_from else None
            ),
            "hold_date": None,
            "hold_time": None,
            "updated_at": now,
        }

        # While a reschedule is pending the other slot stays reserved as well
        request = after.reschedule_request
        if after.status == AppointmentStatus.RESCHEDULE_PENDING and isinstance(
            request, PendingApproval
        ):
            other = (
                request.original_slot if request.initiated_by == "staff" else request.proposed_slot
            )
            if other is not None and other != after.slot:
                values["hold_date"] = other.appointment_date
                values["hold_time"] = other.appointment_time

        stamp = STATUS_TIMESTAMPS.get(after.status)
        if stamp and after.status != result.before.status:
            values[stamp] = now

        return values

    async def _apply(
        self,
        row: dict[str, Any],
        event: lifecycle.Event,
        actor: str,
    ) -> AppointmentResponse:
        """Run an event through the lifecycle and persist the outcome atomically."""
        now = datetime.now(UTC)
        context = TransitionContext(
            actor=actor,
            now=now,
            timezone=clinic_timezone(),
            cutoff=timedelta(hours=settings.cancellation_cutoff_hours),
        )
        result = lifecycle.transition(self._to_state(row), event, context)

        if not result.changed:
            return AppointmentResponse.model_validate(row)

        if result.slot_check is not None:
            check = result.slot_check
            await self.availability.ensure_slot_available(
                self.db,
                row["doctor_name"],
                check.slot.appointment_date,
                check.slot.appointment_time,
                tier=check.tier,
                exclude_id=row["id"],
                check_hours=check.check_hours,
            )

        notification = result.notification
        try:
            # Compare-and-swap on the row version
            updated_result = await self.db.execute(
                update(appointments)
                .where(
                    appointments.c.id == row["id"],
                    appointments.c.version == row["version"],
                )
                .values(**self._state_values(result, now), version=row["version"] + 1)
                .returning(appointments)
            )
            updated = updated_result.mappings().first()
            if updated is None:
                await self.db.rollback()
                raise ConflictException(
                    "The appointment was changed by someone else. Please reload and try again."
                )
            updated = dict(updated)

            if row["patient_id"] is not None:
                if result.activate_patient:
                    await self.patients.activate(row["patient_id"])
                if result.record_no_show:
                    count, locked = await self.patients.record_no_show(row["patient_id"], now)
                    if notification is not None:
                        notification = replace(
                            notification,
                            payload={
                                **notification.payload,
                                "no_show_count": count,
                                "appointment_locked": locked,
                            },
                        )

            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.warning(
                "slot_conflict",
                appointment_id=row["appointment_id"],
                doctor_name=row["doctor_name"],
                appointment_date=str(result.after.appointment_date),
                appointment_time=result.after.appointment_time,
            )
            raise SlotUnavailableException(
                "This time slot has already been confirmed for another patient"
            )

        logger.info(
            "appointment_transitioned",
            appointment_id=row["appointment_id"],
            transition_event=type(event).__name__,
            from_status=result.before.status.value,
            to_status=result.after.status.value,
            actor=actor,
        )

        if notification is not None and updated["patient_user_id"] is not None:
            await self._emit(updated["patient_user_id"], notification)

        return AppointmentResponse.model_validate(updated)

    # Staff operations

    async def update_status(
        self,
        reference: str,
        data: AppointmentStatusUpdate,
        staff: dict[str, Any],
    ) -> AppointmentResponse:
        """
        Confirm, cancel, mark no-show or complete an appointment.

        Args:
            reference: Appointment ID
            data: Target status and optional reason
            staff: Authenticated staff account

        Returns:
            Updated appointment
        """
        row = await self._get_row(reference)
        response = await self._apply(row, STATUS_EVENTS[data.status](data), staff_actor(staff))

        if data.notes is not None:
            await self.db.execute(
                update(appointments)
                .where(appointments.c.id == row["id"])
                .values(notes=data.notes)
            )
            await self.db.commit()
            response = response.model_copy(update={"notes": data.notes})

        return response

    async def reschedule(
        self,
        reference: str,
        data: StaffReschedule,
        staff: dict[str, Any],
    ) -> AppointmentResponse:
        """
        Move an appointment to a new slot.

        Staff bookings move immediately. Portal bookings wait for the patient.

        Args:
            reference: Appointment ID
            data: New date, time and reason
            staff: Authenticated staff account

        Returns:
            Updated appointment
        """
        row = await self._get_row(reference)
        event = lifecycle.StaffReschedule(
            new_date=data.new_date, new_time=data.new_time, reason=data.reason
        )
        return await self._apply(row, event, staff_actor(staff))

    async def approve_cancellation(
        self, reference: str, data: ReviewDecision, staff: dict[str, Any]
    ) -> AppointmentResponse:
        """Approve a patient's pending cancellation request."""
        row = await self._get_row(reference)
        return await self._apply(
            row, lifecycle.ApproveCancellation(admin_notes=data.admin_notes), staff_actor(staff)
        )

    async def reject_cancellation(
        self, reference: str, data: ReviewDecision, staff: dict[str, Any]
    ) -> AppointmentResponse:
        """Reject a patient's pending cancellation request."""
        row = await self._get_row(reference)
        return await self._apply(
            row, lifecycle.RejectCancellation(admin_notes=data.admin_notes), staff_actor(staff)
        )

    async def approve_reschedule(
        self, reference: str, data: ReviewDecision, staff: dict[str, Any]
    ) -> AppointmentResponse:
        """Approve a patient's pending reschedule request."""
        row = await self._get_row(reference)
        return await self._apply(
            row, lifecycle.ApproveReschedule(admin_notes=data.admin_notes), staff_actor(staff)
        )

    async def reject_reschedule(
        self, reference: str, data: ReviewDecision, staff: dict[str, Any]
    ) -> AppointmentResponse:
        """Reject a patient's pending reschedule request."""
        row = await self._get_row(reference)
        return await self._apply(
            row, lifecycle.RejectReschedule(admin_notes=data.admin_notes), staff_actor(staff)
        )

    # Portal operations

    async def request_cancellation(
        self, reference: str, data: CancellationRequestCreate, account: dict[str, Any]
    ) -> AppointmentResponse:
        """Ask the clinic to cancel a portal booking."""
        row = await self._get_owned_row(reference, account)
        return await self._apply(
            row, lifecycle.RequestCancellation(reason=data.reason), patient_actor(account)
        )

    async def request_reschedule(
        self, reference: str, data: PatientRescheduleRequest, account: dict[str, Any]
    ) -> AppointmentResponse:
        """Ask the clinic to move a portal booking."""
        row = await self._get_owned_row(reference, account)
        event = lifecycle.RequestReschedule(
            new_date=data.new_date, new_time=data.new_time, reason=data.reason
        )
        return await self._apply(row, event, patient_actor(account))

    async def accept_reschedule(
        self, reference: str, account: dict[str, Any]
    ) -> AppointmentResponse:
        """Accept the slot the clinic proposed."""
        row = await self._get_owned_row(reference, account)
        return await self._apply(row, lifecycle.AcceptReschedule(), patient_actor(account))

    async def decline_reschedule(
        self, reference: str, data: RescheduleDecline, account: dict[str, Any]
    ) -> AppointmentResponse:
        """Decline the slot the clinic proposed and keep the original one."""
        row = await self._get_owned_row(reference, account)
        return await self._apply(
            row, lifecycle.DeclineReschedule(reason=data.reason), patient_actor(account)
        )
