"""Slot conflict checking and availability."""

from datetime import date, datetime, timedelta
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import SlotUnavailableException
from app.core.timeslots import appointment_start, parse_time_12h, slots_for_day
from app.models.appointments import appointments
from app.schemas.enums import AppointmentStatus
from app.services.lifecycle import TIER_STATUSES, ConflictTier
from app.services.schedule_service import ClinicScheduleProvider


def clinic_timezone() -> ZoneInfo:
    """Configured clinic timezone."""
    return ZoneInfo(settings.clinic_timezone)


def clinic_now() -> datetime:
    """Current time in the clinic timezone."""
    return datetime.now(clinic_timezone())


def _occupying(doctor_name: str, day: date, tier: ConflictTier):
    statuses = [status.value for status in TIER_STATUSES[tier]]
    # A pending reschedule also holds its second slot
    return and_(
        appointments.c.doctor_name == doctor_name,
        or_(
            and_(
                appointments.c.appointment_date == day,
                appointments.c.status.in_(statuses),
            ),
            and_(
                appointments.c.hold_date == day,
                appointments.c.status == AppointmentStatus.RESCHEDULE_PENDING.value,
            ),
        ),
    )


class AvailabilityService:
    """Checks slots against doctor hours and existing bookings."""

    def __init__(self, schedule: ClinicScheduleProvider):
        """Initialize with the schedule provider."""
        self.schedule = schedule

    async def _canonical_name(self, db: AsyncSession, doctor_name: str) -> str:
        doctor = await self.schedule.find_doctor(db, doctor_name)
        return doctor["name"] if doctor else doctor_name

    async def get_taken_slots(
        self,
        db: AsyncSession,
        doctor_name: str,
        day: date,
        tier: ConflictTier = ConflictTier.HELD,
        exclude_id: UUID | None = None,
    ) -> set[str]:
        """Slot labels occupied on a date under the given tier."""
        stmt = select(
            appointments.c.id,
            appointments.c.appointment_date,
            appointments.c.appointment_time,
            appointments.c.status,
            appointments.c.hold_date,
            appointments.c.hold_time,
        ).where(_occupying(doctor_name, day, tier))
        if exclude_id is not None:
            stmt = stmt.where(appointments.c.id != exclude_id)

        result = await db.execute(stmt)
        tier_statuses = {status.value for status in TIER_STATUSES[tier]}

        taken: set[str] = set()
        for row in result.mappings():
            if row["appointment_date"] == day and row["status"] in tier_statuses:
                taken.add(row["appointment_time"])
            if row["hold_date"] == day and row["hold_time"]:
                taken.add(row["hold_time"])
        return taken

    async def is_slot_available(
        self,
        db: AsyncSession,
        doctor_name: str,
        day: date,
        slot: str,
        exclude_id: UUID | None = None,
        tier: ConflictTier = ConflictTier.HELD,
    ) -> bool:
        """True when no other booking occupies the slot under the given tier."""
        taken = await self.get_taken_slots(db, doctor_name, day, tier, exclude_id)
        return slot not in taken

    async def slot_problem(
        self,
        db: AsyncSession,
        doctor_name: str,
        day: date,
        slot: str,
        tier: ConflictTier = ConflictTier.HELD,
        exclude_id: UUID | None = None,
        check_hours: bool = True,
        now: datetime | None = None,
    ) -> str | None:
        """
        Reason a slot cannot be used, or None when it can.

        Args:
            db: Database session
            doctor_name: Doctor to book
            day: Appointment date
            slot: 12-hour slot label
            tier: Which bookings count as occupying
            exclude_id: Appointment being moved, ignored in the check
            check_hours: Also require a future slot within the doctor's hours
            now: Current time, defaults to the clinic clock

        Returns:
            Human-readable reason or None
        """
        doctor_name = await self._canonical_name(db, doctor_name)
        if check_hours:
            now = now or clinic_now()
            if appointment_start(day, slot, clinic_timezone()) <= now:
                return "Cannot book an appointment in the past"

            hours = await self.schedule.get_weekly_hours(db, doctor_name)
            offered = slots_for_day(hours, day, settings.slot_duration_minutes)
            if not offered:
                return f"{doctor_name} is not available on {day.strftime('%A')}s"
            if slot not in offered:
                return f"{slot} is outside {doctor_name}'s hours on {day.strftime('%A')}"

        if not await self.is_slot_available(db, doctor_name, day, slot, exclude_id, tier):
            return "This time slot is already booked. Please choose another time."

        return None

    async def ensure_slot_available(
        self,
        db: AsyncSession,
        doctor_name: str,
        day: date,
        slot: str,
        tier: ConflictTier = ConflictTier.HELD,
        exclude_id: UUID | None = None,
        check_hours: bool = True,
        now: datetime | None = None,
    ) -> None:
        """
        Raise when a slot cannot be used.

        Raises:
            SlotUnavailableException: With the reason from slot_problem
        """
        problem = await self.slot_problem(
            db, doctor_name, day, slot, tier, exclude_id, check_hours, now
        )
        if problem:
            raise SlotUnavailableException(problem)

    async def get_day_slots(
        self,
        db: AsyncSession,
        doctor_name: str,
        day: date,
    ) -> tuple[bool, list[str], list[str]]:
        """Whether the doctor works that day, then available and taken slot labels."""
        doctor_name = await self._canonical_name(db, doctor_name)
        hours = await self.schedule.get_weekly_hours(db, doctor_name)
        offered = slots_for_day(hours, day, settings.slot_duration_minutes)
        if not offered:
            return False, [], []

        taken = await self.get_taken_slots(db, doctor_name, day)
        now = clinic_now()
        tz = clinic_timezone()

        available = []
        unavailable = []
        for slot in offered:
            if slot in taken or appointment_start(day, slot, tz) <= now:
                unavailable.append(slot)
            else:
                available.append(slot)
        return True, available, sorted(unavailable, key=parse_time_12h)

    async def get_available_dates(
        self,
        db: AsyncSession,
        doctor_name: str,
        start: date | None = None,
        horizon_days: int | None = None,
    ) -> list[date]:
        """Working dates from tomorrow through the booking horizon."""
        hours = await self.schedule.get_weekly_hours(db, doctor_name)
        first = start or clinic_now().date() + timedelta(days=1)
        horizon = horizon_days or settings.booking_horizon_days

        dates = []
        for offset in range(horizon):
            day = first + timedelta(days=offset)
            if slots_for_day(hours, day, settings.slot_duration_minutes):
                dates.append(day)
        return dates
