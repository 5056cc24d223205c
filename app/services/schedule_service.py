"""Clinic schedule provider backed by the clinic settings document."""

from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import BadRequestException
from app.core.redis_client import CacheManager
from app.models.clinic_settings import clinic_settings
from app.schemas.enums import SERVICES_BY_DOCTOR_TYPE, DoctorType
from app.schemas.settings import ClinicSettingsResponse, ClinicSettingsUpdate

logger = structlog.get_logger(__name__)

SETTINGS_ROW_ID = 1


def _closed() -> dict[str, Any]:
    return {"start": "08:00", "end": "17:00", "enabled": False}


def _week(**open_days: tuple[str, str]) -> dict[str, dict[str, Any]]:
    hours = {
        day: _closed()
        for day in ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
    }
    for day, (start, end) in open_days.items():
        hours[day] = {"start": start, "end": end, "enabled": True}
    return hours


DEFAULT_CLINIC_SETTINGS: dict[str, Any] = {
    "clinic_name": "VM Mother and Child Clinic",
    "obgyne_doctor": {
        "name": "Dr. Maria Sarah L. Manaloto",
        "hours": _week(
            monday=("08:00", "12:00"),
            wednesday=("09:00", "14:00"),
            friday=("13:00", "17:00"),
        ),
    },
    "pediatrician": {
        "name": "Dr. Shara Laine S. Vino",
        "hours": _week(
            monday=("13:00", "17:00"),
            tuesday=("13:00", "17:00"),
            thursday=("08:00", "12:00"),
        ),
    },
    "updated_by": None,
    "updated_at": None,
}

# Settings document key -> specialty
DOCTOR_KEYS = {"obgyne_doctor": DoctorType.OB_GYNE, "pediatrician": DoctorType.PEDIATRIC}


class ClinicScheduleProvider:
    """Single source of truth for doctor names and weekly hours."""

    SETTINGS_CACHE_KEY = "clinic:settings"

    def __init__(self, cache_manager: CacheManager | None = None):
        """Initialize provider with optional cache manager."""
        self.cache = cache_manager

    async def get_settings(self, db: AsyncSession) -> dict[str, Any]:
        """Clinic settings document, falling back to defaults when never saved."""
        if self.cache:
            cached = self.cache.get_json(self.SETTINGS_CACHE_KEY)
            if cached:
                return cached

        result = await db.execute(
            select(clinic_settings).where(clinic_settings.c.id == SETTINGS_ROW_ID)
        )
        row = result.mappings().first()
        document = dict(row) if row else dict(DEFAULT_CLINIC_SETTINGS)
        document.pop("id", None)

        if self.cache:
            self.cache.set_json(
                self.SETTINGS_CACHE_KEY, document, ttl=settings.schedule_cache_ttl
            )

        return document

    async def update_settings(
        self,
        db: AsyncSession,
        data: ClinicSettingsUpdate,
        updated_by: str,
    ) -> ClinicSettingsResponse:
        """
        Update the clinic settings document.

        Args:
            db: Database session
            data: Fields to change
            updated_by: Name of the admin making the change

        Returns:
            Updated settings document
        """
        current = await self.get_settings(db)
        values: dict[str, Any] = {
            "clinic_name": current["clinic_name"],
            "obgyne_doctor": current["obgyne_doctor"],
            "pediatrician": current["pediatrician"],
        }
        # Only top-level fields are partial; a doctor's schedule is stored whole
        if data.clinic_name is not None:
            values["clinic_name"] = data.clinic_name
        for key in DOCTOR_KEYS:
            schedule = getattr(data, key)
            if schedule is not None:
                values[key] = schedule.model_dump(mode="json")
        values["updated_by"] = updated_by
        values["updated_at"] = datetime.now(UTC)

        exists = await db.execute(
            select(clinic_settings.c.id).where(clinic_settings.c.id == SETTINGS_ROW_ID)
        )
        if exists.scalar() is None:
            stmt = insert(clinic_settings).values(id=SETTINGS_ROW_ID, **values)
        else:
            stmt = (
                update(clinic_settings)
                .where(clinic_settings.c.id == SETTINGS_ROW_ID)
                .values(**values)
            )
        await db.execute(stmt)
        await db.commit()

        if self.cache:
            self.cache.delete(self.SETTINGS_CACHE_KEY)

        logger.info("clinic_settings_updated", updated_by=updated_by)
        return ClinicSettingsResponse.model_validate(values)

    async def get_doctors(self, db: AsyncSession) -> list[dict[str, Any]]:
        """Both doctors with specialty, hours and offered services."""
        document = await self.get_settings(db)
        doctors = []
        for key, doctor_type in DOCTOR_KEYS.items():
            doctor = document[key]
            doctors.append(
                {
                    "name": doctor["name"],
                    "doctor_type": doctor_type,
                    "hours": doctor["hours"],
                    "services": sorted(SERVICES_BY_DOCTOR_TYPE[doctor_type], key=lambda s: s.value),
                }
            )
        return doctors

    async def find_doctor(self, db: AsyncSession, doctor_name: str) -> dict[str, Any] | None:
        """Look up a doctor by name, ignoring case and surrounding spaces."""
        wanted = doctor_name.strip().lower()
        for doctor in await self.get_doctors(db):
            if doctor["name"].strip().lower() == wanted:
                return doctor
        return None

    async def get_weekly_hours(self, db: AsyncSession, doctor_name: str) -> dict[str, Any]:
        """
        Weekly hours for a doctor.

        Raises:
            BadRequestException: If the doctor is unknown
        """
        doctor = await self.find_doctor(db, doctor_name)
        if doctor is None:
            raise BadRequestException(f"Unknown doctor: {doctor_name}")
        return doctor["hours"]

    async def resolve_doctor(
        self,
        db: AsyncSession,
        doctor_type: DoctorType,
        doctor_name: str | None = None,
    ) -> dict[str, Any]:
        """
        Doctor for a booking; the specialty's doctor when no name is given.

        Raises:
            BadRequestException: If the name is unknown or belongs to another specialty
        """
        if doctor_name is None:
            for doctor in await self.get_doctors(db):
                if doctor["doctor_type"] == doctor_type:
                    return doctor

        doctor = await self.find_doctor(db, doctor_name or "")
        if doctor is None:
            raise BadRequestException(f"Unknown doctor: {doctor_name}")
        if doctor["doctor_type"] != doctor_type:
            raise BadRequestException(
                f"{doctor['name']} does not handle {doctor_type.value} appointments"
            )
        return doctor
