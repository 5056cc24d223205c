"""Patient record service, including no-show strikes and booking locks."""

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, case, func, insert, or_, select, true, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ConflictException, NotFoundException
from app.models.patients import patients
from app.schemas.enums import PatientStatus, PatientType
from app.schemas.patients import (
    PatientCreate,
    PatientListResponse,
    PatientResponse,
    PatientStatsResponse,
    PatientUpdate,
)

logger = structlog.get_logger(__name__)

PATIENT_ID_PREFIXES = {
    PatientType.PEDIATRIC: "PED",
    PatientType.OB_GYNE: "OBG",
}


class PatientService:
    """Service for patient records."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def find_patient(self, patient_id: UUID) -> dict[str, Any] | None:
        """Patient record by storage ID."""
        result = await self.db.execute(select(patients).where(patients.c.id == patient_id))
        row = result.mappings().first()
        return dict(row) if row else None

    async def get_patient(self, patient_id: UUID) -> dict[str, Any]:
        """
        Patient record by storage ID.

        Raises:
            NotFoundException: If the patient does not exist
        """
        patient = await self.find_patient(patient_id)
        if patient is None:
            raise NotFoundException("Patient not found")
        return patient

    async def get_by_reference(self, reference: str) -> dict[str, Any]:
        """Patient by storage UUID or clinic ID (PED000001)."""
        try:
            return await self.get_patient(UUID(reference))
        except ValueError:
            pass

        result = await self.db.execute(select(patients).where(patients.c.patient_id == reference))
        row = result.mappings().first()
        if row is None:
            raise NotFoundException("Patient not found")
        return dict(row)

    async def find_for_account(self, patient_user_id: UUID, email: str) -> dict[str, Any] | None:
        """Patient record linked to a portal account, else the oldest one matching its email."""
        result = await self.db.execute(
            select(patients)
            .where(
                or_(
                    patients.c.patient_user_id == patient_user_id,
                    func.lower(patients.c.email) == email.lower(),
                )
            )
            .order_by(
                case((patients.c.patient_user_id == patient_user_id, 0), else_=1),
                patients.c.created_at,
            )
            .limit(1)
        )
        row = result.mappings().first()
        return dict(row) if row else None

    async def _next_patient_id(self, patient_type: PatientType) -> str:
        prefix = PATIENT_ID_PREFIXES[patient_type]
        result = await self.db.execute(
            select(func.max(patients.c.patient_id)).where(patients.c.patient_id.like(f"{prefix}%"))
        )
        last = result.scalar()
        sequence = int(last[len(prefix) :]) + 1 if last else 1
        return f"{prefix}{sequence:06d}"

    async def create_patient(
        self,
        data: PatientCreate,
        patient_user_id: UUID | None = None,
    ) -> dict[str, Any]:
        """
        Create a patient record with the next clinic ID for its type.

        Args:
            data: Patient details
            patient_user_id: Portal account to link, if any

        Returns:
            Created patient record

        Raises:
            ConflictException: If a clinic ID could not be allocated
        """
        for _ in range(3):
            values = {
                "patient_id": await self._next_patient_id(data.patient_type),
                "patient_type": data.patient_type.value,
                "full_name": data.full_name,
                "contact_number": data.contact_number,
                "email": data.email,
                "patient_user_id": patient_user_id,
                "status": PatientStatus.NEW.value,
                "medical_record": data.medical_record,
            }
            try:
                result = await self.db.execute(
                    insert(patients).values(**values).returning(patients)
                )
                row = result.mappings().first()
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                continue

            logger.info("patient_created", patient_id=values["patient_id"])
            return dict(row)

        raise ConflictException("Could not allocate a patient ID, please retry")

    async def link_account(self, patient_id: UUID, patient_user_id: UUID) -> None:
        """Attach a portal account to an existing patient record."""
        await self.db.execute(
            update(patients)
            .where(patients.c.id == patient_id, patients.c.patient_user_id.is_(None))
            .values(patient_user_id=patient_user_id)
        )
        await self.db.commit()

    async def list_patients(
        self,
        search: str | None = None,
        status: PatientStatus | None = None,
        patient_type: PatientType | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> PatientListResponse:
        """Search patients by name, clinic ID or email."""
        conditions = []
        if search:
            pattern = f"%{search.lower()}%"
            conditions.append(
                or_(
                    func.lower(patients.c.full_name).like(pattern),
                    func.lower(patients.c.patient_id).like(pattern),
                    func.lower(patients.c.email).like(pattern),
                )
            )
        if status:
            conditions.append(patients.c.status == status.value)
        if patient_type:
            conditions.append(patients.c.patient_type == patient_type.value)

        where = and_(true(), *conditions)
        total = (
            await self.db.execute(select(func.count()).select_from(patients).where(where))
        ).scalar() or 0

        result = await self.db.execute(
            select(patients)
            .where(where)
            .order_by(patients.c.created_at.desc())
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
        items = [PatientResponse.model_validate(dict(row)) for row in result.mappings()]
        return PatientListResponse(total=total, page=page, page_size=page_size, items=items)

    async def _count_by(self, column) -> dict[str, int]:
        result = await self.db.execute(select(column, func.count()).group_by(column))
        return {str(key): int(count) for key, count in result.all()}

    async def get_stats(self, now: datetime | None = None) -> PatientStatsResponse:
        """Record counts by type and status, plus recent and locked totals."""
        now = now or datetime.now(UTC)
        by_type = {patient_type.value: 0 for patient_type in PatientType}
        by_type.update(await self._count_by(patients.c.patient_type))
        by_status = {patient_status.value: 0 for patient_status in PatientStatus}
        by_status.update(await self._count_by(patients.c.status))

        recent = await self.db.execute(
            select(func.count())
            .select_from(patients)
            .where(patients.c.created_at >= now - timedelta(days=30))
        )
        locked = await self.db.execute(
            select(func.count())
            .select_from(patients)
            .where(patients.c.appointment_locked.is_(True))
        )
        return PatientStatsResponse(
            total=sum(by_type.values()),
            by_type=by_type,
            by_status=by_status,
            recent=recent.scalar() or 0,
            locked=locked.scalar() or 0,
        )

    async def update_patient(self, patient_id: UUID, data: PatientUpdate) -> dict[str, Any]:
        """Update contact details, status or chart of a patient."""
        await self.get_patient(patient_id)

        values = data.model_dump(exclude_unset=True, mode="json")
        if not values:
            return await self.get_patient(patient_id)
        values["updated_at"] = datetime.now(UTC)

        result = await self.db.execute(
            update(patients).where(patients.c.id == patient_id).values(**values).returning(patients)
        )
        row = result.mappings().first()
        await self.db.commit()
        return dict(row)

    # Lifecycle side effects. These join the caller's transaction and do not commit.

    async def activate(self, patient_id: UUID) -> bool:
        """Move a New patient to Active; other statuses are left alone."""
        result = await self.db.execute(
            update(patients)
            .where(patients.c.id == patient_id, patients.c.status == PatientStatus.NEW.value)
            .values(status=PatientStatus.ACTIVE.value, updated_at=datetime.now(UTC))
        )
        return result.rowcount > 0

    async def record_no_show(self, patient_id: UUID, now: datetime) -> tuple[int, bool]:
        """
        Add one no-show strike in a single statement.

        The booking lock is set once the count reaches the configured threshold.

        Args:
            patient_id: Patient storage ID
            now: Time of the strike

        Returns:
            New (no_show_count, appointment_locked)
        """
        new_count = patients.c.no_show_count + 1
        result = await self.db.execute(
            update(patients)
            .where(patients.c.id == patient_id)
            .values(
                no_show_count=new_count,
                appointment_locked=or_(
                    patients.c.appointment_locked,
                    new_count >= settings.no_show_lock_threshold,
                ),
                last_no_show_at=now,
                updated_at=now,
            )
            .returning(patients.c.no_show_count, patients.c.appointment_locked)
        )
        row = result.first()
        if row is None:
            return 0, False

        count, locked = int(row[0]), bool(row[1])
        logger.info(
            "no_show_recorded",
            patient_id=str(patient_id),
            no_show_count=count,
            appointment_locked=locked,
        )
        return count, locked

    async def unlock(self, patient_id: UUID, unlocked_by: str) -> dict[str, Any]:
        """
        Restore booking ability, clearing the strike count and the lock together.

        Raises:
            NotFoundException: If the patient does not exist
        """
        result = await self.db.execute(
            update(patients)
            .where(patients.c.id == patient_id)
            .values(no_show_count=0, appointment_locked=False, updated_at=datetime.now(UTC))
            .returning(patients)
        )
        row = result.mappings().first()
        if row is None:
            await self.db.rollback()
            raise NotFoundException("Patient not found")
        await self.db.commit()

        logger.info("patient_unlocked", patient_id=row["patient_id"], unlocked_by=unlocked_by)
        return dict(row)
