"""Patient record endpoints."""

from fastapi import APIRouter, Query, status

from app.dependencies import CurrentStaff, DatabaseSession
from app.schemas.enums import PatientStatus, PatientType
from app.schemas.patients import (
    PatientCreate,
    PatientListResponse,
    PatientResponse,
    PatientStatsResponse,
    PatientUpdate,
)
from app.services.patient_service import PatientService

router = APIRouter()


@router.post(
    "/",
    response_model=PatientResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Patients"],
    summary="Create patient record",
)
async def create_patient(
    data: PatientCreate,
    staff: CurrentStaff,
    db: DatabaseSession,
) -> PatientResponse:
    """
    Create a patient record with the next clinic ID (PED000001, OBG000001).

    Args:
        data: Patient details
        staff: Authenticated staff account
        db: Database session

    Returns:
        Created patient record
    """
    patient = await PatientService(db).create_patient(data)
    return PatientResponse.model_validate(patient)


@router.get(
    "/",
    response_model=PatientListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Patients"],
    summary="List patients",
)
async def list_patients(
    staff: CurrentStaff,
    db: DatabaseSession,
    search: str | None = Query(None, description="Name, clinic ID or email"),
    status_filter: PatientStatus | None = Query(None, alias="status"),
    patient_type: PatientType | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> PatientListResponse:
    """Search patient records."""
    return await PatientService(db).list_patients(
        search=search,
        status=status_filter,
        patient_type=patient_type,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/stats/overview",
    response_model=PatientStatsResponse,
    status_code=status.HTTP_200_OK,
    tags=["Patients"],
    summary="Patient statistics",
)
async def patient_stats(staff: CurrentStaff, db: DatabaseSession) -> PatientStatsResponse:
    """Patient counts by type and status, recent registrations and booking locks."""
    return await PatientService(db).get_stats()


@router.get(
    "/{patient_id}",
    response_model=PatientResponse,
    status_code=status.HTTP_200_OK,
    tags=["Patients"],
    summary="Get patient",
)
async def get_patient(
    patient_id: str,
    staff: CurrentStaff,
    db: DatabaseSession,
) -> PatientResponse:
    """
    Get a patient by storage UUID or clinic ID.

    Raises:
        NotFoundException: If the patient does not exist
    """
    patient = await PatientService(db).get_by_reference(patient_id)
    return PatientResponse.model_validate(patient)


@router.patch(
    "/{patient_id}",
    response_model=PatientResponse,
    status_code=status.HTTP_200_OK,
    tags=["Patients"],
    summary="Update patient",
)
async def update_patient(
    patient_id: str,
    data: PatientUpdate,
    staff: CurrentStaff,
    db: DatabaseSession,
) -> PatientResponse:
    """Update contact details, status or medical record."""
    service = PatientService(db)
    patient = await service.get_by_reference(patient_id)
    updated = await service.update_patient(patient["id"], data)
    return PatientResponse.model_validate(updated)


@router.patch(
    "/{patient_id}/unlock-appointments",
    response_model=PatientResponse,
    status_code=status.HTTP_200_OK,
    tags=["Patients"],
    summary="Unlock booking",
)
async def unlock_appointments(
    patient_id: str,
    staff: CurrentStaff,
    db: DatabaseSession,
) -> PatientResponse:
    """
    Restore booking for a patient locked after repeated no-shows.

    Resets the no-show count to zero together with the lock.

    Args:
        patient_id: Storage UUID or clinic ID
        staff: Authenticated staff account
        db: Database session

    Returns:
        Updated patient record
    """
    service = PatientService(db)
    patient = await service.get_by_reference(patient_id)
    unlocked = await service.unlock(patient["id"], staff.get("full_name") or staff["username"])
    return PatientResponse.model_validate(unlocked)
