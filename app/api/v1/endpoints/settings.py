"""Clinic settings endpoints."""

from fastapi import APIRouter, status

from app.dependencies import AdminUser, CacheManagerDep, CurrentStaff, DatabaseSession
from app.schemas.settings import ClinicSettingsResponse, ClinicSettingsUpdate
from app.services.schedule_service import ClinicScheduleProvider

router = APIRouter()


@router.get(
    "/clinic",
    response_model=ClinicSettingsResponse,
    status_code=status.HTTP_200_OK,
    tags=["Settings"],
    summary="Clinic settings",
)
async def get_clinic_settings(
    staff: CurrentStaff,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
) -> ClinicSettingsResponse:
    """Clinic name, doctor names and weekly hours."""
    document = await ClinicScheduleProvider(cache_manager).get_settings(db)
    return ClinicSettingsResponse.model_validate(document)


@router.put(
    "/clinic",
    response_model=ClinicSettingsResponse,
    status_code=status.HTTP_200_OK,
    tags=["Settings"],
    summary="Update clinic settings",
)
async def update_clinic_settings(
    data: ClinicSettingsUpdate,
    admin: AdminUser,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
) -> ClinicSettingsResponse:
    """
    Update the clinic name, doctor names or weekly hours. Admin only.

    Existing appointments keep their slots; new bookings follow the new hours.

    Args:
        data: Fields to change
        admin: Authenticated admin
        db: Database session
        cache_manager: Cache invalidated after the write

    Returns:
        Updated settings
    """
    provider = ClinicScheduleProvider(cache_manager)
    return await provider.update_settings(
        db, data, admin.get("full_name") or admin["username"]
    )
