"""API v1 router configuration."""

from fastapi import APIRouter

from app.api.v1.endpoints import (
    appointments,
    auth,
    availability,
    health,
    notifications,
    patient_auth,
    patients,
    portal,
    reports,
    settings,
)

api_router = APIRouter()

# Staff
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(patients.router, prefix="/patients", tags=["Patients"])
api_router.include_router(appointments.router, prefix="/appointments", tags=["Appointments"])
api_router.include_router(settings.router, prefix="/settings", tags=["Settings"])
api_router.include_router(reports.router, prefix="/reports", tags=["Reports"])

# Public
api_router.include_router(availability.router, prefix="/availability", tags=["Availability"])

# Patient portal
api_router.include_router(patient_auth.router, prefix="/portal/auth", tags=["Patient Portal"])
api_router.include_router(portal.router, prefix="/portal", tags=["Patient Portal"])
api_router.include_router(notifications.router, prefix="/portal", tags=["Notifications"])
