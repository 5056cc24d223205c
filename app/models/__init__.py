"""Database models."""

from app.models.appointments import appointments
from app.models.base import metadata
from app.models.clinic_settings import clinic_settings
from app.models.notifications import notifications
from app.models.patients import patients
from app.models.push_tokens import push_tokens
from app.models.users import patient_users, staff_users

__all__ = [
    "appointments",
    "clinic_settings",
    "metadata",
    "notifications",
    "patient_users",
    "patients",
    "push_tokens",
    "staff_users",
]
