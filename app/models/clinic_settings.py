"""Clinic settings document: doctor names and weekly hours."""

from sqlalchemy import JSON, Column, DateTime, Integer, Table, Text

from app.models.base import metadata, utcnow

clinic_settings = Table(
    "clinic_settings",
    metadata,
    # Single row, id = 1
    Column("id", Integer, primary_key=True),
    Column("clinic_name", Text, nullable=False),
    Column("obgyne_doctor", JSON, nullable=False),
    Column("pediatrician", JSON, nullable=False),
    Column("updated_by", Text, nullable=True),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
)
