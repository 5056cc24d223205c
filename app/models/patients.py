"""Patient record model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    Uuid,
)

from app.models.base import metadata, utcnow

patients = Table(
    "patients",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # Clinic-facing identifier, PED000001 / OBG000001
    Column("patient_id", String(20), nullable=False, unique=True),
    Column("patient_type", String(20), nullable=False),
    Column("full_name", Text, nullable=False),
    Column("contact_number", String(20), nullable=True),
    Column("email", String(255), nullable=True, index=True),
    Column(
        "patient_user_id",
        Uuid,
        ForeignKey("patient_users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    ),
    Column("status", String(20), nullable=False, default="New"),
    # No-show strikes
    Column("no_show_count", Integer, nullable=False, default=0),
    Column("appointment_locked", Boolean, nullable=False, default=False),
    Column("last_no_show_at", DateTime(timezone=True), nullable=True),
    # Chart fields are kept as an opaque document
    Column("medical_record", JSON, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
    CheckConstraint(
        "patient_type IN ('pediatric', 'ob-gyne')",
        name="patients_type_check",
    ),
    CheckConstraint(
        "status IN ('New', 'Active', 'Inactive')",
        name="patients_status_check",
    ),
)
