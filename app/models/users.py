"""Staff and patient portal account tables."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    String,
    Table,
    Text,
    Uuid,
)

from app.models.base import metadata, utcnow

staff_users = Table(
    "staff_users",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("username", String(50), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("full_name", Text, nullable=False),
    Column("role", String(20), nullable=False, default="staff"),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("last_login_at", DateTime(timezone=True)),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
    CheckConstraint(
        "role IN ('admin', 'staff', 'doctor')",
        name="staff_users_role_check",
    ),
)

patient_users = Table(
    "patient_users",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("first_name", Text, nullable=False),
    Column("last_name", Text, nullable=False),
    Column("phone", String(20)),
    Column("date_of_birth", Date),
    Column("gender", String(20)),
    Column("consent_given_at", DateTime(timezone=True)),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("last_login_at", DateTime(timezone=True)),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
)
