"""Appointments table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    Uuid,
    text,
)

from app.models.base import metadata, utcnow

appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # Clinic-facing identifier, e.g. APT20240610001
    Column("appointment_id", String(20), nullable=False, unique=True),
    # References
    Column(
        "patient_id",
        Uuid,
        ForeignKey("patients.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    ),
    Column(
        "patient_user_id",
        Uuid,
        ForeignKey("patient_users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    ),
    Column("created_by", Uuid, ForeignKey("staff_users.id", ondelete="SET NULL"), nullable=True),
    # Snapshot fields
    Column("patient_name", Text, nullable=False),
    Column("contact_number", String(20), nullable=True),
    Column("email", String(255), nullable=True),
    # Booking details
    Column("doctor_type", String(20), nullable=False),
    Column("doctor_name", Text, nullable=False),
    Column("appointment_date", Date, nullable=False),
    Column("appointment_time", String(8), nullable=False),
    Column("end_time", String(8), nullable=True),
    Column("service_type", String(40), nullable=False),
    Column("reason", Text, nullable=True),
    Column("notes", Text, nullable=True),
    Column("booking_source", String(20), nullable=False, default="staff"),
    Column("booked_for", String(20), nullable=False, default="self"),
    # Name, relationship and birth date when booked for a dependent
    Column("dependent_info", JSON, nullable=True),
    # Status management
    Column("status", String(30), nullable=False, default="scheduled"),
    Column("version", Integer, nullable=False, default=1),
    Column("confirmed_by", Text, nullable=True),
    Column("confirmed_at", DateTime(timezone=True), nullable=True),
    Column("cancellation_reason", Text, nullable=True),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    Column("completed_at", DateTime(timezone=True), nullable=True),
    Column("no_show_at", DateTime(timezone=True), nullable=True),
    # Approval workflow records
    Column("cancellation_request", JSON, nullable=True),
    Column("reschedule_request", JSON, nullable=True),
    Column("rescheduled_from", JSON, nullable=True),
    # Second slot held while a reschedule is pending
    Column("hold_date", Date, nullable=True),
    Column("hold_time", String(8), nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
    CheckConstraint(
        "status IN ('scheduled', 'confirmed', 'completed', 'cancelled', 'no-show', "
        "'rescheduled', 'cancellation_pending', 'reschedule_pending')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "doctor_type IN ('ob-gyne', 'pediatric')",
        name="appointments_doctor_type_check",
    ),
    CheckConstraint(
        "booking_source IN ('staff', 'patient_portal')",
        name="appointments_booking_source_check",
    ),
    Index("idx_appointments_slot", "doctor_name", "appointment_date", "appointment_time"),
    Index("idx_appointments_hold", "doctor_name", "hold_date", "hold_time"),
    Index("idx_appointments_status", "status"),
    # Only one confirmed appointment per doctor slot
    Index(
        "uq_appointments_confirmed_slot",
        "doctor_name",
        "appointment_date",
        "appointment_time",
        unique=True,
        postgresql_where=text("status = 'confirmed'"),
        sqlite_where=text("status = 'confirmed'"),
    ),
)
