"""Initial schema - accounts, patients, appointments, clinic settings, notifications.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, postgresql.TIMESTAMP(timezone=True), nullable=True)
    return sa.Column(
        name,
        postgresql.TIMESTAMP(timezone=True),
        server_default=sa.text("NOW()"),
        nullable=False,
    )


def upgrade() -> None:
    """Upgrade database schema."""
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    op.create_table(
        "staff_users",
        _uuid_pk(),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=False),
        sa.Column("role", sa.String(20), server_default="staff", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("last_login_at", nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
        sa.UniqueConstraint("email"),
        sa.CheckConstraint("role IN ('admin', 'staff', 'doctor')", name="staff_users_role_check"),
    )

    op.create_table(
        "patient_users",
        _uuid_pk(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("gender", sa.String(20), nullable=True),
        _timestamp("consent_given_at", nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("last_login_at", nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "patients",
        _uuid_pk(),
        sa.Column("patient_id", sa.String(20), nullable=False),
        sa.Column("patient_type", sa.String(20), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=False),
        sa.Column("contact_number", sa.String(20), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("patient_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(20), server_default="New", nullable=False),
        sa.Column("no_show_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "appointment_locked", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        _timestamp("last_no_show_at", nullable=True),
        sa.Column("medical_record", sa.JSON(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("patient_id"),
        sa.ForeignKeyConstraint(["patient_user_id"], ["patient_users.id"], ondelete="SET NULL"),
        sa.CheckConstraint("patient_type IN ('pediatric', 'ob-gyne')", name="patients_type_check"),
        sa.CheckConstraint(
            "status IN ('New', 'Active', 'Inactive')", name="patients_status_check"
        ),
    )
    op.create_index("ix_patients_email", "patients", ["email"])
    op.create_index("ix_patients_patient_user_id", "patients", ["patient_user_id"])

    op.create_table(
        "appointments",
        _uuid_pk(),
        sa.Column("appointment_id", sa.String(20), nullable=False),
        sa.Column("patient_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("patient_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("patient_name", sa.Text(), nullable=False),
        sa.Column("contact_number", sa.String(20), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("doctor_type", sa.String(20), nullable=False),
        sa.Column("doctor_name", sa.Text(), nullable=False),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("appointment_time", sa.String(8), nullable=False),
        sa.Column("end_time", sa.String(8), nullable=True),
        sa.Column("service_type", sa.String(40), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("booking_source", sa.String(20), server_default="staff", nullable=False),
        sa.Column("booked_for", sa.String(20), server_default="self", nullable=False),
        sa.Column("dependent_info", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(30), server_default="scheduled", nullable=False),
        sa.Column("version", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("confirmed_by", sa.Text(), nullable=True),
        _timestamp("confirmed_at", nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        _timestamp("cancelled_at", nullable=True),
        _timestamp("completed_at", nullable=True),
        _timestamp("no_show_at", nullable=True),
        sa.Column("cancellation_request", sa.JSON(), nullable=True),
        sa.Column("reschedule_request", sa.JSON(), nullable=True),
        sa.Column("rescheduled_from", sa.JSON(), nullable=True),
        sa.Column("hold_date", sa.Date(), nullable=True),
        sa.Column("hold_time", sa.String(8), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("appointment_id"),
        sa.ForeignKeyConstraint(["patient_id"], ["patients.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["patient_user_id"], ["patient_users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by"], ["staff_users.id"], ondelete="SET NULL"),
        sa.CheckConstraint(
            "status IN ('scheduled', 'confirmed', 'completed', 'cancelled', 'no-show', "
            "'rescheduled', 'cancellation_pending', 'reschedule_pending')",
            name="appointments_status_check",
        ),
        sa.CheckConstraint(
            "doctor_type IN ('ob-gyne', 'pediatric')", name="appointments_doctor_type_check"
        ),
        sa.CheckConstraint(
            "booking_source IN ('staff', 'patient_portal')",
            name="appointments_booking_source_check",
        ),
    )
    op.create_index("ix_appointments_patient_id", "appointments", ["patient_id"])
    op.create_index("ix_appointments_patient_user_id", "appointments", ["patient_user_id"])
    op.create_index(
        "idx_appointments_slot",
        "appointments",
        ["doctor_name", "appointment_date", "appointment_time"],
    )
    op.create_index(
        "idx_appointments_hold", "appointments", ["doctor_name", "hold_date", "hold_time"]
    )
    op.create_index("idx_appointments_status", "appointments", ["status"])
    # One confirmed appointment per doctor slot
    op.create_index(
        "uq_appointments_confirmed_slot",
        "appointments",
        ["doctor_name", "appointment_date", "appointment_time"],
        unique=True,
        postgresql_where=sa.text("status = 'confirmed'"),
    )

    op.create_table(
        "clinic_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("clinic_name", sa.Text(), nullable=False),
        sa.Column("obgyne_doctor", sa.JSON(), nullable=False),
        sa.Column("pediatrician", sa.JSON(), nullable=False),
        sa.Column("updated_by", sa.Text(), nullable=True),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "notifications",
        _uuid_pk(),
        sa.Column("patient_user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("notification_type", sa.String(50), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("appointment_id", sa.String(20), nullable=True),
        sa.Column("is_read", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        _timestamp("read_at", nullable=True),
        sa.Column("push_sent", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["patient_user_id"], ["patient_users.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "idx_notifications_user_read", "notifications", ["patient_user_id", "is_read"]
    )
    op.create_index("idx_notifications_created_at", "notifications", ["created_at"])

    op.create_table(
        "push_tokens",
        _uuid_pk(),
        sa.Column("patient_user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("fcm_token", sa.Text(), nullable=False),
        sa.Column("platform", sa.String(10), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("last_used_at", nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("fcm_token"),
        sa.ForeignKeyConstraint(["patient_user_id"], ["patient_users.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "platform IN ('android', 'ios', 'web')", name="push_tokens_platform_check"
        ),
    )
    op.create_index("ix_push_tokens_patient_user_id", "push_tokens", ["patient_user_id"])
    op.create_index("ix_push_tokens_is_active", "push_tokens", ["is_active"])


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("ix_push_tokens_is_active", table_name="push_tokens")
    op.drop_index("ix_push_tokens_patient_user_id", table_name="push_tokens")
    op.drop_table("push_tokens")

    op.drop_index("idx_notifications_created_at", table_name="notifications")
    op.drop_index("idx_notifications_user_read", table_name="notifications")
    op.drop_table("notifications")

    op.drop_table("clinic_settings")

    op.drop_index("uq_appointments_confirmed_slot", table_name="appointments")
    op.drop_index("idx_appointments_status", table_name="appointments")
    op.drop_index("idx_appointments_hold", table_name="appointments")
    op.drop_index("idx_appointments_slot", table_name="appointments")
    op.drop_index("ix_appointments_patient_user_id", table_name="appointments")
    op.drop_index("ix_appointments_patient_id", table_name="appointments")
    op.drop_table("appointments")

    op.drop_index("ix_patients_patient_user_id", table_name="patients")
    op.drop_index("ix_patients_email", table_name="patients")
    op.drop_table("patients")

    op.drop_table("patient_users")
    op.drop_table("staff_users")
