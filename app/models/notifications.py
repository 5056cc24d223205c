"""In-app notification feed for patient portal accounts."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    Uuid,
)

from app.models.base import metadata, utcnow

notifications = Table(
    "notifications",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "patient_user_id",
        Uuid,
        ForeignKey("patient_users.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("notification_type", String(50), nullable=False),
    Column("title", Text, nullable=False),
    Column("message", Text, nullable=False),
    Column("data", JSON, nullable=True),
    Column("appointment_id", String(20), nullable=True),
    Column("is_read", Boolean, nullable=False, default=False),
    Column("read_at", DateTime(timezone=True), nullable=True),
    Column("push_sent", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Index("idx_notifications_user_read", "patient_user_id", "is_read"),
    Index("idx_notifications_created_at", "created_at"),
)
