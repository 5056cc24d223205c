"""Notification schemas."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field


class PushTokenRegister(BaseModel):
    """Register a device for push delivery."""

    fcm_token: str = Field(..., min_length=1)
    platform: Literal["android", "ios", "web"]


class PushTokenResponse(BaseModel):
    """Registered push token."""

    id: UUID
    platform: str
    is_active: bool
    created_at: datetime


class NotificationResponse(BaseModel):
    """In-app notification."""

    id: UUID
    notification_type: str
    title: str
    message: str
    data: dict[str, Any] | None = None
    appointment_id: str | None = None
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime


class NotificationListResponse(BaseModel):
    """Paginated notification feed."""

    total: int
    unread: int
    items: list[NotificationResponse]
