"""Notification service: in-app feed and FCM push for portal accounts."""

import asyncio
import json
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog
from fastapi import BackgroundTasks
from firebase_admin import messaging
from sqlalchemy import func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.core.exceptions import NotFoundException
from app.core.firebase import is_firebase_initialized
from app.models.notifications import notifications
from app.models.push_tokens import push_tokens
from app.schemas.notifications import (
    NotificationListResponse,
    NotificationResponse,
    PushTokenRegister,
)
from app.services.lifecycle import NotificationEvent

logger = structlog.get_logger(__name__)


def _fcm_data(payload: dict[str, Any]) -> dict[str, str]:
    # FCM data values must be strings
    return {
        key: value if isinstance(value, str) else json.dumps(value, default=str)
        for key, value in payload.items()
    }


class NotificationService:
    """Service for appointment notifications."""

    @staticmethod
    async def send_push_notification(
        tokens: list[str],
        title: str,
        body: str,
        data: dict[str, str] | None = None,
    ) -> tuple[int, int]:
        """
        Send push notification to multiple devices.

        Args:
            tokens: List of FCM tokens
            title: Notification title
            body: Notification body
            data: Optional data payload

        Returns:
            Tuple of (success_count, failure_count)
        """
        if not tokens:
            return 0, 0

        message = messaging.MulticastMessage(
            notification=messaging.Notification(title=title, body=body),
            data=data or {},
            tokens=tokens,
            android=messaging.AndroidConfig(
                priority="high",
                notification=messaging.AndroidNotification(sound="default"),
            ),
            apns=messaging.APNSConfig(
                payload=messaging.APNSPayload(aps=messaging.Aps(sound="default")),
            ),
        )
        # The Admin SDK call is blocking network I/O
        response = await asyncio.to_thread(messaging.send_each_for_multicast, message)

        logger.info(
            "push_notification_sent",
            title=title,
            success_count=response.success_count,
            failure_count=response.failure_count,
        )
        return response.success_count, response.failure_count

    @staticmethod
    async def emit(
        db: AsyncSession,
        patient_user_id: UUID,
        event: NotificationEvent,
    ) -> None:
        """
        Store a notification in the account's feed and push it to its devices.

        Best effort: failures are logged and never reach the caller.

        Args:
            db: Database session
            patient_user_id: Portal account to notify
            event: Event shaped by the lifecycle engine
        """
        try:
            result = await db.execute(
                insert(notifications)
                .values(
                    patient_user_id=patient_user_id,
                    notification_type=event.event_type,
                    title=event.title,
                    message=event.message,
                    data=json.loads(json.dumps(event.payload, default=str)),
                    appointment_id=event.payload.get("appointment_id"),
                )
                .returning(notifications.c.id)
            )
            notification_id = result.scalar()
            await db.commit()

            logger.info(
                "notification_emitted",
                event_type=event.event_type,
                appointment_id=event.payload.get("appointment_id"),
            )

            if not (settings.push_notifications_enabled and is_firebase_initialized()):
                logger.debug("push_notification_skipped", event_type=event.event_type)
                return

            token_rows = await db.execute(
                select(push_tokens.c.fcm_token).where(
                    push_tokens.c.patient_user_id == patient_user_id,
                    push_tokens.c.is_active.is_(True),
                )
            )
            tokens = [row.fcm_token for row in token_rows]
            success_count, _ = await NotificationService.send_push_notification(
                tokens=tokens,
                title=event.title,
                body=event.message,
                data=_fcm_data({"type": event.event_type, **event.payload}),
            )

            if success_count:
                await db.execute(
                    update(notifications)
                    .where(notifications.c.id == notification_id)
                    .values(push_sent=True)
                )
                await db.commit()
        except Exception as e:
            await db.rollback()
            logger.warning(
                "notification_failed",
                event_type=event.event_type,
                appointment_id=event.payload.get("appointment_id"),
                error=str(e),
            )

    @staticmethod
    async def list_notifications(
        db: AsyncSession,
        patient_user_id: UUID,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> NotificationListResponse:
        """
        Notification feed for a portal account, newest first.

        Args:
            db: Database session
            patient_user_id: Portal account ID
            unread_only: Only unread notifications
            limit: Page size
            offset: Items to skip

        Returns:
            Feed page with totals
        """
        owned = notifications.c.patient_user_id == patient_user_id
        conditions = [owned]
        if unread_only:
            conditions.append(notifications.c.is_read.is_(False))

        total = (
            await db.execute(select(func.count()).select_from(notifications).where(*conditions))
        ).scalar() or 0
        unread = (
            await db.execute(
                select(func.count())
                .select_from(notifications)
                .where(owned, notifications.c.is_read.is_(False))
            )
        ).scalar() or 0

        result = await db.execute(
            select(notifications)
            .where(*conditions)
            .order_by(notifications.c.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        items = [NotificationResponse.model_validate(dict(row)) for row in result.mappings()]
        return NotificationListResponse(total=total, unread=unread, items=items)

    @staticmethod
    async def mark_as_read(
        db: AsyncSession,
        patient_user_id: UUID,
        notification_id: UUID,
    ) -> NotificationResponse:
        """
        Mark one of the account's notifications as read.

        Raises:
            NotFoundException: If the notification does not belong to the account
        """
        result = await db.execute(
            update(notifications)
            .where(
                notifications.c.id == notification_id,
                notifications.c.patient_user_id == patient_user_id,
            )
            .values(is_read=True, read_at=datetime.now(UTC))
            .returning(notifications)
        )
        row = result.mappings().first()
        if row is None:
            await db.rollback()
            raise NotFoundException("Notification not found")
        await db.commit()
        return NotificationResponse.model_validate(dict(row))

    @staticmethod
    async def register_token(
        db: AsyncSession,
        patient_user_id: UUID,
        data: PushTokenRegister,
    ) -> dict[str, Any]:
        """
        Register or re-activate a device token for the account.

        A token already registered to another account is moved to this one.

        Args:
            db: Database session
            patient_user_id: Portal account ID
            data: Token and platform

        Returns:
            Stored push token
        """
        now = datetime.now(UTC)
        existing = await db.execute(
            select(push_tokens.c.id).where(push_tokens.c.fcm_token == data.fcm_token)
        )
        token_id = existing.scalar()

        if token_id is None:
            stmt = (
                insert(push_tokens)
                .values(
                    patient_user_id=patient_user_id,
                    fcm_token=data.fcm_token,
                    platform=data.platform,
                    last_used_at=now,
                )
                .returning(push_tokens)
            )
        else:
            stmt = (
                update(push_tokens)
                .where(push_tokens.c.id == token_id)
                .values(
                    patient_user_id=patient_user_id,
                    platform=data.platform,
                    is_active=True,
                    last_used_at=now,
                )
                .returning(push_tokens)
            )

        result = await db.execute(stmt)
        row = result.mappings().first()
        await db.commit()

        logger.info("push_token_registered", patient_user_id=str(patient_user_id))
        return dict(row)


class NotificationDispatcher:
    """Delivers lifecycle notifications as background tasks, after the response is sent."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        background_tasks: BackgroundTasks,
    ):
        self.session_factory = session_factory
        self.background_tasks = background_tasks

    def dispatch(self, patient_user_id: UUID, event: NotificationEvent) -> None:
        self.background_tasks.add_task(self._deliver, patient_user_id, event)

    async def _deliver(self, patient_user_id: UUID, event: NotificationEvent) -> None:
        # The request session is closed by now
        async with self.session_factory() as session:
            await NotificationService.emit(session, patient_user_id, event)
