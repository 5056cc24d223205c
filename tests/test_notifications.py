"""Tests for notification delivery and the portal notification endpoints."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID, uuid4

import pytest
from fastapi import BackgroundTasks
from httpx import AsyncClient
from sqlalchemy import insert, select

from app.config import settings
from app.models.notifications import notifications
from app.models.push_tokens import push_tokens
from app.services.lifecycle import NotificationEvent
from app.services.notification_service import NotificationDispatcher, NotificationService

EVENT = NotificationEvent(
    event_type="appointment_confirmed",
    title="Appointment confirmed",
    message="Your appointment APT20261102001 has been confirmed.",
    payload={"appointment_id": "APT20261102001", "no_show_count": 0},
)


@pytest.mark.asyncio
async def test_register_fcm_token(
    client: AsyncClient, patient_headers: dict, patient_account: dict, db_session
) -> None:
    """Test registering FCM token."""
    token_data = {"fcm_token": "test_fcm_token_123456", "platform": "android"}

    response = await client.post(
        "/api/v1/portal/notifications/register-token", json=token_data, headers=patient_headers
    )

    assert response.status_code == 201
    first = response.json()
    assert first["platform"] == "android"
    assert first["is_active"] is True

    # Registering the same token again updates it in place
    response = await client.post(
        "/api/v1/portal/notifications/register-token",
        json={**token_data, "platform": "web"},
        headers=patient_headers,
    )
    assert response.status_code == 201
    assert response.json()["id"] == first["id"]
    assert response.json()["platform"] == "web"

    rows = (await db_session.execute(select(push_tokens))).mappings().all()
    assert len(rows) == 1
    assert rows[0]["patient_user_id"] == patient_account["id"]


@pytest.mark.asyncio
async def test_register_token_invalid_platform(client: AsyncClient, patient_headers: dict) -> None:
    response = await client.post(
        "/api/v1/portal/notifications/register-token",
        json={"fcm_token": "token", "platform": "blackberry"},
        headers=patient_headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_emit_stores_notification(db_session, patient_account: dict) -> None:
    await NotificationService.emit(db_session, patient_account["id"], EVENT)

    feed = await NotificationService.list_notifications(db_session, patient_account["id"])
    assert feed.total == 1
    assert feed.unread == 1
    item = feed.items[0]
    assert item.notification_type == "appointment_confirmed"
    assert item.appointment_id == "APT20261102001"
    assert item.data == {"appointment_id": "APT20261102001", "no_show_count": 0}


@pytest.mark.asyncio
async def test_emit_never_raises() -> None:
    """Delivery failures are logged and do not reach the caller."""
    db = AsyncMock()
    db.execute.side_effect = RuntimeError("database unavailable")

    await NotificationService.emit(db, uuid4(), EVENT)

    db.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_emit_pushes_to_registered_devices(db_session, patient_account: dict) -> None:
    await db_session.execute(
        insert(push_tokens).values(
            patient_user_id=patient_account["id"], fcm_token="device-1", platform="android"
        )
    )
    await db_session.commit()

    response = MagicMock(success_count=1, failure_count=0)
    with (
        patch.object(settings, "push_notifications_enabled", True),
        patch("app.services.notification_service.is_firebase_initialized", return_value=True),
        patch(
            "app.services.notification_service.messaging.send_each_for_multicast",
            return_value=response,
        ) as send,
    ):
        await NotificationService.emit(db_session, patient_account["id"], EVENT)

    send.assert_called_once()
    message = send.call_args.args[0]
    assert message.tokens == ["device-1"]
    assert message.data["type"] == "appointment_confirmed"
    assert message.data["no_show_count"] == "0"

    row = (await db_session.execute(select(notifications))).mappings().one()
    assert row["push_sent"] is True


@pytest.mark.asyncio
async def test_emit_skips_push_when_disabled(db_session, patient_account: dict) -> None:
    with patch(
        "app.services.notification_service.messaging.send_each_for_multicast"
    ) as send:
        await NotificationService.emit(db_session, patient_account["id"], EVENT)

    send.assert_not_called()
    row = (await db_session.execute(select(notifications))).mappings().one()
    assert row["push_sent"] is False


@pytest.mark.asyncio
async def test_send_push_without_tokens() -> None:
    assert await NotificationService.send_push_notification([], "title", "body") == (0, 0)


@pytest.mark.asyncio
async def test_cannot_read_other_accounts_notification(
    client: AsyncClient, patient_headers: dict, db_session
) -> None:
    other = await client.post(
        "/api/v1/portal/auth/register",
        json={
            "email": "other@example.com",
            "password": "portal-pass",
            "first_name": "Other",
            "last_name": "Person",
            "consent": True,
        },
    )
    other_id = other.json()["user"]["id"]
    await NotificationService.emit(db_session, UUID(other_id), EVENT)
    notification_id = (await db_session.execute(select(notifications.c.id))).scalar()

    response = await client.patch(
        f"/api/v1/portal/notifications/{notification_id}/read", headers=patient_headers
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_feed_requires_patient_token(client: AsyncClient, staff_headers: dict) -> None:
    response = await client.get("/api/v1/portal/notifications/", headers=staff_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_dispatcher_defers_delivery(db_session, patient_account: dict) -> None:
    """Events are queued on the background tasks and stored only when those run."""

    @asynccontextmanager
    async def session_factory():
        yield db_session

    tasks = BackgroundTasks()
    NotificationDispatcher(session_factory, tasks).dispatch(patient_account["id"], EVENT)

    assert len(tasks.tasks) == 1
    assert (await db_session.execute(select(notifications))).first() is None

    await tasks()

    feed = await NotificationService.list_notifications(db_session, patient_account["id"])
    assert feed.total == 1
    assert feed.items[0].notification_type == "appointment_confirmed"


@pytest.mark.asyncio
async def test_transition_responds_and_notifies(
    client: AsyncClient,
    patient_headers: dict,
    staff_headers: dict,
    sample_booking: dict,
) -> None:
    """A transition returns its result and the queued notification reaches the feed."""
    booked = await client.post(
        "/api/v1/portal/appointments", json=sample_booking, headers=patient_headers
    )
    apt = booked.json()["appointment_id"]

    response = await client.patch(
        f"/api/v1/appointments/{apt}/status", json={"status": "confirmed"}, headers=staff_headers
    )

    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"

    stored = await client.get(f"/api/v1/appointments/{apt}", headers=staff_headers)
    assert stored.json()["status"] == "confirmed"

    feed = await client.get("/api/v1/portal/notifications/", headers=patient_headers)
    types = [item["notification_type"] for item in feed.json()["items"]]
    assert "appointment_confirmed" in types
