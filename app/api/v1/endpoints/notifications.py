"""Patient portal notification endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import CurrentPatientUser, DatabaseSession
from app.schemas.notifications import (
    NotificationListResponse,
    NotificationResponse,
    PushTokenRegister,
    PushTokenResponse,
)
from app.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get(
    "/",
    response_model=NotificationListResponse,
    status_code=status.HTTP_200_OK,
    summary="Notification feed",
)
async def list_notifications(
    account: CurrentPatientUser,
    db: DatabaseSession,
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> NotificationListResponse:
    """
    Appointment notifications for the authenticated account, newest first.

    Args:
        account: Authenticated portal account
        db: Database session
        unread_only: Only unread notifications
        limit: Page size
        offset: Items to skip

    Returns:
        Feed page with total and unread counts
    """
    return await NotificationService.list_notifications(
        db, account["id"], unread_only=unread_only, limit=limit, offset=offset
    )


@router.patch(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    status_code=status.HTTP_200_OK,
    summary="Mark notification read",
)
async def mark_notification_read(
    notification_id: UUID,
    account: CurrentPatientUser,
    db: DatabaseSession,
) -> NotificationResponse:
    """
    Mark one notification as read.

    Raises:
        NotFoundException: If the notification does not belong to the account
    """
    return await NotificationService.mark_as_read(db, account["id"], notification_id)


@router.post(
    "/register-token",
    response_model=PushTokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register FCM token",
)
async def register_fcm_token(
    token_data: PushTokenRegister,
    account: CurrentPatientUser,
    db: DatabaseSession,
) -> PushTokenResponse:
    """
    Register or update the FCM token of a device.

    This endpoint should be called:
    - After successful login
    - When FCM token is refreshed

    Args:
        token_data: FCM token and platform information
        account: Authenticated portal account
        db: Database session

    Returns:
        Registered token details
    """
    token = await NotificationService.register_token(db, account["id"], token_data)
    return PushTokenResponse.model_validate(token)
