"""Staff authentication endpoints."""

from fastapi import APIRouter, status

from app.core.security import PrincipalKind
from app.dependencies import AdminUser, CurrentStaff, DatabaseSession, RateLimiterDep
from app.schemas.auth import (
    PasswordChange,
    StaffCreate,
    StaffLoginRequest,
    StaffLoginResponse,
    StaffProfileUpdate,
    StaffResponse,
    Token,
    TokenRefresh,
)
from app.services.auth_service import AuthService

router = APIRouter()


def _staff_response(staff: dict) -> StaffResponse:
    return StaffResponse(
        id=str(staff["id"]),
        username=staff["username"],
        email=staff["email"],
        full_name=staff["full_name"],
        role=staff["role"],
        is_active=staff["is_active"],
    )


@router.post(
    "/login",
    response_model=StaffLoginResponse,
    status_code=status.HTTP_200_OK,
    tags=["Authentication"],
    summary="Staff login",
)
async def login(
    request: StaffLoginRequest,
    db: DatabaseSession,
    rate_limiter: RateLimiterDep,
) -> StaffLoginResponse:
    """
    Log in with username or email and password.

    Args:
        request: Credentials
        db: Database session
        rate_limiter: Login attempt limiter

    Returns:
        Access token, refresh token, and staff information

    Raises:
        UnauthorizedException: If the credentials are wrong
        RateLimitException: If too many attempts were made
    """
    auth_service = AuthService(rate_limiter)
    staff, tokens = await auth_service.authenticate_staff(db, request.username, request.password)

    return StaffLoginResponse(**tokens.model_dump(), user=_staff_response(staff))


@router.post(
    "/refresh",
    response_model=Token,
    status_code=status.HTTP_200_OK,
    tags=["Authentication"],
    summary="Refresh access token",
)
async def refresh_token(request: TokenRefresh) -> Token:
    """
    Refresh access token using refresh token.

    Args:
        request: Refresh token

    Returns:
        New access token and refresh token

    Raises:
        UnauthorizedException: If refresh token is invalid
    """
    return AuthService().refresh_access_token(request.refresh_token, PrincipalKind.STAFF)


@router.get(
    "/me",
    response_model=StaffResponse,
    status_code=status.HTTP_200_OK,
    tags=["Authentication"],
    summary="Current staff account",
)
async def me(staff: CurrentStaff) -> StaffResponse:
    """Return the authenticated staff account."""
    return _staff_response(staff)


@router.post(
    "/staff",
    response_model=StaffResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Authentication"],
    summary="Create staff account",
)
async def create_staff(
    data: StaffCreate,
    admin: AdminUser,
    db: DatabaseSession,
) -> StaffResponse:
    """
    Create a staff account. Admin only.

    Args:
        data: Account details
        admin: Authenticated admin
        db: Database session

    Returns:
        Created account

    Raises:
        ConflictException: If the username or email is taken
    """
    staff = await AuthService.create_staff(db, data)
    return _staff_response(staff)


@router.patch(
    "/me",
    response_model=StaffResponse,
    status_code=status.HTTP_200_OK,
    tags=["Authentication"],
    summary="Update own profile",
)
async def update_me(
    data: StaffProfileUpdate,
    staff: CurrentStaff,
    db: DatabaseSession,
) -> StaffResponse:
    """
    Change the signed-in account's username or display name.

    Raises:
        ConflictException: If the username is taken
    """
    updated = await AuthService.update_staff_profile(db, staff["id"], data)
    return _staff_response(updated)


@router.put(
    "/change-password",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Authentication"],
    summary="Change password",
)
async def change_password(
    data: PasswordChange,
    staff: CurrentStaff,
    db: DatabaseSession,
) -> None:
    """
    Change the signed-in account's password.

    Raises:
        BadRequestException: If the current password is wrong
    """
    await AuthService.change_password(db, PrincipalKind.STAFF, staff, data)


@router.get(
    "/staff",
    response_model=list[StaffResponse],
    status_code=status.HTTP_200_OK,
    tags=["Authentication"],
    summary="List staff accounts",
)
async def list_staff(admin: AdminUser, db: DatabaseSession) -> list[StaffResponse]:
    """Active staff accounts. Admin only."""
    return [_staff_response(staff) for staff in await AuthService.list_staff(db)]
