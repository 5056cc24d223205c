"""Patient portal account endpoints."""

from fastapi import APIRouter, status

from app.core.security import PrincipalKind
from app.dependencies import CurrentPatientUser, DatabaseSession, RateLimiterDep
from app.schemas.auth import (
    PasswordChange,
    PatientLoginRequest,
    PatientLoginResponse,
    PatientProfileUpdate,
    PatientRegister,
    PatientUserResponse,
    Token,
    TokenRefresh,
)
from app.services.auth_service import AuthService

router = APIRouter()


def _profile(account: dict) -> PatientUserResponse:
    return PatientUserResponse(
        id=str(account["id"]),
        email=account["email"],
        first_name=account["first_name"],
        last_name=account["last_name"],
        phone=account["phone"],
        date_of_birth=account["date_of_birth"],
        gender=account["gender"],
        is_active=account["is_active"],
    )


@router.post(
    "/register",
    response_model=PatientLoginResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Patient Portal"],
    summary="Register portal account",
)
async def register(data: PatientRegister, db: DatabaseSession) -> PatientLoginResponse:
    """
    Create a portal account and log it in.

    Args:
        data: Registration details, consent required
        db: Database session

    Returns:
        Tokens and the new profile

    Raises:
        ConflictException: If the email is already registered
    """
    account = await AuthService.register_patient(db, data)
    tokens = AuthService().create_tokens(str(account["id"]), PrincipalKind.PATIENT)
    return PatientLoginResponse(**tokens.model_dump(), user=_profile(account))


@router.post(
    "/login",
    response_model=PatientLoginResponse,
    status_code=status.HTTP_200_OK,
    tags=["Patient Portal"],
    summary="Portal login",
)
async def login(
    request: PatientLoginRequest,
    db: DatabaseSession,
    rate_limiter: RateLimiterDep,
) -> PatientLoginResponse:
    """
    Log in with email and password.

    Raises:
        UnauthorizedException: If the credentials are wrong
        RateLimitException: If too many attempts were made
    """
    account, tokens = await AuthService(rate_limiter).authenticate_patient(
        db, request.email, request.password
    )
    return PatientLoginResponse(**tokens.model_dump(), user=_profile(account))


@router.post(
    "/refresh",
    response_model=Token,
    status_code=status.HTTP_200_OK,
    tags=["Patient Portal"],
    summary="Refresh portal token",
)
async def refresh_token(request: TokenRefresh) -> Token:
    """Exchange a portal refresh token for a new pair."""
    return AuthService().refresh_access_token(request.refresh_token, PrincipalKind.PATIENT)


@router.get(
    "/profile",
    response_model=PatientUserResponse,
    status_code=status.HTTP_200_OK,
    tags=["Patient Portal"],
    summary="Portal profile",
)
async def profile(account: CurrentPatientUser) -> PatientUserResponse:
    """Return the authenticated portal account."""
    return _profile(account)


@router.put(
    "/profile",
    response_model=PatientUserResponse,
    status_code=status.HTTP_200_OK,
    tags=["Patient Portal"],
    summary="Update portal profile",
)
async def update_profile(
    data: PatientProfileUpdate,
    account: CurrentPatientUser,
    db: DatabaseSession,
) -> PatientUserResponse:
    """
    Update contact details of the portal account.

    Raises:
        ConflictException: If the new email belongs to another account
    """
    updated = await AuthService.update_patient_profile(db, account["id"], data)
    return _profile(updated)


@router.put(
    "/change-password",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Patient Portal"],
    summary="Change portal password",
)
async def change_password(
    data: PasswordChange,
    account: CurrentPatientUser,
    db: DatabaseSession,
) -> None:
    """
    Change the portal account's password.

    Raises:
        BadRequestException: If the current password is wrong
    """
    await AuthService.change_password(db, PrincipalKind.PATIENT, account, data)
