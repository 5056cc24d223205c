"""FastAPI dependencies."""

from typing import Annotated, Any
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.redis_client import CacheManager, RateLimiter, get_redis_client
from app.core.security import PrincipalKind, decode_access_token
from app.database import get_db, get_session_factory
from app.schemas.enums import StaffRole
from app.services.auth_service import AuthService

# Security
security = HTTPBearer()

DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


def get_cache_manager() -> CacheManager | None:
    """Redis-backed cache shared by the services."""
    return CacheManager(get_redis_client())


def get_rate_limiter() -> RateLimiter | None:
    """Redis-backed login rate limiter."""
    return RateLimiter(get_redis_client())


CacheManagerDep = Annotated[CacheManager | None, Depends(get_cache_manager)]
RateLimiterDep = Annotated[RateLimiter | None, Depends(get_rate_limiter)]


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_token_claims(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> dict[str, Any]:
    """
    Decode and validate the bearer access token.

    Args:
        credentials: Bearer token credentials

    Returns:
        Token claims with the subject parsed to a UUID

    Raises:
        HTTPException: If token is invalid or expired
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _credentials_error()

    subject = payload.get("sub")
    if subject is None or not isinstance(subject, str):
        raise _credentials_error()

    try:
        payload["sub"] = UUID(subject)
    except ValueError:
        raise _credentials_error("Invalid user ID format")

    return payload


TokenClaims = Annotated[dict[str, Any], Depends(get_token_claims)]


async def get_current_staff(claims: TokenClaims, db: DatabaseSession) -> dict[str, Any]:
    """
    Get the authenticated staff account.

    Raises:
        HTTPException: If the token is not a staff token, or the account is missing or inactive
    """
    if claims.get("kind") != PrincipalKind.STAFF.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff access required",
        )

    staff = await AuthService.get_staff_by_id(db, claims["sub"])
    if not staff:
        raise _credentials_error("User not found")

    if not staff["is_active"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    return staff


async def require_admin(staff: Annotated[dict, Depends(get_current_staff)]) -> dict[str, Any]:
    """Require the admin role."""
    if staff["role"] != StaffRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return staff


async def get_current_patient_user(claims: TokenClaims, db: DatabaseSession) -> dict[str, Any]:
    """
    Get the authenticated portal account.

    Raises:
        HTTPException: If the token is not a patient token, or the account is missing or inactive
    """
    if claims.get("kind") != PrincipalKind.PATIENT.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Patient portal access required",
        )

    account = await AuthService.get_patient_user_by_id(db, claims["sub"])
    if not account:
        raise _credentials_error("User not found")

    if not account["is_active"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    return account


# Type aliases for dependency injection
CurrentStaff = Annotated[dict, Depends(get_current_staff)]
AdminUser = Annotated[dict, Depends(require_admin)]
CurrentPatientUser = Annotated[dict, Depends(get_current_patient_user)]
