"""Security utilities for JWT and password handling."""

from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.config import settings

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class PrincipalKind(str, Enum):
    """Who a token was issued to."""

    STAFF = "staff"
    PATIENT = "patient"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password."""
    return pwd_context.hash(password)


def _encode(claims: dict[str, Any], token_type: str, expires_delta: timedelta) -> str:
    now = datetime.now(UTC)
    to_encode = claims.copy()
    to_encode.update({"exp": now + expires_delta, "iat": now, "type": token_type})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(
    subject: str,
    kind: PrincipalKind,
    role: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        subject: Account ID the token is issued for
        kind: Staff or patient principal
        role: Staff role, omitted for patients
        expires_delta: Optional expiration time delta

    Returns:
        Encoded JWT token
    """
    claims: dict[str, Any] = {"sub": subject, "kind": kind.value}
    if role:
        claims["role"] = role

    return _encode(
        claims,
        "access",
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes),
    )


def create_refresh_token(
    subject: str,
    kind: PrincipalKind,
    role: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a JWT refresh token.

    Args:
        subject: Account ID the token is issued for
        kind: Staff or patient principal
        role: Staff role, omitted for patients
        expires_delta: Optional expiration time delta

    Returns:
        Encoded JWT refresh token
    """
    claims: dict[str, Any] = {"sub": subject, "kind": kind.value}
    if role:
        claims["role"] = role

    return _encode(
        claims,
        "refresh",
        expires_delta or timedelta(days=settings.refresh_token_expire_days),
    )


def _decode(token: str, expected_type: str) -> dict[str, Any] | None:
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None

    # Verify token type
    if payload.get("type") != expected_type:
        return None

    return payload


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Decode and validate a JWT access token, None if invalid."""
    return _decode(token, "access")


def decode_refresh_token(token: str) -> dict[str, Any] | None:
    """Decode and validate a JWT refresh token, None if invalid."""
    return _decode(token, "refresh")
