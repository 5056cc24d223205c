"""Authentication schemas."""

from datetime import date
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.schemas.enums import StaffRole


class Token(BaseModel):
    """JWT token response schema."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenRefresh(BaseModel):
    """Token refresh request schema."""

    refresh_token: str


class StaffLoginRequest(BaseModel):
    """Staff login with username or email."""

    username: str = Field(..., min_length=1, description="Username or email")
    password: str = Field(..., min_length=1)


class StaffCreate(BaseModel):
    """Admin-created staff account."""

    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: str = Field(..., min_length=1, max_length=200)
    role: StaffRole = StaffRole.STAFF


class StaffResponse(BaseModel):
    """Staff account response schema."""

    id: str
    username: str
    email: EmailStr
    full_name: str
    role: StaffRole
    is_active: bool = True


class StaffLoginResponse(Token):
    """Login response with tokens and staff info."""

    user: StaffResponse


class PatientRegister(BaseModel):
    """Portal account registration."""

    email: EmailStr
    password: str = Field(..., min_length=6)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: str | None = Field(None, max_length=20)
    date_of_birth: date | None = None
    gender: Literal["male", "female", "other"] | None = None
    consent: bool

    @field_validator("consent")
    @classmethod
    def require_consent(cls, v: bool) -> bool:
        """Registration requires data privacy consent."""
        if not v:
            raise ValueError("Consent to the data privacy notice is required")
        return v


class PatientLoginRequest(BaseModel):
    """Portal login."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class PatientUserResponse(BaseModel):
    """Portal account profile."""

    id: str
    email: EmailStr
    first_name: str
    last_name: str
    phone: str | None = None
    date_of_birth: date | None = None
    gender: str | None = None
    is_active: bool = True


class PatientLoginResponse(Token):
    """Login response with tokens and portal profile."""

    user: PatientUserResponse


class StaffProfileUpdate(BaseModel):
    """Self-service staff profile changes; role and email stay admin-managed."""

    username: str | None = Field(None, min_length=3, max_length=50)
    full_name: str | None = Field(None, min_length=1, max_length=200)


class PatientProfileUpdate(BaseModel):
    """Portal profile changes."""

    email: EmailStr | None = None
    first_name: str | None = Field(None, min_length=1, max_length=100)
    last_name: str | None = Field(None, min_length=1, max_length=100)
    phone: str | None = Field(None, max_length=20)
    date_of_birth: date | None = None
    gender: Literal["male", "female", "other"] | None = None


class PasswordChange(BaseModel):
    """Password change for the signed-in account."""

    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)
