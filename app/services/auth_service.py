"""Authentication service for staff and patient portal accounts."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    BadRequestException,
    ConflictException,
    NotFoundException,
    RateLimitException,
    UnauthorizedException,
)
from app.core.redis_client import RateLimiter
from app.core.security import (
    PrincipalKind,
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    get_password_hash,
    verify_password,
)
from app.models.users import patient_users, staff_users
from app.schemas.auth import (
    PasswordChange,
    PatientProfileUpdate,
    PatientRegister,
    StaffCreate,
    StaffProfileUpdate,
    Token,
)

logger = structlog.get_logger(__name__)


class AuthService:
    """Authentication service for handling logins and JWT operations."""

    def __init__(self, rate_limiter: RateLimiter | None = None):
        """Initialize auth service with optional login rate limiter."""
        self.rate_limiter = rate_limiter

    def create_tokens(self, subject: str, kind: PrincipalKind, role: str | None = None) -> Token:
        """
        Create access and refresh tokens for an account.

        Args:
            subject: Account ID (internal UUID)
            kind: Staff or patient principal
            role: Staff role, omitted for patients

        Returns:
            Token pair (access and refresh)
        """
        return Token(
            access_token=create_access_token(subject, kind, role),
            refresh_token=create_refresh_token(subject, kind, role),
            token_type="bearer",
        )

    def _check_rate_limit(self, key: str) -> None:
        if self.rate_limiter is None:
            return
        if not self.rate_limiter.check_rate_limit(key, settings.login_rate_limit_per_minute):
            logger.warning("login_rate_limited", key=key)
            raise RateLimitException("Too many login attempts. Please try again in a minute.")

    def _clear_rate_limit(self, key: str) -> None:
        if self.rate_limiter is not None:
            self.rate_limiter.reset(key)

    @staticmethod
    async def get_staff_by_id(db: AsyncSession, staff_id: UUID) -> dict[str, Any] | None:
        """Get staff account by ID."""
        result = await db.execute(select(staff_users).where(staff_users.c.id == staff_id))
        row = result.mappings().first()
        return dict(row) if row else None

    @staticmethod
    async def get_patient_user_by_id(db: AsyncSession, user_id: UUID) -> dict[str, Any] | None:
        """Get portal account by ID."""
        result = await db.execute(select(patient_users).where(patient_users.c.id == user_id))
        row = result.mappings().first()
        return dict(row) if row else None

    async def authenticate_staff(
        self, db: AsyncSession, username: str, password: str
    ) -> tuple[dict[str, Any], Token]:
        """
        Log a staff member in by username or email.

        Args:
            db: Database session
            username: Username or email
            password: Plain password

        Returns:
            Tuple of (staff account, token pair)

        Raises:
            RateLimitException: If too many attempts were made for this login
            UnauthorizedException: If the credentials are wrong or the account is inactive
        """
        identifier = username.strip().lower()
        key = f"login:staff:{identifier}"
        self._check_rate_limit(key)

        result = await db.execute(
            select(staff_users).where(
                or_(
                    func.lower(staff_users.c.username) == identifier,
                    func.lower(staff_users.c.email) == identifier,
                )
            )
        )
        staff = result.mappings().first()

        if staff is None or not verify_password(password, staff["password_hash"]):
            logger.info("login_failed", kind=PrincipalKind.STAFF.value, username=identifier)
            raise UnauthorizedException("Invalid username or password")
        if not staff["is_active"]:
            raise UnauthorizedException("Account is deactivated")

        await db.execute(
            update(staff_users)
            .where(staff_users.c.id == staff["id"])
            .values(last_login_at=datetime.now(UTC))
        )
        await db.commit()
        self._clear_rate_limit(key)

        logger.info("login_succeeded", kind=PrincipalKind.STAFF.value, account_id=str(staff["id"]))
        return dict(staff), self.create_tokens(str(staff["id"]), PrincipalKind.STAFF, staff["role"])

    @staticmethod
    async def create_staff(db: AsyncSession, data: StaffCreate) -> dict[str, Any]:
        """
        Create a staff account.

        Raises:
            ConflictException: If the username or email is taken
        """
        try:
            result = await db.execute(
                insert(staff_users)
                .values(
                    username=data.username,
                    email=data.email,
                    password_hash=get_password_hash(data.password),
                    full_name=data.full_name,
                    role=data.role.value,
                )
                .returning(staff_users)
            )
            row = result.mappings().first()
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictException("Username or email already in use")

        logger.info("staff_created", username=data.username, role=data.role.value)
        return dict(row)

    @staticmethod
    async def register_patient(db: AsyncSession, data: PatientRegister) -> dict[str, Any]:
        """
        Create a portal account.

        Raises:
            ConflictException: If the email is already registered
        """
        existing = await db.execute(
            select(patient_users.c.id).where(
                func.lower(patient_users.c.email) == data.email.lower()
            )
        )
        if existing.scalar() is not None:
            raise ConflictException("An account with this email already exists")

        try:
            result = await db.execute(
                insert(patient_users)
                .values(
                    email=data.email.lower(),
                    password_hash=get_password_hash(data.password),
                    first_name=data.first_name,
                    last_name=data.last_name,
                    phone=data.phone,
                    date_of_birth=data.date_of_birth,
                    gender=data.gender,
                    consent_given_at=datetime.now(UTC),
                )
                .returning(patient_users)
            )
            row = result.mappings().first()
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictException("An account with this email already exists")

        logger.info("patient_account_registered", account_id=str(row["id"]))
        return dict(row)

    async def authenticate_patient(
        self, db: AsyncSession, email: str, password: str
    ) -> tuple[dict[str, Any], Token]:
        """
        Log a portal account in.

        Raises:
            RateLimitException: If too many attempts were made for this email
            UnauthorizedException: If the credentials are wrong or the account is inactive
        """
        identifier = email.strip().lower()
        key = f"login:patient:{identifier}"
        self._check_rate_limit(key)

        result = await db.execute(
            select(patient_users).where(func.lower(patient_users.c.email) == identifier)
        )
        account = result.mappings().first()

        if account is None or not verify_password(password, account["password_hash"]):
            logger.info("login_failed", kind=PrincipalKind.PATIENT.value, email=identifier)
            raise UnauthorizedException("Invalid email or password")
        if not account["is_active"]:
            raise UnauthorizedException("Account is deactivated")

        await db.execute(
            update(patient_users)
            .where(patient_users.c.id == account["id"])
            .values(last_login_at=datetime.now(UTC))
        )
        await db.commit()
        self._clear_rate_limit(key)

        logger.info(
            "login_succeeded", kind=PrincipalKind.PATIENT.value, account_id=str(account["id"])
        )
        return dict(account), self.create_tokens(str(account["id"]), PrincipalKind.PATIENT)

    def refresh_access_token(self, refresh_token: str, kind: PrincipalKind) -> Token:
        """
        Create a new token pair from a refresh token.

        Args:
            refresh_token: Valid refresh token
            kind: Principal kind the endpoint serves

        Returns:
            New token pair

        Raises:
            UnauthorizedException: If the refresh token is invalid or for the other kind
        """
        payload = decode_refresh_token(refresh_token)

        if payload is None or payload.get("kind") != kind.value:
            raise UnauthorizedException("Invalid refresh token")

        subject = payload.get("sub")
        if subject is None:
            raise UnauthorizedException("Invalid refresh token")

        return self.create_tokens(subject, kind, payload.get("role"))

    @staticmethod
    async def list_staff(db: AsyncSession) -> list[dict[str, Any]]:
        """Active staff accounts, newest first."""
        result = await db.execute(
            select(staff_users)
            .where(staff_users.c.is_active.is_(True))
            .order_by(staff_users.c.created_at.desc())
        )
        return [dict(row) for row in result.mappings()]

    @staticmethod
    async def update_staff_profile(
        db: AsyncSession, staff_id: UUID, data: StaffProfileUpdate
    ) -> dict[str, Any]:
        """
        Update a staff member's own profile.

        Raises:
            NotFoundException: If the account does not exist
            ConflictException: If the new username is taken
        """
        update_data = data.model_dump(exclude_unset=True, exclude_none=True)
        if not update_data:
            staff = await AuthService.get_staff_by_id(db, staff_id)
            if staff is None:
                raise NotFoundException("Staff account not found")
            return staff

        update_data["updated_at"] = datetime.now(UTC)
        try:
            result = await db.execute(
                update(staff_users)
                .where(staff_users.c.id == staff_id)
                .values(**update_data)
                .returning(staff_users)
            )
            row = result.mappings().first()
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictException("Username already in use")

        if row is None:
            raise NotFoundException("Staff account not found")
        return dict(row)

    @staticmethod
    async def update_patient_profile(
        db: AsyncSession, user_id: UUID, data: PatientProfileUpdate
    ) -> dict[str, Any]:
        """
        Update a portal account's profile.

        Raises:
            NotFoundException: If the account does not exist
            ConflictException: If the new email is registered to another account
        """
        update_data = data.model_dump(exclude_unset=True)
        # Optional contact fields may be cleared; identity fields may not
        for key in ("email", "first_name", "last_name"):
            if key in update_data and update_data[key] is None:
                del update_data[key]
        if not update_data:
            account = await AuthService.get_patient_user_by_id(db, user_id)
            if account is None:
                raise NotFoundException("Patient account not found")
            return account

        if "email" in update_data:
            update_data["email"] = update_data["email"].lower()
            taken = await db.execute(
                select(patient_users.c.id).where(
                    func.lower(patient_users.c.email) == update_data["email"],
                    patient_users.c.id != user_id,
                )
            )
            if taken.scalar() is not None:
                raise ConflictException("An account with this email already exists")

        update_data["updated_at"] = datetime.now(UTC)
        try:
            result = await db.execute(
                update(patient_users)
                .where(patient_users.c.id == user_id)
                .values(**update_data)
                .returning(patient_users)
            )
            row = result.mappings().first()
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictException("An account with this email already exists")

        if row is None:
            raise NotFoundException("Patient account not found")
        logger.info("patient_profile_updated", account_id=str(user_id))
        return dict(row)

    @staticmethod
    async def change_password(
        db: AsyncSession, kind: PrincipalKind, account: dict[str, Any], data: PasswordChange
    ) -> None:
        """
        Replace an account's password after checking the current one.

        Raises:
            BadRequestException: If the current password is wrong
        """
        if not verify_password(data.current_password, account["password_hash"]):
            raise BadRequestException("Current password is incorrect")

        table = staff_users if kind == PrincipalKind.STAFF else patient_users
        await db.execute(
            update(table)
            .where(table.c.id == account["id"])
            .values(
                password_hash=get_password_hash(data.new_password),
                updated_at=datetime.now(UTC),
            )
        )
        await db.commit()
        logger.info("password_changed", kind=kind.value, account_id=str(account["id"]))
