import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import date, timedelta

# Settings are read at import time; tests default to an in-memory SQLite database
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("PUSH_NOTIFICATIONS_ENABLED", "false")

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

# Load remaining environment variables from .env file
load_dotenv()

from app.core.security import PrincipalKind, create_access_token
from app.database import get_async_database_url, get_db, get_session_factory
from app.dependencies import get_cache_manager, get_rate_limiter
from app.main import app
from app.models import metadata
from app.schemas.auth import PatientRegister, StaffCreate
from app.schemas.enums import StaffRole
from app.services.auth_service import AuthService
from app.services.availability_service import clinic_now

# Test database URL - MUST be different from production
TEST_DATABASE_URL = get_async_database_url(
    os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
)

OBGYNE_DOCTOR = "Dr. Maria Sarah L. Manaloto"
PEDIATRICIAN = "Dr. Shara Laine S. Vino"


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # One shared connection so every session sees the same in-memory database
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {"poolclass": NullPool}


def next_weekday(weekday: int, min_days_ahead: int = 2) -> date:
    """First date on the given weekday (Monday=0) at least ``min_days_ahead`` out."""
    day = clinic_now().date() + timedelta(days=min_days_ahead)
    while day.weekday() != weekday:
        day += timedelta(days=1)
    return day


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session on fresh tables."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, **_engine_kwargs(TEST_DATABASE_URL))
    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client with Redis-backed helpers switched off."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    # Background notifications share the test session as well
    @asynccontextmanager
    async def shared_session() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_session_factory] = lambda: shared_session
    app.dependency_overrides[get_cache_manager] = lambda: None
    app.dependency_overrides[get_rate_limiter] = lambda: None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def _create_staff(db: AsyncSession, username: str, role: StaffRole) -> dict:
    return await AuthService.create_staff(
        db,
        StaffCreate(
            username=username,
            email=f"{username}@example.com",
            password="correct-horse-battery",
            full_name=f"{username.title()} Account",
            role=role,
        ),
    )


def _bearer(subject, kind: PrincipalKind, role: str | None = None) -> dict:
    token = create_access_token(str(subject), kind, role)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def staff_user(db_session: AsyncSession) -> dict:
    """Front-desk staff account."""
    return await _create_staff(db_session, "frontdesk", StaffRole.STAFF)


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> dict:
    """Clinic admin account."""
    return await _create_staff(db_session, "clinicadmin", StaffRole.ADMIN)


@pytest.fixture
def staff_headers(staff_user: dict) -> dict:
    """Authentication headers for the staff account."""
    return _bearer(staff_user["id"], PrincipalKind.STAFF, staff_user["role"])


@pytest.fixture
def admin_headers(admin_user: dict) -> dict:
    """Authentication headers for the admin account."""
    return _bearer(admin_user["id"], PrincipalKind.STAFF, admin_user["role"])


@pytest_asyncio.fixture
async def patient_account(db_session: AsyncSession) -> dict:
    """Registered portal account."""
    return await AuthService.register_patient(
        db_session,
        PatientRegister(
            email="ana.santos@example.com",
            password="portal-pass",
            first_name="Ana",
            last_name="Santos",
            phone="09171234567",
            consent=True,
        ),
    )


@pytest.fixture
def patient_headers(patient_account: dict) -> dict:
    """Authentication headers for the portal account."""
    return _bearer(patient_account["id"], PrincipalKind.PATIENT)


@pytest.fixture
def sample_booking() -> dict:
    """Portal booking with the OB-GYNE on an upcoming Monday morning."""
    return {
        "doctor_type": "ob-gyne",
        "appointment_date": next_weekday(0).isoformat(),
        "appointment_time": "09:00 AM",
        "service_type": "PRENATAL_CHECKUP",
        "reason": "Routine prenatal visit",
    }
