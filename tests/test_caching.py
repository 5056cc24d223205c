"""Tests for Redis caching and rate limiting helpers."""

from unittest.mock import MagicMock

import pytest
from httpx import AsyncClient

from app.core.exceptions import RateLimitException, UnauthorizedException
from app.core.redis_client import CacheManager, RateLimiter
from app.dependencies import get_cache_manager, get_rate_limiter
from app.main import app
from app.schemas.settings import ClinicSettingsUpdate
from app.services.auth_service import AuthService
from app.services.schedule_service import DEFAULT_CLINIC_SETTINGS, ClinicScheduleProvider


def test_cache_manager_get_json():
    """Test CacheManager get_json method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    mock_redis.get.return_value = None
    assert cache_manager.get_json("clinic:settings") is None
    mock_redis.get.assert_called_once_with("clinic:settings")

    mock_redis.reset_mock()
    mock_redis.get.return_value = '{"clinic_name": "Test Clinic"}'
    assert cache_manager.get_json("clinic:settings") == {"clinic_name": "Test Clinic"}


def test_cache_manager_get_json_swallows_errors():
    mock_redis = MagicMock()
    mock_redis.get.side_effect = ConnectionError("redis down")

    assert CacheManager(redis_client=mock_redis).get_json("clinic:settings") is None


def test_cache_manager_set_json():
    """Test CacheManager set_json method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.set_json("key", {"value": 1}) is True
    mock_redis.set.assert_called_once_with("key", '{"value": 1}')

    mock_redis.reset_mock()
    assert cache_manager.set_json("key", {"value": 1}, ttl=300) is True
    mock_redis.setex.assert_called_once_with("key", 300, '{"value": 1}')


def test_cache_manager_delete():
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.delete("clinic:settings") is True
    mock_redis.delete.assert_called_once_with("clinic:settings")


def test_rate_limiter_first_attempt_starts_window():
    mock_redis = MagicMock()
    mock_redis.get.return_value = None
    limiter = RateLimiter(redis_client=mock_redis)

    assert limiter.check_rate_limit("login:staff:frontdesk", limit=3) is True
    mock_redis.setex.assert_called_once_with("login:staff:frontdesk", 60, 1)


def test_rate_limiter_counts_until_limit():
    mock_redis = MagicMock()
    limiter = RateLimiter(redis_client=mock_redis)

    mock_redis.get.return_value = "2"
    assert limiter.check_rate_limit("login:staff:frontdesk", limit=3) is True
    mock_redis.incr.assert_called_once_with("login:staff:frontdesk")

    mock_redis.get.return_value = "3"
    assert limiter.check_rate_limit("login:staff:frontdesk", limit=3) is False


def test_rate_limiter_fails_open():
    mock_redis = MagicMock()
    mock_redis.get.side_effect = ConnectionError("redis down")

    assert RateLimiter(redis_client=mock_redis).check_rate_limit("key", limit=1) is True


def test_rate_limiter_reset():
    mock_redis = MagicMock()
    RateLimiter(redis_client=mock_redis).reset("login:patient:ana@example.com")
    mock_redis.delete.assert_called_once_with("login:patient:ana@example.com")


@pytest.mark.asyncio
async def test_login_rate_limited(client: AsyncClient, staff_user: dict) -> None:
    """Logins over the limit are refused before the password is checked."""
    limiter = MagicMock()
    limiter.check_rate_limit.return_value = False
    app.dependency_overrides[get_rate_limiter] = lambda: limiter

    response = await client.post(
        "/api/v1/auth/login",
        json={"username": "frontdesk", "password": "correct-horse-battery"},
    )

    assert response.status_code == 429
    assert response.json()["error"] == "RateLimitException"


@pytest.mark.asyncio
async def test_successful_login_resets_attempts(db_session, staff_user: dict) -> None:
    limiter = MagicMock()
    limiter.check_rate_limit.return_value = True

    await AuthService(limiter).authenticate_staff(db_session, "frontdesk", "correct-horse-battery")

    limiter.reset.assert_called_once_with("login:staff:frontdesk")


@pytest.mark.asyncio
async def test_failed_login_keeps_attempts(db_session, staff_user: dict) -> None:
    limiter = MagicMock()
    limiter.check_rate_limit.return_value = True

    with pytest.raises(UnauthorizedException):
        await AuthService(limiter).authenticate_staff(db_session, "frontdesk", "bad-password")

    limiter.reset.assert_not_called()


@pytest.mark.asyncio
async def test_schedule_provider_reads_from_cache() -> None:
    """A cached settings document is served without touching the database."""
    cache = MagicMock()
    cache.get_json.return_value = DEFAULT_CLINIC_SETTINGS
    provider = ClinicScheduleProvider(cache)

    document = await provider.get_settings(db=None)

    assert document == DEFAULT_CLINIC_SETTINGS
    cache.get_json.assert_called_once_with(ClinicScheduleProvider.SETTINGS_CACHE_KEY)
    cache.set_json.assert_not_called()


@pytest.mark.asyncio
async def test_schedule_provider_fills_cache(db_session) -> None:
    cache = MagicMock()
    cache.get_json.return_value = None
    provider = ClinicScheduleProvider(cache)

    document = await provider.get_settings(db_session)

    assert document["obgyne_doctor"]["name"] == DEFAULT_CLINIC_SETTINGS["obgyne_doctor"]["name"]
    cache.set_json.assert_called_once()
    key, cached = cache.set_json.call_args.args
    assert key == ClinicScheduleProvider.SETTINGS_CACHE_KEY
    assert cached == document


@pytest.mark.asyncio
async def test_settings_update_invalidates_cache(db_session) -> None:
    cache = MagicMock()
    cache.get_json.return_value = None
    provider = ClinicScheduleProvider(cache)

    updated = await provider.update_settings(
        db_session, ClinicSettingsUpdate(clinic_name="VM Clinic Annex"), "Clinicadmin Account"
    )

    assert updated.clinic_name == "VM Clinic Annex"
    cache.delete.assert_called_once_with(ClinicScheduleProvider.SETTINGS_CACHE_KEY)

    # The saved row now wins over the defaults
    document = await ClinicScheduleProvider().get_settings(db_session)
    assert document["clinic_name"] == "VM Clinic Annex"
    assert document["updated_by"] == "Clinicadmin Account"


@pytest.mark.asyncio
async def test_availability_uses_injected_cache(client: AsyncClient) -> None:
    cache = MagicMock()
    cache.get_json.return_value = None
    app.dependency_overrides[get_cache_manager] = lambda: cache

    response = await client.get("/api/v1/availability/doctors")

    assert response.status_code == 200
    cache.get_json.assert_called_with(ClinicScheduleProvider.SETTINGS_CACHE_KEY)
    cache.set_json.assert_called_once()
