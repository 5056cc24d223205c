"""Script to initialize the database without Alembic (local development)."""

import asyncio

from sqlalchemy import insert, select

from app.database import engine
from app.models import clinic_settings, metadata
from app.services.schedule_service import DEFAULT_CLINIC_SETTINGS, SETTINGS_ROW_ID


async def init_db() -> None:
    """Create all tables and seed the clinic settings document."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

        existing = await conn.execute(
            select(clinic_settings.c.id).where(clinic_settings.c.id == SETTINGS_ROW_ID)
        )
        if existing.scalar() is None:
            await conn.execute(
                insert(clinic_settings).values(
                    id=SETTINGS_ROW_ID,
                    clinic_name=DEFAULT_CLINIC_SETTINGS["clinic_name"],
                    obgyne_doctor=DEFAULT_CLINIC_SETTINGS["obgyne_doctor"],
                    pediatrician=DEFAULT_CLINIC_SETTINGS["pediatrician"],
                    updated_by="init_db",
                )
            )
            print("✓ Clinic settings seeded with default doctors and hours")

    await engine.dispose()
    print("✓ Database initialized successfully!")


if __name__ == "__main__":
    asyncio.run(init_db())
