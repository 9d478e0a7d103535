"""Script to initialize the primary and per-country databases."""

import asyncio

from medical_appointments.database import country_engines, dispose_engines, engine
from medical_appointments.models import country_metadata, metadata


async def init_db() -> None:
    """Create the primary table and one country table per configured country."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    print("✓ Primary database initialized")

    for code, country_engine in country_engines.items():
        async with country_engine.begin() as conn:
            await conn.run_sync(country_metadata.create_all)
        print(f"✓ Country database {code} initialized")

    await dispose_engines()


if __name__ == "__main__":
    asyncio.run(init_db())
