"""Database configuration and connection management."""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from medical_appointments.config import settings


def to_async_url(url: str) -> str:
    """Convert a sync PostgreSQL URL to the asyncpg driver."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def build_engine(url: str, application_name: str | None = None) -> AsyncEngine:
    """Create an async engine with connection pooling."""
    async_url = to_async_url(url)
    options: dict[str, Any] = {"echo": settings.debug, "pool_pre_ping": True}
    if async_url.startswith("postgresql+asyncpg://"):
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_recycle=3600,
            connect_args={
                "server_settings": {
                    "application_name": application_name or settings.app_name,
                },
            },
        )
    return create_async_engine(async_url, **options)


# Primary store
engine: AsyncEngine = build_engine(settings.database_url)

# Country stores, keyed by ISO code
country_engines: dict[str, AsyncEngine] = {
    code: build_engine(url, application_name=f"{settings.app_name} ({code})")
    for code, url in settings.country_database_urls.items()
}


async def check_database_connection(target: AsyncEngine | None = None) -> bool:
    """Check if a database connection is healthy."""
    try:
        async with (target or engine).connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


async def dispose_engines() -> None:
    """Close every connection pool."""
    await engine.dispose()
    for country_engine in country_engines.values():
        await country_engine.dispose()
