"""Per-country appointment stores backed by SQLAlchemy Core."""

from typing import Any

import structlog
from sqlalchemy import select, text
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from medical_appointments.core.exceptions import InfrastructureError
from medical_appointments.domain.appointment import Appointment
from medical_appointments.models.appointments import country_appointments

logger = structlog.get_logger(__name__)

_UPSERT_DIALECTS: dict[str, Any] = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}


class SqlCountryStore:
    """Country database; ``save`` is an idempotent upsert keyed by id."""

    def __init__(self, country: str, engine: AsyncEngine):
        """Initialize store for one country."""
        self.country = country
        self.engine = engine
        self.service_name = f"country-store-{country}"

    def _upsert(self, appointment: Appointment) -> Any:
        dialect = self.engine.dialect.name
        insert_factory = _UPSERT_DIALECTS.get(dialect)
        if insert_factory is None:
            raise InfrastructureError(self.service_name, f"Upsert not supported for '{dialect}'")

        stmt = insert_factory(country_appointments).values(**appointment.to_persistence())
        # Redelivered or reordered writes never move updated_at backwards
        return stmt.on_conflict_do_update(
            index_elements=[country_appointments.c.id],
            set_={
                "status": stmt.excluded.status,
                "updated_at": stmt.excluded.updated_at,
            },
            where=country_appointments.c.updated_at <= stmt.excluded.updated_at,
        )

    async def save(self, appointment: Appointment) -> None:
        """
        Insert the appointment, or update status and updated_at on conflict.

        Raises:
            InfrastructureError: If the database write fails
        """
        stmt = self._upsert(appointment)
        try:
            async with self.engine.begin() as conn:
                await conn.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "country_store_save_failed",
                country=self.country,
                appointment_id=appointment.id,
                error=str(e),
            )
            raise InfrastructureError(
                self.service_name, f"Failed to save appointment: {e}", e
            ) from e

        logger.debug("country_store_saved", country=self.country, appointment_id=appointment.id)

    async def find_by_id(self, appointment_id: str) -> Appointment | None:
        stmt = select(country_appointments).where(country_appointments.c.id == appointment_id)
        try:
            async with self.engine.connect() as conn:
                row = (await conn.execute(stmt)).fetchone()
        except SQLAlchemyError as e:
            raise InfrastructureError(
                self.service_name, f"Failed to read appointment: {e}", e
            ) from e

        if not row:
            return None
        return Appointment.from_persistence(dict(row._mapping))

    async def find_by_insured_id(self, insured_id: str) -> list[Appointment]:
        stmt = (
            select(country_appointments)
            .where(country_appointments.c.insured_id == insured_id)
            .order_by(country_appointments.c.created_at.desc())
        )
        try:
            async with self.engine.connect() as conn:
                rows = (await conn.execute(stmt)).fetchall()
        except SQLAlchemyError as e:
            raise InfrastructureError(
                self.service_name, f"Failed to list appointments: {e}", e
            ) from e

        return [Appointment.from_persistence(dict(row._mapping)) for row in rows]

    async def health_check(self) -> bool:
        """Check connectivity."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception:
            return False

    async def disconnect(self) -> None:
        """Close the connection pool."""
        await self.engine.dispose()
        logger.info("country_store_disconnected", country=self.country)
