"""Primary appointment store backed by SQLAlchemy Core."""

from collections.abc import Iterable

import structlog
from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from medical_appointments.core.exceptions import InfrastructureError
from medical_appointments.domain.appointment import Appointment, utcnow
from medical_appointments.domain.status import AppointmentStatus
from medical_appointments.models.appointments import appointments

logger = structlog.get_logger(__name__)

SERVICE_NAME = "primary-store"


class SqlPrimaryStore:
    """Primary store; every write is an insert, a blind set or a delete."""

    def __init__(self, engine: AsyncEngine):
        """Initialize store with an async engine."""
        self.engine = engine

    async def save(self, appointment: Appointment) -> None:
        """
        Insert a new appointment.

        Args:
            appointment: Freshly created aggregate

        Raises:
            InfrastructureError: If the database write fails
        """
        try:
            async with self.engine.begin() as conn:
                await conn.execute(insert(appointments).values(**appointment.to_persistence()))
        except SQLAlchemyError as e:
            logger.error("primary_store_save_failed", appointment_id=appointment.id, error=str(e))
            raise InfrastructureError(SERVICE_NAME, f"Failed to save appointment: {e}", e) from e

        logger.debug("primary_store_saved", appointment_id=appointment.id)

    async def find_by_id(self, appointment_id: str) -> Appointment | None:
        """Get appointment by ID, or None."""
        stmt = select(appointments).where(appointments.c.id == appointment_id)
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(stmt)
                row = result.fetchone()
        except SQLAlchemyError as e:
            logger.error("primary_store_read_failed", appointment_id=appointment_id, error=str(e))
            raise InfrastructureError(SERVICE_NAME, f"Failed to read appointment: {e}", e) from e

        if not row:
            return None
        return Appointment.from_persistence(dict(row._mapping))

    async def find_by_insured_id(self, insured_id: str) -> list[Appointment]:
        """List an insured person's appointments, newest first."""
        stmt = (
            select(appointments)
            .where(appointments.c.insured_id == insured_id)
            .order_by(appointments.c.created_at.desc())
        )
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(stmt)
                rows = result.fetchall()
        except SQLAlchemyError as e:
            logger.error("primary_store_query_failed", insured_id=insured_id, error=str(e))
            raise InfrastructureError(SERVICE_NAME, f"Failed to list appointments: {e}", e) from e

        return [Appointment.from_persistence(dict(row._mapping)) for row in rows]

    async def update_status(
        self,
        appointment_id: str,
        status: AppointmentStatus,
        only_from: Iterable[AppointmentStatus] | None = None,
    ) -> bool:
        """
        Set status and refresh updated_at in one statement.

        Args:
            appointment_id: Appointment ID
            status: New status value
            only_from: When given, rows in any other status are left alone

        Returns:
            True if a row was updated
        """
        stmt = update(appointments).where(appointments.c.id == appointment_id)
        if only_from is not None:
            stmt = stmt.where(appointments.c.status.in_([s.value for s in only_from]))
        stmt = stmt.values(status=status.value, updated_at=utcnow())

        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "primary_store_update_failed",
                appointment_id=appointment_id,
                status=status.value,
                error=str(e),
            )
            raise InfrastructureError(SERVICE_NAME, f"Failed to update status: {e}", e) from e

        return bool(result.rowcount)

    async def delete(self, appointment_id: str) -> bool:
        """Permanently delete an appointment. Returns True if it existed."""
        stmt = delete(appointments).where(appointments.c.id == appointment_id)
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("primary_store_delete_failed", appointment_id=appointment_id, error=str(e))
            raise InfrastructureError(SERVICE_NAME, f"Failed to delete appointment: {e}", e) from e

        return bool(result.rowcount)
