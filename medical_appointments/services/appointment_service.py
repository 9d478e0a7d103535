"""Appointment service: create stage and synchronous queries."""

import structlog

from medical_appointments.core.exceptions import BusinessRuleViolation, NotFoundError
from medical_appointments.domain.appointment import Appointment
from medical_appointments.domain.status import AppointmentStatus
from medical_appointments.domain.values import InsuredId
from medical_appointments.messaging.base import Router
from medical_appointments.schemas.appointments import (
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentTraceResponse,
    CreateAppointmentResponse,
)
from medical_appointments.schemas.messages import CreationMessage
from medical_appointments.services.trace_service import build_trace
from medical_appointments.stores.base import PrimaryStore

logger = structlog.get_logger(__name__)


class AppointmentService:
    """Service for scheduling and querying appointments."""

    def __init__(self, primary_store: PrimaryStore, router: Router):
        """Initialize service with its collaborators."""
        self.primary_store = primary_store
        self.router = router

    async def create_appointment(self, data: AppointmentCreate) -> CreateAppointmentResponse:
        """
        Schedule a new appointment.

        The appointment is stored as PENDING and a creation message is routed
        to its country. If routing fails the stored row stays PENDING and the
        error is raised to the caller.

        Args:
            data: Appointment creation data

        Returns:
            Accepted response with the new appointment ID

        Raises:
            ValidationError: If any field is invalid
            InfrastructureError: If the store or the router is unavailable
        """
        appointment = Appointment.create(
            insured_id=data.insured_id,
            schedule_id=data.schedule_id,
            country=data.country,
        )

        await self.primary_store.save(appointment)
        logger.debug("appointment_stored", appointment_id=appointment.id)

        await self.router.publish(CreationMessage.from_appointment(appointment))

        logger.info(
            "appointment_created",
            appointment_id=appointment.id,
            insured_id=appointment.insured_id.value,
            country=appointment.country.code,
        )
        return CreateAppointmentResponse(appointment_id=appointment.id)

    async def list_by_insured_id(self, insured_id: str) -> AppointmentListResponse:
        """
        List appointments of an insured person.

        Raises:
            ValidationError: If the insured ID is malformed
        """
        validated = InsuredId.create(insured_id)
        appointments = await self.primary_store.find_by_insured_id(validated.value)
        return AppointmentListResponse.from_entities(appointments)

    async def get_appointment(self, appointment_id: str) -> Appointment:
        """
        Get appointment by ID.

        Raises:
            NotFoundError: If appointment not found
        """
        appointment = await self.primary_store.find_by_id(appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment", appointment_id)
        return appointment

    async def get_trace(self, appointment_id: str) -> AppointmentTraceResponse:
        """Derive the pipeline trace for an appointment."""
        appointment = await self.get_appointment(appointment_id)
        return build_trace(appointment)

    async def _store_transition(
        self,
        appointment: Appointment,
        previous: AppointmentStatus,
    ) -> None:
        updated = await self.primary_store.update_status(
            appointment.id, appointment.status, only_from=(previous,)
        )
        if not updated:
            raise BusinessRuleViolation(
                "ConcurrentStatusChange",
                f"Appointment '{appointment.id}' changed status while being updated",
            )

    async def cancel_appointment(self, appointment_id: str) -> AppointmentResponse:
        """
        Cancel a pending appointment.

        Raises:
            NotFoundError: If appointment not found
            InvalidStateTransition: If the appointment is not PENDING
        """
        appointment = await self.get_appointment(appointment_id)
        previous = appointment.status
        appointment.cancel()
        await self._store_transition(appointment, previous)

        logger.info("appointment_cancelled", appointment_id=appointment_id)
        return AppointmentResponse.from_entity(appointment)

    async def retry_appointment(self, appointment_id: str) -> AppointmentResponse:
        """
        Move a failed appointment back to PENDING and route it again.

        Raises:
            NotFoundError: If appointment not found
            InvalidStateTransition: If the appointment is not FAILED
        """
        appointment = await self.get_appointment(appointment_id)
        previous = appointment.status
        appointment.retry()
        await self._store_transition(appointment, previous)

        await self.router.publish(CreationMessage.from_appointment(appointment))

        logger.info("appointment_retried", appointment_id=appointment_id)
        return AppointmentResponse.from_entity(appointment)

    async def delete_appointment(self, appointment_id: str) -> None:
        """
        Permanently delete an appointment (administrative).

        Raises:
            NotFoundError: If appointment not found
        """
        deleted = await self.primary_store.delete(appointment_id)
        if not deleted:
            raise NotFoundError("Appointment", appointment_id)
        logger.info("appointment_deleted", appointment_id=appointment_id)
