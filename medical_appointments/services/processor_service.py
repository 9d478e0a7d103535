"""Country processor stage."""

from collections.abc import Sequence

import structlog

from medical_appointments.core.exceptions import MisroutedMessageError, ValidationError
from medical_appointments.domain.appointment import Appointment, utcnow
from medical_appointments.domain.events import DomainEvent, EventKind
from medical_appointments.domain.status import AppointmentStatus
from medical_appointments.messaging.base import EventBus
from medical_appointments.messaging.broker import StreamMessage
from medical_appointments.schemas.messages import CreationMessage, parse_creation_message
from medical_appointments.services.batch import BatchResult, process_records
from medical_appointments.stores.base import CountryStore

logger = structlog.get_logger(__name__)


class CountryProcessor:
    """
    Persists routed appointments into one country's store.

    Every write is an upsert keyed by appointment id, so a redelivered
    message converges on the same row and publishes the completion event
    again; the confirmation stage tolerates that.
    """

    def __init__(
        self,
        country: str,
        country_store: CountryStore,
        event_bus: EventBus,
        concurrency: int | None = None,
    ):
        """Initialize processor for one country."""
        self.country = country
        self.country_store = country_store
        self.event_bus = event_bus
        self.concurrency = concurrency

    async def process(self, message: CreationMessage) -> Appointment:
        """
        Process a single routed creation message.

        Args:
            message: Parsed creation message

        Returns:
            The appointment as written to the country store

        Raises:
            MisroutedMessageError: If the message belongs to another country
            ValidationError: If the payload breaks an appointment invariant
            InfrastructureError: If the store or the event bus fails
        """
        if message.country != self.country:
            logger.error(
                "appointment_misrouted",
                appointment_id=message.appointment_id,
                expected_country=self.country,
                received_country=message.country,
            )
            raise MisroutedMessageError(self.country, message.country, message.appointment_id)

        now = utcnow()
        appointment = Appointment.from_message(
            message.appointment_id,
            message.insured_id,
            message.schedule_id,
            message.country,
            AppointmentStatus.PROCESSING,
            created_at=message.created_at or now,
            updated_at=now,
        )
        logger.info(
            "appointment_processing",
            appointment_id=appointment.id,
            country=self.country,
            insured_id=appointment.insured_id.value,
        )

        appointment.mark_as_completed()
        await self.country_store.save(appointment)

        await self.event_bus.publish(DomainEvent.for_appointment(EventKind.COMPLETED, appointment))

        logger.info("appointment_processed", appointment_id=appointment.id, country=self.country)
        return appointment

    async def handle_record(self, record: StreamMessage) -> Appointment:
        return await self.process(parse_creation_message(record.body))

    async def process_batch(self, records: Sequence[StreamMessage]) -> BatchResult:
        """Process a delivered batch; failed items are reported, not raised."""
        return await process_records(
            records,
            self.handle_record,
            stage=f"country_processor_{self.country.lower()}",
            concurrency=self.concurrency,
        )

    async def on_dead_letter(self, record: StreamMessage, reason: str) -> None:
        """Announce a permanently failed appointment so the primary copy moves to FAILED."""
        try:
            message = parse_creation_message(record.body)
        except ValidationError as e:
            logger.error(
                "dead_letter_unparseable",
                message_id=record.message_id,
                country=self.country,
                error=str(e),
            )
            return

        # The owning country's processor decides this appointment's outcome
        if message.country != self.country:
            logger.error(
                "dead_letter_misrouted",
                appointment_id=message.appointment_id,
                expected_country=self.country,
                received_country=message.country,
                reason=reason,
            )
            return

        event = DomainEvent(
            kind=EventKind.FAILED,
            aggregate_id=message.appointment_id,
            payload={
                "insuredId": message.insured_id,
                "scheduleId": message.schedule_id,
                "country": message.country,
                "status": EventKind.FAILED.value,
                "reason": reason,
            },
        )
        await self.event_bus.publish(event)
        logger.warning(
            "appointment_failed",
            appointment_id=message.appointment_id,
            country=self.country,
            reason=reason,
        )
