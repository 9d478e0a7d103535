"""Confirmation stage: applies completion events to the primary store."""

from collections.abc import Sequence

import structlog

from medical_appointments.core.exceptions import ValidationError
from medical_appointments.domain.status import AppointmentStatus
from medical_appointments.messaging.broker import StreamMessage
from medical_appointments.schemas.messages import CompletionEvent, parse_completion_event
from medical_appointments.services.batch import BatchResult, process_records
from medical_appointments.stores.base import PrimaryStore

logger = structlog.get_logger(__name__)

# Current statuses a guarded completion may overwrite
GUARDED_SOURCES: tuple[AppointmentStatus, ...] = (
    AppointmentStatus.PENDING,
    AppointmentStatus.PROCESSING,
    AppointmentStatus.COMPLETED,
)

# Failure never overwrites a final state, guard or not
FAILURE_SOURCES: tuple[AppointmentStatus, ...] = (
    AppointmentStatus.PENDING,
    AppointmentStatus.PROCESSING,
    AppointmentStatus.FAILED,
)


class ConfirmationService:
    """
    Sets the primary store's status copy from completion events.

    Completion is a blind set, so applying the same event twice leaves the
    row at the same status. With ``guard_enabled`` it only applies while the
    row is still live, so a stale event cannot revive a cancelled
    appointment. Failure is always conditional: a late failure leaves a
    completed or cancelled appointment alone.
    """

    def __init__(
        self,
        primary_store: PrimaryStore,
        guard_enabled: bool = False,
        concurrency: int | None = None,
    ):
        self.primary_store = primary_store
        self.guard_enabled = guard_enabled
        self.concurrency = concurrency

    def _only_from(self, target: AppointmentStatus) -> tuple[AppointmentStatus, ...] | None:
        if target is AppointmentStatus.FAILED:
            return FAILURE_SOURCES
        return GUARDED_SOURCES if self.guard_enabled else None

    @staticmethod
    def _target_status(event: CompletionEvent) -> AppointmentStatus:
        if event.status == AppointmentStatus.COMPLETED.value:
            return AppointmentStatus.COMPLETED
        if event.status == AppointmentStatus.FAILED.value:
            return AppointmentStatus.FAILED
        raise ValidationError(
            f"Unsupported event status '{event.status}'",
            "status",
            ["completed_or_failed"],
        )

    async def confirm(self, event: CompletionEvent) -> bool:
        """
        Apply one event.

        Returns:
            True if the primary store row was updated

        Raises:
            ValidationError: If the event status is not completed/failed
            InfrastructureError: If the primary store fails
        """
        target = self._target_status(event)
        only_from = self._only_from(target)

        updated = await self.primary_store.update_status(event.appointment_id, target, only_from)
        if not updated:
            logger.warning(
                "appointment_confirmation_skipped",
                appointment_id=event.appointment_id,
                status=target.value,
                guarded=only_from is not None,
            )
            return False

        logger.info(
            "appointment_confirmed",
            appointment_id=event.appointment_id,
            country=event.country,
            status=target.value,
        )
        return True

    async def handle_record(self, record: StreamMessage) -> bool:
        return await self.confirm(parse_completion_event(record.body))

    async def process_batch(self, records: Sequence[StreamMessage]) -> BatchResult:
        """Confirm a delivered batch; failed items are reported, not raised."""
        return await process_records(
            records, self.handle_record, stage="confirmation", concurrency=self.concurrency
        )
