"""Domain events as a single tagged type."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from medical_appointments.domain.appointment import Appointment, utcnow


class EventKind(str, Enum):
    """Discriminant of a domain event."""

    CREATED = "created"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class DomainEvent:
    """Something that happened to an appointment, tagged by ``kind``."""

    kind: EventKind
    aggregate_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_on: datetime = field(default_factory=utcnow)

    @property
    def detail_type(self) -> str:
        return f"appointment.{self.kind.value}"

    @classmethod
    def for_appointment(
        cls,
        kind: EventKind,
        appointment: Appointment,
        **extra: Any,
    ) -> "DomainEvent":
        """Build an event carrying the appointment's identifying fields."""
        return cls(
            kind=kind,
            aggregate_id=appointment.id,
            payload={
                "insuredId": appointment.insured_id.value,
                "scheduleId": appointment.schedule_id,
                "country": appointment.country.code,
                "status": kind.value,
                **extra,
            },
        )

    def to_detail(self) -> dict[str, Any]:
        """Flattened event body as published on the bus."""
        return {
            "eventId": self.event_id,
            "occurredOn": self.occurred_on.isoformat(),
            "aggregateId": self.aggregate_id,
            "appointmentId": self.aggregate_id,
            **self.payload,
        }
