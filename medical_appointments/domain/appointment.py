"""Appointment aggregate root."""

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from medical_appointments.core.exceptions import ValidationError
from medical_appointments.domain.status import AppointmentStatus, parse_status, transition
from medical_appointments.domain.values import Country, InsuredId


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(UTC)


def _as_datetime(value: datetime | str) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def validate_schedule_id(schedule_id: Any) -> int:
    """
    Check that a schedule id is a positive integer.

    Raises:
        ValidationError: If it is not
    """
    # bool is an int subclass
    if (
        not isinstance(schedule_id, int)
        or isinstance(schedule_id, bool)
        or schedule_id <= 0
    ):
        raise ValidationError(
            "Schedule ID must be a positive number",
            "scheduleId",
            ["positive_number"],
        )
    return schedule_id


class Appointment:
    """
    Medical appointment and its lifecycle.

    States: PENDING -> PROCESSING -> COMPLETED/FAILED, PENDING -> CANCELLED,
    FAILED -> PENDING (retry). Status changes only go through the
    transition methods below.
    """

    def __init__(
        self,
        id: str,
        insured_id: InsuredId,
        schedule_id: int,
        country: Country,
        status: AppointmentStatus,
        created_at: datetime,
        updated_at: datetime,
    ):
        self.id = id
        self.insured_id = insured_id
        self.schedule_id = schedule_id
        self.country = country
        self._status = status
        self.created_at = created_at
        self.updated_at = updated_at

    @classmethod
    def create(cls, insured_id: str, schedule_id: int, country: str) -> "Appointment":
        """
        Create a new PENDING appointment with a fresh id.

        Raises:
            ValidationError: If any field is invalid
        """
        validate_schedule_id(schedule_id)
        validated_insured_id = InsuredId.create(insured_id)
        validated_country = Country.create(country)
        now = utcnow()

        return cls(
            id=str(uuid4()),
            insured_id=validated_insured_id,
            schedule_id=schedule_id,
            country=validated_country,
            status=AppointmentStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

    @classmethod
    def from_message(
        cls,
        appointment_id: str,
        insured_id: str,
        schedule_id: int,
        country: str,
        status: AppointmentStatus,
        created_at: datetime,
        updated_at: datetime,
    ) -> "Appointment":
        """
        Rebuild an appointment received from another stage, validating every field.

        Raises:
            ValidationError: If any field is invalid
        """
        if not appointment_id:
            raise ValidationError("Appointment ID is required", "appointmentId", ["required"])
        validate_schedule_id(schedule_id)
        validated_insured_id = InsuredId.create(insured_id)
        validated_country = Country.create(country)
        created_at = _as_datetime(created_at)
        updated_at = _as_datetime(updated_at)

        return cls(
            id=appointment_id,
            insured_id=validated_insured_id,
            schedule_id=schedule_id,
            country=validated_country,
            status=status,
            created_at=created_at,
            updated_at=max(updated_at, created_at),
        )

    @classmethod
    def from_persistence(cls, data: dict[str, Any]) -> "Appointment":
        """Rebuild from a stored row or trusted message payload (no validation)."""
        created_at = _as_datetime(data["created_at"])
        updated_at = _as_datetime(data.get("updated_at") or created_at)
        return cls(
            id=str(data["id"]),
            insured_id=InsuredId.from_persistence(data["insured_id"]),
            schedule_id=int(data["schedule_id"]),
            country=Country.from_persistence(data["country"]),
            status=parse_status(data["status"]),
            created_at=created_at,
            updated_at=max(updated_at, created_at),
        )

    @property
    def status(self) -> AppointmentStatus:
        return self._status

    def transition_to(self, target: AppointmentStatus) -> None:
        """Move to ``target``; status and updated_at are untouched on failure."""
        self._status = transition(self._status, target)
        self.updated_at = max(utcnow(), self.created_at)

    def mark_as_processing(self) -> None:
        self.transition_to(AppointmentStatus.PROCESSING)

    def mark_as_completed(self) -> None:
        self.transition_to(AppointmentStatus.COMPLETED)

    def mark_as_failed(self) -> None:
        self.transition_to(AppointmentStatus.FAILED)

    def cancel(self) -> None:
        self.transition_to(AppointmentStatus.CANCELLED)

    def retry(self) -> None:
        self.transition_to(AppointmentStatus.PENDING)

    def to_persistence(self) -> dict[str, Any]:
        """Column values for the primary and country tables."""
        return {
            "id": self.id,
            "insured_id": self.insured_id.value,
            "schedule_id": self.schedule_id,
            "country": self.country.code,
            "status": self._status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Appointment):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __str__(self) -> str:
        return (
            f"Appointment[{self.id}] - Insured: {self.insured_id}, "
            f"Country: {self.country}, Status: {self._status.value}"
        )
