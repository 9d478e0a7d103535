"""Appointment lifecycle states and the transition table."""

from enum import Enum

from medical_appointments.core.exceptions import BusinessRuleViolation, InvalidStateTransition


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def description(self) -> str:
        """Human readable description of the state."""
        return STATUS_DESCRIPTIONS[self]

    def allowed_targets(self) -> tuple["AppointmentStatus", ...]:
        """States reachable from this one in a single step."""
        return VALID_TRANSITIONS[self]

    def is_final(self) -> bool:
        """True when no transition leaves this state."""
        return not VALID_TRANSITIONS[self]


VALID_TRANSITIONS: dict[AppointmentStatus, tuple[AppointmentStatus, ...]] = {
    AppointmentStatus.PENDING: (AppointmentStatus.PROCESSING, AppointmentStatus.CANCELLED),
    AppointmentStatus.PROCESSING: (AppointmentStatus.COMPLETED, AppointmentStatus.FAILED),
    # retry
    AppointmentStatus.FAILED: (AppointmentStatus.PENDING,),
    AppointmentStatus.COMPLETED: (),
    AppointmentStatus.CANCELLED: (),
}

STATUS_DESCRIPTIONS: dict[AppointmentStatus, str] = {
    AppointmentStatus.PENDING: "Appointment waiting to be processed",
    AppointmentStatus.PROCESSING: "Appointment being processed by its country",
    AppointmentStatus.COMPLETED: "Appointment confirmed",
    AppointmentStatus.FAILED: "Appointment processing failed",
    AppointmentStatus.CANCELLED: "Appointment cancelled",
}


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    """Check whether ``current -> target`` is an edge of the table."""
    return target in VALID_TRANSITIONS[current]


def transition(current: AppointmentStatus, target: AppointmentStatus) -> AppointmentStatus:
    """
    Validate a transition and return the new status.

    Args:
        current: Status the appointment is in
        target: Requested status

    Returns:
        The target status

    Raises:
        InvalidStateTransition: If the edge is not in the table
    """
    if not can_transition(current, target):
        raise InvalidStateTransition(
            current.value,
            target.value,
            [status.value for status in VALID_TRANSITIONS[current]],
        )
    return target


def parse_status(value: str) -> AppointmentStatus:
    """Parse a persisted status string."""
    try:
        return AppointmentStatus(value)
    except ValueError as e:
        raise BusinessRuleViolation("InvalidStatus", f"Status '{value}' is not valid") from e
