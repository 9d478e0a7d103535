"""Database models."""

from medical_appointments.models.appointments import (
    appointments,
    country_appointments,
    country_metadata,
    metadata,
)

__all__ = [
    "appointments",
    "country_appointments",
    "country_metadata",
    "metadata",
]
