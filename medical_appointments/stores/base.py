"""Persistence interfaces consumed by the pipeline stages."""

from collections.abc import Iterable
from typing import Protocol

from medical_appointments.domain.appointment import Appointment
from medical_appointments.domain.status import AppointmentStatus


class PrimaryStore(Protocol):
    """Source of truth for every appointment and its status copy."""

    async def save(self, appointment: Appointment) -> None: ...

    async def find_by_id(self, appointment_id: str) -> Appointment | None: ...

    async def find_by_insured_id(self, insured_id: str) -> list[Appointment]: ...

    async def update_status(
        self,
        appointment_id: str,
        status: AppointmentStatus,
        only_from: Iterable[AppointmentStatus] | None = None,
    ) -> bool:
        """Blind-set the status; ``only_from`` restricts which current values apply."""
        ...

    async def delete(self, appointment_id: str) -> bool: ...


class CountryStore(Protocol):
    """Per-country copy of processed appointments."""

    country: str

    async def save(self, appointment: Appointment) -> None:
        """Upsert keyed by appointment id."""
        ...

    async def find_by_id(self, appointment_id: str) -> Appointment | None: ...

    async def find_by_insured_id(self, insured_id: str) -> list[Appointment]: ...

    async def health_check(self) -> bool: ...

    async def disconnect(self) -> None: ...
