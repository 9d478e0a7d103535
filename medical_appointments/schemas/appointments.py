"""Appointment schemas for request/response validation."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from medical_appointments.domain.appointment import Appointment

SCHEDULING_IN_PROCESS = "Appointment scheduling is in process"

StepStatus = Literal["completed", "in_progress", "pending", "failed"]


class CamelModel(BaseModel):
    """Base schema serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AppointmentCreate(CamelModel):
    """Schema for scheduling a new appointment."""

    insured_id: str = Field(..., examples=["00001"])
    schedule_id: int = Field(..., examples=[100])
    country: str = Field(..., examples=["PE"])

    @model_validator(mode="before")
    @classmethod
    def accept_country_iso(cls, data: Any) -> Any:
        """Older clients send ``countryISO``."""
        if isinstance(data, dict) and "country" not in data and "countryISO" in data:
            data = {**data, "country": data["countryISO"]}
        return data


class CreateAppointmentResponse(CamelModel):
    """Accepted scheduling request."""

    appointment_id: str
    message: str = SCHEDULING_IN_PROCESS


class AppointmentResponse(CamelModel):
    """Schema for appointment response."""

    appointment_id: str
    insured_id: str
    schedule_id: int
    country: str
    status: str
    status_description: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, appointment: Appointment) -> "AppointmentResponse":
        return cls(
            appointment_id=appointment.id,
            insured_id=appointment.insured_id.value,
            schedule_id=appointment.schedule_id,
            country=appointment.country.code,
            status=appointment.status.value,
            status_description=appointment.status.description,
            created_at=appointment.created_at,
            updated_at=appointment.updated_at,
        )


class AppointmentListResponse(CamelModel):
    """Schema for an insured person's appointments."""

    items: list[AppointmentResponse]
    count: int

    @classmethod
    def from_entities(cls, appointments: list[Appointment]) -> "AppointmentListResponse":
        items = [AppointmentResponse.from_entity(appointment) for appointment in appointments]
        return cls(items=items, count=len(items))


class FlowStep(CamelModel):
    """One step of the processing pipeline."""

    step: int
    component: str
    action: str
    status: StepStatus
    timestamp: datetime | None = None
    details: dict[str, Any] | None = None


class AppointmentTraceResponse(CamelModel):
    """Progress of an appointment through the pipeline."""

    appointment_id: str
    insured_id: str
    country: str
    current_status: str
    flow_steps: list[FlowStep]
    completion_percentage: int
    summary: str
