"""Wire contracts exchanged between pipeline stages."""

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from medical_appointments.core.exceptions import ValidationError
from medical_appointments.domain.appointment import Appointment


class MessageModel(BaseModel):
    """Base for camelCase wire messages."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class CreationMessage(MessageModel):
    """Emitted once per successful create, routed by ``country``."""

    appointment_id: str
    insured_id: str
    schedule_id: int
    country: str
    status: str = "pending"
    created_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def accept_country_iso(cls, data: Any) -> Any:
        """Older publishers send ``countryISO``."""
        if isinstance(data, dict) and "country" not in data and "countryISO" in data:
            data = {**data, "country": data["countryISO"]}
        return data

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> "CreationMessage":
        return cls(
            appointment_id=appointment.id,
            insured_id=appointment.insured_id.value,
            schedule_id=appointment.schedule_id,
            country=appointment.country.code,
            status=appointment.status.value,
            created_at=appointment.created_at,
        )


class CompletionEvent(MessageModel):
    """Emitted once per successful country-side persist."""

    event_id: str | None = None
    occurred_on: datetime | None = None
    appointment_id: str
    insured_id: str | None = None
    schedule_id: int | None = None
    country: str | None = None
    status: str = "completed"

    @model_validator(mode="before")
    @classmethod
    def accept_aggregate_id(cls, data: Any) -> Any:
        """Bus events identify the appointment as ``aggregateId``."""
        if isinstance(data, dict):
            if "appointmentId" not in data and "aggregateId" in data:
                data = {**data, "appointmentId": data["aggregateId"]}
            if "country" not in data and "countryISO" in data:
                data = {**data, "country": data["countryISO"]}
        return data


def _load_json(raw: str | bytes | dict[str, Any]) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    try:
        body = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Message body is not valid JSON: {e}", "body", ["json"]) from e
    if not isinstance(body, dict):
        raise ValidationError("Message body must be a JSON object", "body", ["object"])
    return body


def _validate(model: type[MessageModel], data: dict[str, Any]) -> Any:
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(f"Invalid message: {first.get('msg')}", field, ["schema"]) from e


def parse_creation_message(raw: str | bytes | dict[str, Any]) -> CreationMessage:
    """
    Parse a routed creation message.

    Topic fan-out wraps the original body as a JSON string under ``Message``;
    direct publishes carry the body itself.
    """
    body = _load_json(raw)
    if "Message" in body:
        body = _load_json(body["Message"])
    return _validate(CreationMessage, body)


def parse_completion_event(raw: str | bytes | dict[str, Any]) -> CompletionEvent:
    """Parse a completion event, unwrapping a bus envelope's ``detail``."""
    body = _load_json(raw)
    if "detail" in body:
        detail = body["detail"]
        body = _load_json(detail) if isinstance(detail, str | bytes) else detail
    return _validate(CompletionEvent, body)
