"""Tests for wire contracts and domain events."""

import json

import pytest

from medical_appointments.core.exceptions import ValidationError
from medical_appointments.domain.appointment import Appointment
from medical_appointments.domain.events import DomainEvent, EventKind
from medical_appointments.schemas.messages import (
    CreationMessage,
    parse_completion_event,
    parse_creation_message,
)


@pytest.fixture
def appointment() -> Appointment:
    return Appointment.create("00001", 100, "PE")


def test_creation_message_uses_camel_case(appointment: Appointment):
    wire = CreationMessage.from_appointment(appointment).to_wire()

    assert wire["appointmentId"] == appointment.id
    assert wire["insuredId"] == "00001"
    assert wire["scheduleId"] == 100
    assert wire["country"] == "PE"
    assert wire["status"] == "pending"
    assert wire["createdAt"].startswith(str(appointment.created_at.year))


def test_parse_creation_message_direct_body(appointment: Appointment):
    body = json.dumps(CreationMessage.from_appointment(appointment).to_wire())

    message = parse_creation_message(body)

    assert message.appointment_id == appointment.id
    assert message.created_at == appointment.created_at


def test_parse_creation_message_unwraps_notification(appointment: Appointment):
    inner = json.dumps(CreationMessage.from_appointment(appointment).to_wire())
    body = json.dumps({"Type": "Notification", "Message": inner})

    message = parse_creation_message(body)

    assert message.country == "PE"
    assert message.insured_id == "00001"


def test_parse_creation_message_accepts_country_iso():
    message = parse_creation_message(
        {"appointmentId": "x", "insuredId": "00001", "scheduleId": 5, "countryISO": "CL"}
    )
    assert message.country == "CL"
    assert message.created_at is None


@pytest.mark.parametrize(
    ("raw", "field", "constraint"),
    [
        ("not json", "body", "json"),
        ("[1, 2]", "body", "object"),
        ('{"insuredId": "00001"}', "appointmentId", "schema"),
    ],
)
def test_parse_creation_message_rejects_malformed(raw: str, field: str, constraint: str):
    with pytest.raises(ValidationError) as exc_info:
        parse_creation_message(raw)
    assert exc_info.value.field == field
    assert exc_info.value.constraints == [constraint]


def test_domain_event_detail(appointment: Appointment):
    event = DomainEvent.for_appointment(EventKind.COMPLETED, appointment)
    detail = event.to_detail()

    assert event.detail_type == "appointment.completed"
    assert detail["appointmentId"] == appointment.id
    assert detail["aggregateId"] == appointment.id
    assert detail["status"] == "completed"
    assert detail["country"] == "PE"
    assert detail["eventId"] == event.event_id


def test_parse_completion_event_from_envelope(appointment: Appointment):
    event = DomainEvent.for_appointment(EventKind.COMPLETED, appointment)
    body = json.dumps({"detail-type": event.detail_type, "detail": event.to_detail()})

    parsed = parse_completion_event(body)

    assert parsed.appointment_id == appointment.id
    assert parsed.status == "completed"
    assert parsed.schedule_id == 100
    assert parsed.occurred_on == event.occurred_on


def test_parse_completion_event_direct_and_string_detail():
    direct = parse_completion_event('{"aggregateId": "abc"}')
    wrapped = parse_completion_event({"detail": json.dumps({"appointmentId": "abc"})})

    assert direct.appointment_id == "abc"
    assert direct.status == "completed"
    assert wrapped.appointment_id == "abc"


def test_parse_completion_event_requires_appointment_id():
    with pytest.raises(ValidationError) as exc_info:
        parse_completion_event({"detail": {"status": "completed"}})
    assert exc_info.value.field == "appointmentId"
