"""Tests for the Redis Streams broker, country router and event bus."""

import pytest
from fakeredis import FakeAsyncRedis

from medical_appointments.domain.appointment import Appointment
from medical_appointments.domain.events import DomainEvent, EventKind
from medical_appointments.messaging.broker import StreamBroker
from medical_appointments.messaging.event_bus import RedisEventBus
from medical_appointments.messaging.router import CountryRouter
from medical_appointments.schemas.messages import (
    CreationMessage,
    parse_completion_event,
    parse_creation_message,
)

GROUP = "test-group"
CONSUMER = "test-consumer"


@pytest.mark.asyncio
async def test_publish_read_and_ack(broker: StreamBroker, redis_client: FakeAsyncRedis):
    assert await broker.ensure_group("jobs", GROUP) is True
    assert await broker.ensure_group("jobs", GROUP) is False

    entry_id = await broker.publish("jobs", '{"a": 1}', {"country": "PE"})
    [message] = await broker.read_new("jobs", GROUP, CONSUMER, count=10)

    assert message.message_id == entry_id
    assert message.body == '{"a": 1}'
    assert message.attributes == {"country": "PE"}
    assert message.delivery_count == 1

    await broker.ack("jobs", GROUP, message.message_id)
    pending = await redis_client.xpending("jobs", GROUP)
    assert pending["pending"] == 0


@pytest.mark.asyncio
async def test_dead_letter_moves_message(broker: StreamBroker, redis_client: FakeAsyncRedis):
    await broker.ensure_group("jobs", GROUP)
    await broker.publish("jobs", "payload")
    [message] = await broker.read_new("jobs", GROUP, CONSUMER, count=1)
    message.delivery_count = 4

    await broker.dead_letter(message, GROUP, "max_delivery_attempts_exceeded")

    [(_, fields)] = await redis_client.xrange("jobs:dlq")
    assert fields["body"] == "payload"
    assert fields["reason"] == "max_delivery_attempts_exceeded"
    assert fields["source_id"] == message.message_id
    assert fields["delivery_count"] == "4"
    assert (await redis_client.xpending("jobs", GROUP))["pending"] == 0


@pytest.mark.asyncio
async def test_router_delivers_to_one_country_queue(
    broker: StreamBroker,
    redis_client: FakeAsyncRedis,
):
    router = CountryRouter(broker)
    message = CreationMessage.from_appointment(Appointment.create("00001", 100, "PE"))

    await router.publish(message)

    assert await redis_client.xlen("appointments-pe-queue") == 1
    assert await redis_client.exists("appointments-cl-queue") == 0

    [(_, fields)] = await redis_client.xrange("appointments-pe-queue")
    assert fields["country"] == "PE"
    assert fields["eventType"] == "appointment.created"
    parsed = parse_creation_message(fields["body"])
    assert parsed.appointment_id == message.appointment_id
    assert parsed.insured_id == "00001"


@pytest.mark.asyncio
async def test_router_dead_letters_unroutable_country(
    broker: StreamBroker,
    redis_client: FakeAsyncRedis,
):
    router = CountryRouter(broker)
    message = CreationMessage(
        appointment_id="x", insured_id="00001", schedule_id=1, country="AR"
    )

    await router.publish(message)

    assert router.route_for("AR") is None
    assert await redis_client.xlen("appointments-topic:dlq") == 1
    assert await redis_client.exists("appointments-pe-queue", "appointments-cl-queue") == 0


@pytest.mark.asyncio
async def test_event_bus_publish(broker: StreamBroker, redis_client: FakeAsyncRedis):
    bus = RedisEventBus(broker, "confirmations")
    appointment = Appointment.create("00001", 100, "CL")

    await bus.publish(DomainEvent.for_appointment(EventKind.COMPLETED, appointment))

    [(_, fields)] = await redis_client.xrange("confirmations")
    assert fields["detailType"] == "appointment.completed"
    event = parse_completion_event(fields["body"])
    assert event.appointment_id == appointment.id
    assert event.country == "CL"
    assert event.status == "completed"


@pytest.mark.asyncio
async def test_event_bus_publish_batch_in_chunks(
    broker: StreamBroker,
    redis_client: FakeAsyncRedis,
):
    bus = RedisEventBus(broker, "confirmations")
    events = [
        DomainEvent.for_appointment(EventKind.COMPLETED, Appointment.create("00001", i + 1, "PE"))
        for i in range(23)
    ]

    published = await bus.publish_batch(events)

    assert published == 23
    assert await redis_client.xlen("confirmations") == 23
