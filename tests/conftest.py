"""Shared fixtures: in-memory stores and messaging, SQLite engines, HTTP client."""

import json
from collections.abc import AsyncGenerator, Iterable, Sequence
from itertools import count

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from fakeredis import FakeAsyncRedis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from medical_appointments.core.exceptions import InfrastructureError
from medical_appointments.dependencies import get_appointment_service
from medical_appointments.domain.appointment import Appointment, utcnow
from medical_appointments.domain.events import DomainEvent
from medical_appointments.domain.status import AppointmentStatus
from medical_appointments.main import app
from medical_appointments.messaging.broker import StreamBroker, StreamMessage
from medical_appointments.models import country_metadata, metadata
from medical_appointments.schemas.messages import CreationMessage
from medical_appointments.services.appointment_service import AppointmentService

# Load environment variables from .env file
load_dotenv()

_ids = count(1)


def make_record(body: str | dict, stream: str = "test-queue") -> StreamMessage:
    """Wrap a body the way the broker delivers it."""
    if isinstance(body, dict):
        body = json.dumps(body)
    return StreamMessage(message_id=f"{next(_ids)}-0", stream=stream, body=body)


def creation_record(message: CreationMessage) -> StreamMessage:
    """Creation message wrapped in a topic notification."""
    return make_record(
        {"Type": "Notification", "Message": json.dumps(message.to_wire())},
        stream=f"appointments-{message.country.lower()}-queue",
    )


def completion_record(event: DomainEvent) -> StreamMessage:
    """Domain event wrapped in a bus envelope."""
    return make_record(
        {"detail-type": event.detail_type, "detail": event.to_detail()},
        stream="appointments-confirmation-queue",
    )


class InMemoryPrimaryStore:
    """Primary store keeping rows as persisted dicts."""

    def __init__(self) -> None:
        self.rows: dict[str, dict] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise InfrastructureError("primary-store", "primary store unavailable")

    async def save(self, appointment: Appointment) -> None:
        self._check()
        self.rows[appointment.id] = appointment.to_persistence()

    async def find_by_id(self, appointment_id: str) -> Appointment | None:
        self._check()
        row = self.rows.get(appointment_id)
        return Appointment.from_persistence(row) if row else None

    async def find_by_insured_id(self, insured_id: str) -> list[Appointment]:
        self._check()
        rows = [row for row in self.rows.values() if row["insured_id"] == insured_id]
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return [Appointment.from_persistence(row) for row in rows]

    async def update_status(
        self,
        appointment_id: str,
        status: AppointmentStatus,
        only_from: Iterable[AppointmentStatus] | None = None,
    ) -> bool:
        self._check()
        row = self.rows.get(appointment_id)
        if row is None:
            return False
        if only_from is not None and row["status"] not in {s.value for s in only_from}:
            return False
        row["status"] = status.value
        row["updated_at"] = utcnow()
        return True

    async def delete(self, appointment_id: str) -> bool:
        self._check()
        return self.rows.pop(appointment_id, None) is not None

    def status_of(self, appointment_id: str) -> str:
        return self.rows[appointment_id]["status"]


class InMemoryCountryStore:
    """Country store with upsert semantics; can fail a number of writes."""

    def __init__(self, country: str) -> None:
        self.country = country
        self.rows: dict[str, dict] = {}
        self.failures_left = 0
        self.writes = 0

    async def save(self, appointment: Appointment) -> None:
        if self.failures_left:
            self.failures_left -= 1
            raise InfrastructureError(f"country-store-{self.country}", "country store unavailable")
        self.writes += 1
        row = appointment.to_persistence()
        existing = self.rows.get(appointment.id)
        if existing is None:
            self.rows[appointment.id] = row
        elif existing["updated_at"] <= row["updated_at"]:
            existing.update(status=row["status"], updated_at=row["updated_at"])

    async def find_by_id(self, appointment_id: str) -> Appointment | None:
        row = self.rows.get(appointment_id)
        return Appointment.from_persistence(row) if row else None

    async def find_by_insured_id(self, insured_id: str) -> list[Appointment]:
        return [
            Appointment.from_persistence(row)
            for row in self.rows.values()
            if row["insured_id"] == insured_id
        ]

    async def health_check(self) -> bool:
        return True

    async def disconnect(self) -> None:
        return None


class RecordingRouter:
    """Router that keeps published messages per country."""

    def __init__(self) -> None:
        self.published: list[CreationMessage] = []
        self.error: Exception | None = None

    async def publish(self, message: CreationMessage) -> str:
        if self.error is not None:
            raise self.error
        self.published.append(message)
        return f"{len(self.published)}-0"

    def records_for(self, country: str) -> list[StreamMessage]:
        return [creation_record(m) for m in self.published if m.country == country]


class RecordingEventBus:
    """Event bus that keeps published events."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []
        self.error: Exception | None = None

    async def publish(self, event: DomainEvent) -> str:
        if self.error is not None:
            raise self.error
        self.events.append(event)
        return f"{len(self.events)}-0"

    async def publish_batch(self, events: Sequence[DomainEvent]) -> int:
        for event in events:
            await self.publish(event)
        return len(events)

    def records(self) -> list[StreamMessage]:
        return [completion_record(event) for event in self.events]


@pytest.fixture
def primary_store() -> InMemoryPrimaryStore:
    return InMemoryPrimaryStore()


@pytest.fixture
def router() -> RecordingRouter:
    return RecordingRouter()


@pytest.fixture
def event_bus() -> RecordingEventBus:
    return RecordingEventBus()


@pytest.fixture
def country_stores() -> dict[str, InMemoryCountryStore]:
    return {"PE": InMemoryCountryStore("PE"), "CL": InMemoryCountryStore("CL")}


@pytest.fixture
def appointment_service(
    primary_store: InMemoryPrimaryStore,
    router: RecordingRouter,
) -> AppointmentService:
    return AppointmentService(primary_store, router)


@pytest.fixture
def sample_appointment_data() -> dict:
    """Sample scheduling request."""
    return {"insuredId": "00001", "scheduleId": 100, "country": "PE"}


@pytest_asyncio.fixture
async def client(appointment_service: AppointmentService) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client backed by in-memory collaborators."""
    app.dependency_overrides[get_appointment_service] = lambda: appointment_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def _sqlite_engine(target_metadata) -> AsyncEngine:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(target_metadata.create_all)
    return engine


@pytest_asyncio.fixture
async def primary_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with the primary table."""
    engine = await _sqlite_engine(metadata)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def country_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with the country table."""
    engine = await _sqlite_engine(country_metadata)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def redis_client() -> AsyncGenerator[FakeAsyncRedis, None]:
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def broker(redis_client: FakeAsyncRedis) -> StreamBroker:
    return StreamBroker(redis_client)
