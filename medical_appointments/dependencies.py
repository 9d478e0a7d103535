"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends
from redis.asyncio import Redis

from medical_appointments.config import settings
from medical_appointments.core.redis_client import get_redis_client
from medical_appointments.database import engine
from medical_appointments.messaging.broker import StreamBroker
from medical_appointments.messaging.router import CountryRouter
from medical_appointments.services.appointment_service import AppointmentService
from medical_appointments.stores.primary_store import SqlPrimaryStore


def get_primary_store() -> SqlPrimaryStore:
    """Primary store bound to the application engine."""
    return SqlPrimaryStore(engine)


def get_broker(redis_client: Annotated[Redis, Depends(get_redis_client)]) -> StreamBroker:
    """Stream broker on the shared Redis client."""
    return StreamBroker(
        redis_client,
        max_len=settings.stream_max_length,
        dead_letter_suffix=settings.dead_letter_suffix,
    )


def get_router(broker: Annotated[StreamBroker, Depends(get_broker)]) -> CountryRouter:
    """Country router publishing onto the per-country queues."""
    return CountryRouter(broker, topic_name=settings.topic_name)


def get_appointment_service(
    primary_store: Annotated[SqlPrimaryStore, Depends(get_primary_store)],
    router: Annotated[CountryRouter, Depends(get_router)],
) -> AppointmentService:
    """
    Assemble the appointment service.

    Tests override this dependency with in-memory collaborators.
    """
    return AppointmentService(primary_store, router)


# Type aliases for dependency injection
AppointmentServiceDep = Annotated[AppointmentService, Depends(get_appointment_service)]
RedisClient = Annotated[Redis, Depends(get_redis_client)]
