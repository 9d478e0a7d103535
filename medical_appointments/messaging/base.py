"""Messaging interfaces consumed by the pipeline stages."""

from collections.abc import Sequence
from typing import Protocol

from medical_appointments.domain.events import DomainEvent
from medical_appointments.schemas.messages import CreationMessage


class Router(Protocol):
    """Delivers a creation message to the queue of its country."""

    async def publish(self, message: CreationMessage) -> str: ...


class EventBus(Protocol):
    """Publishes domain events for downstream stages."""

    async def publish(self, event: DomainEvent) -> str: ...

    async def publish_batch(self, events: Sequence[DomainEvent]) -> int: ...
