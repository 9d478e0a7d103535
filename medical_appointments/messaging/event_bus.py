"""Domain event bus on Redis Streams."""

import json
from collections.abc import Sequence

import structlog
from redis.exceptions import RedisError

from medical_appointments.core.exceptions import InfrastructureError
from medical_appointments.domain.events import DomainEvent
from medical_appointments.messaging.broker import BODY_FIELD, SERVICE_NAME, StreamBroker

logger = structlog.get_logger(__name__)

BATCH_SIZE = 10


class RedisEventBus:
    """Publishes domain events to the confirmation queue in a bus envelope."""

    def __init__(
        self,
        broker: StreamBroker,
        queue_name: str,
        source: str = "medical-appointments",
        bus_name: str = "appointments-bus",
    ):
        self.broker = broker
        self.queue_name = queue_name
        self.source = source
        self.bus_name = bus_name

    def _envelope(self, event: DomainEvent) -> str:
        return json.dumps(
            {
                "version": "0",
                "id": event.event_id,
                "detail-type": event.detail_type,
                "source": self.source,
                "event-bus-name": self.bus_name,
                "time": event.occurred_on.isoformat(),
                "detail": event.to_detail(),
            }
        )

    async def publish(self, event: DomainEvent) -> str:
        """
        Publish a single event.

        Raises:
            InfrastructureError: If Redis is unavailable
        """
        entry_id = await self.broker.publish(
            self.queue_name,
            self._envelope(event),
            {"detailType": event.detail_type},
        )
        logger.debug(
            "event_published",
            detail_type=event.detail_type,
            event_id=event.event_id,
            aggregate_id=event.aggregate_id,
        )
        return entry_id

    async def publish_batch(self, events: Sequence[DomainEvent]) -> int:
        """
        Publish events in chunks of ten.

        Entries that fail inside a chunk are logged and not retried.

        Returns:
            Number of events published

        Raises:
            InfrastructureError: If a whole chunk could not be sent
        """
        published = 0
        for start in range(0, len(events), BATCH_SIZE):
            chunk = events[start : start + BATCH_SIZE]
            pipe = self.broker.redis.pipeline(transaction=False)
            for event in chunk:
                pipe.xadd(
                    self.queue_name,
                    {BODY_FIELD: self._envelope(event), "detailType": event.detail_type},
                    maxlen=self.broker.max_len,
                    approximate=True,
                )
            try:
                results = await pipe.execute(raise_on_error=False)
            except RedisError as e:
                logger.error("event_batch_publish_failed", error=str(e), size=len(chunk))
                raise InfrastructureError(SERVICE_NAME, f"Failed to publish batch: {e}", e) from e

            failed = [
                event.event_id
                for event, result in zip(chunk, results, strict=True)
                if isinstance(result, Exception)
            ]
            if failed:
                logger.warning("event_batch_partial_failure", failed=len(failed), event_ids=failed)
            published += len(chunk) - len(failed)

        logger.debug("event_batch_published", total=len(events), published=published)
        return published
