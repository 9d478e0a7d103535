"""
Redis Streams broker.

Queues are streams read through a consumer group. A message stays pending
until it is acknowledged; pending messages idle for too long are claimed
again, which gives at-least-once delivery. Each queue ``<name>`` has a
dead-letter stream ``<name><dead_letter_suffix>``.
"""

from dataclasses import dataclass, field
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError, ResponseError

from medical_appointments.core.exceptions import InfrastructureError

logger = structlog.get_logger(__name__)

SERVICE_NAME = "redis-streams"
BODY_FIELD = "body"


@dataclass
class StreamMessage:
    """A message read from a queue stream."""

    message_id: str
    stream: str
    body: str
    attributes: dict[str, str] = field(default_factory=dict)
    delivery_count: int = 1


class StreamBroker:
    """Thin async wrapper around the Redis Streams commands the pipeline needs."""

    def __init__(
        self,
        redis_client: Redis,
        max_len: int = 10000,
        dead_letter_suffix: str = ":dlq",
    ):
        self.redis = redis_client
        self.max_len = max_len
        self.dead_letter_suffix = dead_letter_suffix

    def dead_letter_stream(self, stream: str) -> str:
        return f"{stream}{self.dead_letter_suffix}"

    async def publish(
        self,
        stream: str,
        body: str,
        attributes: dict[str, str] | None = None,
    ) -> str:
        """
        Append a message to a stream.

        Returns:
            The stream entry ID

        Raises:
            InfrastructureError: If Redis is unavailable
        """
        fields = {BODY_FIELD: body, **(attributes or {})}
        try:
            message_id = await self.redis.xadd(stream, fields, maxlen=self.max_len, approximate=True)
        except RedisError as e:
            logger.error("stream_publish_failed", stream=stream, error=str(e))
            raise InfrastructureError(SERVICE_NAME, f"Failed to publish to {stream}: {e}", e) from e
        return _decode(message_id)

    async def ensure_group(self, stream: str, group: str) -> bool:
        """Create the consumer group (and stream). Returns False if it already existed."""
        try:
            await self.redis.xgroup_create(stream, group, id="0", mkstream=True)
            return True
        except ResponseError as e:
            if "BUSYGROUP" in str(e):
                return False
            raise InfrastructureError(SERVICE_NAME, f"Failed to create group: {e}", e) from e
        except RedisError as e:
            raise InfrastructureError(SERVICE_NAME, f"Failed to create group: {e}", e) from e

    async def read_new(
        self,
        stream: str,
        group: str,
        consumer: str,
        count: int,
        block_ms: int | None = None,
    ) -> list[StreamMessage]:
        """Read messages never delivered to this group; ``block_ms=None`` returns at once."""
        try:
            response = await self.redis.xreadgroup(
                groupname=group,
                consumername=consumer,
                streams={stream: ">"},
                count=count,
                block=block_ms,
            )
        except RedisError as e:
            raise InfrastructureError(SERVICE_NAME, f"Failed to read {stream}: {e}", e) from e

        messages: list[StreamMessage] = []
        for _stream, entries in response or []:
            for message_id, fields in entries:
                message = _to_message(stream, message_id, fields)
                if message is not None:
                    messages.append(message)
        return messages

    async def claim_stale(
        self,
        stream: str,
        group: str,
        consumer: str,
        min_idle_ms: int,
        count: int,
    ) -> list[StreamMessage]:
        """Take over pending messages whose consumer never acknowledged them."""
        try:
            response = await self.redis.xautoclaim(
                stream, group, consumer, min_idle_ms, start_id="0-0", count=count
            )
        except RedisError as e:
            raise InfrastructureError(SERVICE_NAME, f"Failed to claim on {stream}: {e}", e) from e

        messages: list[StreamMessage] = []
        for message_id, fields in response[1]:
            message = _to_message(stream, message_id, fields)
            if message is None:
                # Trimmed from the stream while pending
                await self.ack(stream, group, _decode(message_id))
                continue
            message.delivery_count = await self.delivery_count(stream, group, message.message_id)
            messages.append(message)
        return messages

    async def delivery_count(self, stream: str, group: str, message_id: str) -> int:
        try:
            pending = await self.redis.xpending_range(
                stream, group, min=message_id, max=message_id, count=1
            )
        except RedisError as e:
            raise InfrastructureError(SERVICE_NAME, f"Failed to inspect {stream}: {e}", e) from e
        if not pending:
            return 1
        return int(pending[0]["times_delivered"])

    async def ack(self, stream: str, group: str, *message_ids: str) -> None:
        if not message_ids:
            return
        try:
            await self.redis.xack(stream, group, *message_ids)
        except RedisError as e:
            raise InfrastructureError(SERVICE_NAME, f"Failed to ack on {stream}: {e}", e) from e

    async def dead_letter(
        self,
        message: StreamMessage,
        group: str | None,
        reason: str,
    ) -> str:
        """Copy a message to its dead-letter stream, then acknowledge the original."""
        attributes = {
            **message.attributes,
            "source_stream": message.stream,
            "source_id": message.message_id,
            "reason": reason,
            "delivery_count": str(message.delivery_count),
        }
        dead_letter_id = await self.publish(
            self.dead_letter_stream(message.stream), message.body, attributes
        )
        if group is not None:
            await self.ack(message.stream, group, message.message_id)
        logger.warning(
            "message_dead_lettered",
            stream=message.stream,
            message_id=message.message_id,
            reason=reason,
            delivery_count=message.delivery_count,
        )
        return dead_letter_id


def _decode(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


def _to_message(stream: str, message_id: Any, fields: dict[Any, Any] | None) -> StreamMessage | None:
    if fields is None:
        return None
    decoded = {_decode(key): _decode(value) for key, value in fields.items()}
    body = decoded.pop(BODY_FIELD, "")
    return StreamMessage(
        message_id=_decode(message_id),
        stream=stream,
        body=body,
        attributes=decoded,
    )
