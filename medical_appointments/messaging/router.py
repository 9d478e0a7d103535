"""Content-based routing of creation messages onto per-country queues."""

import json
from uuid import uuid4

import structlog

from medical_appointments.domain.appointment import utcnow
from medical_appointments.domain.values import COUNTRY_CONFIGS
from medical_appointments.messaging.broker import StreamBroker
from medical_appointments.schemas.messages import CreationMessage

logger = structlog.get_logger(__name__)

EVENT_TYPE = "appointment.created"


class CountryRouter:
    """
    Topic with one filtered subscription per country.

    The ``country`` attribute is matched exactly against the configured
    routes, so a message lands on at most one country queue. Messages with
    no matching route go to the topic's dead-letter stream.
    """

    def __init__(self, broker: StreamBroker, topic_name: str = "appointments-topic"):
        self.broker = broker
        self.topic_name = topic_name
        self.routes: dict[str, str] = {
            code.value: config.queue_name for code, config in COUNTRY_CONFIGS.items()
        }

    def route_for(self, country: str) -> str | None:
        """Queue name for an exact country code, or None."""
        return self.routes.get(country)

    def _envelope(self, message: CreationMessage) -> str:
        return json.dumps(
            {
                "Type": "Notification",
                "MessageId": str(uuid4()),
                "TopicArn": self.topic_name,
                "Message": json.dumps(message.to_wire()),
                "Timestamp": utcnow().isoformat(),
                "MessageAttributes": {
                    "country": {"Type": "String", "Value": message.country},
                    "eventType": {"Type": "String", "Value": EVENT_TYPE},
                },
            }
        )

    async def publish(self, message: CreationMessage) -> str:
        """
        Publish a creation message to its country queue.

        Returns:
            Stream entry ID of the delivered (or dead-lettered) message

        Raises:
            InfrastructureError: If Redis is unavailable
        """
        body = self._envelope(message)
        attributes = {"country": message.country, "eventType": EVENT_TYPE}
        queue = self.route_for(message.country)

        if queue is None:
            dead_letter = self.broker.dead_letter_stream(self.topic_name)
            entry_id = await self.broker.publish(
                dead_letter, body, {**attributes, "reason": "no_route"}
            )
            logger.warning(
                "message_unroutable",
                appointment_id=message.appointment_id,
                country=message.country,
                dead_letter_stream=dead_letter,
            )
            return entry_id

        entry_id = await self.broker.publish(queue, body, attributes)
        logger.debug(
            "message_routed",
            appointment_id=message.appointment_id,
            country=message.country,
            queue=queue,
            entry_id=entry_id,
        )
        return entry_id
