"""
Queue worker.

Polls one queue stream through a consumer group, hands each batch to a stage
and acknowledges only the records the stage reports as successful. Records
left unacknowledged are claimed again once idle; after the configured number
of deliveries they are moved to the queue's dead-letter stream.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from medical_appointments.core.exceptions import InfrastructureError
from medical_appointments.messaging.broker import StreamBroker, StreamMessage
from medical_appointments.services.batch import BatchResult

logger = structlog.get_logger(__name__)

BatchHandler = Callable[[Sequence[StreamMessage]], Awaitable[BatchResult]]
DeadLetterHook = Callable[[StreamMessage, str], Awaitable[None]]

EXHAUSTED = "max_delivery_attempts_exceeded"


@dataclass
class WorkerStats:
    """Counters for one worker run."""

    batches: int = 0
    acknowledged: int = 0
    failed: int = 0
    dead_lettered: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "batches": self.batches,
            "acknowledged": self.acknowledged,
            "failed": self.failed,
            "dead_lettered": self.dead_lettered,
            "errors": self.errors,
        }


class QueueWorker:
    """Poll, process and acknowledge loop for a single queue."""

    def __init__(
        self,
        broker: StreamBroker,
        stream: str,
        group: str,
        consumer: str,
        handler: BatchHandler,
        on_dead_letter: DeadLetterHook | None = None,
        batch_size: int = 10,
        block_ms: int = 1000,
        poll_interval_ms: int = 2000,
        claim_idle_ms: int = 30000,
        max_delivery_attempts: int = 3,
    ):
        self.broker = broker
        self.stream = stream
        self.group = group
        self.consumer = consumer
        self.handler = handler
        self.on_dead_letter = on_dead_letter
        self.batch_size = batch_size
        self.block_ms = block_ms
        self.poll_interval_ms = poll_interval_ms
        self.claim_idle_ms = claim_idle_ms
        self.max_delivery_attempts = max_delivery_attempts
        self.stats = WorkerStats()
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return not self._stopping.is_set()

    def stop(self) -> None:
        """Ask the loop to exit after the current batch."""
        if self.running:
            logger.info("worker_stopping", stream=self.stream)
        self._stopping.set()

    async def _dead_letter(self, message: StreamMessage) -> None:
        # Hook first: if it fails the message stays pending and is claimed again
        if self.on_dead_letter is not None:
            await self.on_dead_letter(message, EXHAUSTED)
        await self.broker.dead_letter(message, self.group, EXHAUSTED)
        self.stats.dead_lettered += 1

    async def _claim_redeliveries(self) -> list[StreamMessage]:
        claimed = await self.broker.claim_stale(
            self.stream,
            self.group,
            self.consumer,
            min_idle_ms=self.claim_idle_ms,
            count=self.batch_size,
        )
        redeliveries: list[StreamMessage] = []
        for message in claimed:
            if message.delivery_count > self.max_delivery_attempts:
                await self._dead_letter(message)
            else:
                redeliveries.append(message)
        return redeliveries

    async def run_once(self) -> BatchResult | None:
        """
        Process one batch.

        Returns:
            The batch result, or None if nothing was delivered

        Raises:
            InfrastructureError: If Redis is unavailable
        """
        records = await self._claim_redeliveries()
        room = self.batch_size - len(records)
        if room > 0:
            records += await self.broker.read_new(
                self.stream,
                self.group,
                self.consumer,
                count=room,
                block_ms=None if records else self.block_ms,
            )
        if not records:
            return None

        result = await self.handler(records)
        await self.broker.ack(self.stream, self.group, *result.successful)

        self.stats.batches += 1
        self.stats.acknowledged += len(result.successful)
        self.stats.failed += result.failed
        return result

    async def _pause(self) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval_ms / 1000)
        except TimeoutError:
            pass

    async def run(self) -> WorkerStats:
        """Run until ``stop()`` is called."""
        await self.broker.ensure_group(self.stream, self.group)
        logger.info(
            "worker_started",
            stream=self.stream,
            group=self.group,
            consumer=self.consumer,
        )

        while self.running:
            try:
                await self.run_once()
            except InfrastructureError as e:
                self.stats.errors += 1
                logger.error("worker_iteration_failed", stream=self.stream, error=e.message)
                await self._pause()

        logger.info("worker_stopped", stream=self.stream, **self.stats.to_dict())
        return self.stats
