"""Per-item independent processing of a delivered batch."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from medical_appointments.core.exceptions import AppException
from medical_appointments.messaging.broker import StreamMessage

logger = structlog.get_logger(__name__)


@dataclass
class ItemFailure:
    """A record that must not be acknowledged."""

    message_id: str
    code: str
    error: str


@dataclass
class BatchResult:
    """Outcome of one batch invocation."""

    successful: list[str] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_partial_batch_response(self) -> dict[str, Any]:
        """Item failures in the shape queue triggers expect for partial redelivery."""
        return {
            "batchItemFailures": [
                {"itemIdentifier": failure.message_id} for failure in self.failures
            ]
        }


async def process_records(
    records: Sequence[StreamMessage],
    handler: Callable[[StreamMessage], Awaitable[Any]],
    stage: str,
    concurrency: int | None = None,
) -> BatchResult:
    """
    Run ``handler`` on every record concurrently.

    A failing record never stops the others; it is reported in the result so
    the delivery mechanism redelivers it.

    Args:
        records: Delivered records
        handler: Coroutine applied to each record
        stage: Stage name bound to every log line
        concurrency: Maximum records in flight, unbounded if None
    """
    log = logger.bind(stage=stage)
    log.info("batch_started", size=len(records))

    semaphore = asyncio.Semaphore(concurrency) if concurrency else None

    async def run(record: StreamMessage) -> Any:
        if semaphore is None:
            return await handler(record)
        async with semaphore:
            return await handler(record)

    outcomes = await asyncio.gather(
        *(run(record) for record in records),
        return_exceptions=True,
    )

    result = BatchResult()
    for record, outcome in zip(records, outcomes, strict=True):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            code = outcome.code if isinstance(outcome, AppException) else "UNEXPECTED_ERROR"
            log.error(
                "batch_item_failed",
                message_id=record.message_id,
                code=code,
                error=str(outcome),
                exc_info=outcome,
            )
            result.failures.append(ItemFailure(record.message_id, code, str(outcome)))
        else:
            result.successful.append(record.message_id)

    log.info("batch_finished", successful=len(result.successful), failed=result.failed)
    return result
