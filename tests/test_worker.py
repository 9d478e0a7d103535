"""Tests for the queue worker and its command line."""

import asyncio

import pytest

from medical_appointments.config import settings
from medical_appointments.consumer import _build_parser, build_worker
from medical_appointments.core.exceptions import InfrastructureError
from medical_appointments.messaging.broker import StreamMessage
from medical_appointments.services.batch import BatchResult, ItemFailure
from medical_appointments.worker import EXHAUSTED, QueueWorker
from tests.conftest import make_record


class FakeBroker:
    """Broker double that serves prepared messages."""

    def __init__(self, new=None, stale=None):
        self.new: list[StreamMessage] = list(new or [])
        self.stale: list[StreamMessage] = list(stale or [])
        self.acked: list[str] = []
        self.dead: list[tuple[str, str]] = []
        self.groups: list[tuple[str, str]] = []
        self.read_error: Exception | None = None

    async def ensure_group(self, stream, group):
        self.groups.append((stream, group))
        return True

    async def claim_stale(self, stream, group, consumer, min_idle_ms, count):
        claimed, self.stale = self.stale[:count], self.stale[count:]
        return claimed

    async def read_new(self, stream, group, consumer, count, block_ms=None):
        if self.read_error is not None:
            raise self.read_error
        delivered, self.new = self.new[:count], self.new[count:]
        return delivered

    async def ack(self, stream, group, *message_ids):
        self.acked.extend(message_ids)

    async def dead_letter(self, message, group, reason):
        self.dead.append((message.message_id, reason))
        return "0-1"


class RecordingHandler:
    """Batch handler that fails the given message IDs."""

    def __init__(self, failing: set[str] | None = None):
        self.failing = failing or set()
        self.batches: list[list[str]] = []

    async def __call__(self, records):
        ids = [record.message_id for record in records]
        self.batches.append(ids)
        return BatchResult(
            successful=[i for i in ids if i not in self.failing],
            failures=[ItemFailure(i, "INFRASTRUCTURE_ERROR", "down") for i in ids if i in self.failing],
        )


def _worker(broker: FakeBroker, handler, **kwargs) -> QueueWorker:
    return QueueWorker(broker, "jobs", "group", "consumer", handler, **kwargs)


@pytest.mark.asyncio
async def test_run_once_acks_only_successful_records():
    records = [make_record("a"), make_record("b"), make_record("c")]
    broker = FakeBroker(new=records)
    handler = RecordingHandler(failing={records[1].message_id})
    worker = _worker(broker, handler)

    result = await worker.run_once()

    assert result.failed == 1
    assert broker.acked == [records[0].message_id, records[2].message_id]
    assert worker.stats.acknowledged == 2
    assert worker.stats.failed == 1


@pytest.mark.asyncio
async def test_run_once_returns_none_when_idle():
    worker = _worker(FakeBroker(), RecordingHandler())
    assert await worker.run_once() is None


@pytest.mark.asyncio
async def test_redeliveries_are_processed_before_new_messages():
    stale = make_record("stale")
    stale.delivery_count = 2
    fresh = make_record("fresh")
    handler = RecordingHandler()
    worker = _worker(FakeBroker(new=[fresh], stale=[stale]), handler, batch_size=5)

    await worker.run_once()

    assert handler.batches == [[stale.message_id, fresh.message_id]]


@pytest.mark.asyncio
async def test_exhausted_message_is_dead_lettered():
    exhausted = make_record("poison")
    exhausted.delivery_count = 4
    broker = FakeBroker(stale=[exhausted])
    hooked: list[tuple[str, str]] = []

    async def on_dead_letter(message, reason):
        hooked.append((message.message_id, reason))

    handler = RecordingHandler()
    worker = _worker(broker, handler, on_dead_letter=on_dead_letter, max_delivery_attempts=3)

    assert await worker.run_once() is None

    assert hooked == [(exhausted.message_id, EXHAUSTED)]
    assert broker.dead == [(exhausted.message_id, EXHAUSTED)]
    assert handler.batches == []
    assert worker.stats.dead_lettered == 1


@pytest.mark.asyncio
async def test_message_stays_pending_when_dead_letter_hook_fails():
    exhausted = make_record("poison")
    exhausted.delivery_count = 4
    broker = FakeBroker(stale=[exhausted])

    async def on_dead_letter(message, reason):
        raise InfrastructureError("redis-streams", "bus down")

    worker = _worker(broker, RecordingHandler(), on_dead_letter=on_dead_letter)

    with pytest.raises(InfrastructureError):
        await worker.run_once()
    assert broker.dead == []


@pytest.mark.asyncio
async def test_run_until_stopped():
    broker = FakeBroker(new=[make_record("a")])
    handler = RecordingHandler()
    worker = _worker(broker, handler, poll_interval_ms=10)

    async def stop_after_first_batch(records):
        result = await handler(records)
        worker.stop()
        return result

    worker.handler = stop_after_first_batch
    stats = await asyncio.wait_for(worker.run(), timeout=5)

    assert broker.groups == [("jobs", "group")]
    assert stats.batches == 1
    assert not worker.running


@pytest.mark.asyncio
async def test_run_survives_infrastructure_errors():
    broker = FakeBroker()
    broker.read_error = InfrastructureError("redis-streams", "connection refused")
    worker = _worker(broker, RecordingHandler(), poll_interval_ms=10)

    task = asyncio.create_task(worker.run())
    await asyncio.sleep(0.05)
    worker.stop()
    stats = await asyncio.wait_for(task, timeout=5)

    assert stats.errors >= 1


def test_build_country_worker():
    worker = build_worker("pe", FakeBroker(), settings)

    assert worker.stream == "appointments-pe-queue"
    assert worker.on_dead_letter is not None
    assert worker.max_delivery_attempts == settings.max_delivery_attempts


def test_build_confirmation_worker():
    worker = build_worker("confirmation", FakeBroker(), settings, batch_size=3)

    assert worker.stream == settings.confirmation_queue_name
    assert worker.on_dead_letter is None
    assert worker.batch_size == 3


def test_cli_rejects_unknown_queue():
    parser = _build_parser()
    assert parser.parse_args(["--queue", "cl"]).queue == "cl"
    with pytest.raises(SystemExit):
        parser.parse_args(["--queue", "ar"])
