"""Queue worker command line interface."""

import argparse
import asyncio
import signal
from collections.abc import Sequence

import structlog

from medical_appointments.config import Settings, settings
from medical_appointments.core.redis_client import close_redis_connection, get_redis_client
from medical_appointments.database import country_engines, dispose_engines, engine
from medical_appointments.domain.values import COUNTRY_CONFIGS, CountryCode
from medical_appointments.messaging.broker import StreamBroker
from medical_appointments.messaging.event_bus import RedisEventBus
from medical_appointments.middleware.logging import configure_logging
from medical_appointments.services.confirmation_service import ConfirmationService
from medical_appointments.services.processor_service import CountryProcessor
from medical_appointments.stores.country_store import SqlCountryStore
from medical_appointments.stores.primary_store import SqlPrimaryStore
from medical_appointments.worker import QueueWorker

logger = structlog.get_logger(__name__)

CONFIRMATION = "confirmation"
QUEUE_CHOICES = tuple(code.value.lower() for code in CountryCode) + (CONFIRMATION,)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="medical-appointments-worker",
        description="Consume one appointment pipeline queue",
    )
    parser.add_argument(
        "--queue",
        choices=QUEUE_CHOICES,
        required=True,
        help="Country queue to process (pe, cl) or the confirmation queue",
    )
    parser.add_argument("--batch-size", type=int, help="Override WORKER_BATCH_SIZE")
    parser.add_argument("--consumer-name", help="Override CONSUMER_NAME")
    return parser


def build_worker(
    queue: str,
    broker: StreamBroker,
    config: Settings,
    batch_size: int | None = None,
    consumer_name: str | None = None,
) -> QueueWorker:
    """
    Assemble the stage and worker for a queue.

    Args:
        queue: ``pe``, ``cl`` or ``confirmation``
        broker: Stream broker shared by the worker and the stage
        config: Application settings
        batch_size: Optional override of the configured batch size
        consumer_name: Optional override of the configured consumer name

    Returns:
        A worker ready to ``run()``
    """
    options = {
        "group": config.consumer_group,
        "consumer": consumer_name or config.consumer_name,
        "batch_size": batch_size or config.worker_batch_size,
        "block_ms": config.worker_block_ms,
        "poll_interval_ms": config.worker_poll_interval_ms,
        "claim_idle_ms": config.claim_idle_ms,
        "max_delivery_attempts": config.max_delivery_attempts,
    }

    if queue == CONFIRMATION:
        confirmation = ConfirmationService(
            SqlPrimaryStore(engine),
            guard_enabled=config.confirmation_guard_enabled,
            concurrency=config.worker_concurrency,
        )
        return QueueWorker(
            broker,
            config.confirmation_queue_name,
            handler=confirmation.process_batch,
            **options,
        )

    country = CountryCode(queue.upper())
    event_bus = RedisEventBus(
        broker,
        config.confirmation_queue_name,
        source=config.event_source,
        bus_name=config.event_bus_name,
    )
    processor = CountryProcessor(
        country.value,
        SqlCountryStore(country.value, country_engines[country.value]),
        event_bus,
        concurrency=config.worker_concurrency,
    )
    return QueueWorker(
        broker,
        COUNTRY_CONFIGS[country].queue_name,
        handler=processor.process_batch,
        on_dead_letter=processor.on_dead_letter,
        **options,
    )


async def _run(args: argparse.Namespace) -> None:
    broker = StreamBroker(
        get_redis_client(),
        max_len=settings.stream_max_length,
        dead_letter_suffix=settings.dead_letter_suffix,
    )
    worker = build_worker(
        args.queue,
        broker,
        settings,
        batch_size=args.batch_size,
        consumer_name=args.consumer_name,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, worker.stop)

    try:
        await worker.run()
    finally:
        await dispose_engines()
        await close_redis_connection()
        logger.info("worker_resources_released", queue=args.queue)


def main(argv: Sequence[str] | None = None) -> int:
    """Console script entry point."""
    args = _build_parser().parse_args(argv)
    configure_logging()
    asyncio.run(_run(args))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
