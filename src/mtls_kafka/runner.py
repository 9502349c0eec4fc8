"""
Role runners.

- run_consumer: subscribe, then poll/process/commit until a stop signal
- run_producer: publish one batch, await every outcome, then return
"""

import asyncio
import signal
from collections.abc import Iterator
from contextlib import contextmanager

import aiokafka
import structlog

from mtls_kafka.connectors.kafka.batch import BatchResult, OutboundRecord
from mtls_kafka.connectors.kafka.config import ConsumerConfig, ProducerConfig
from mtls_kafka.connectors.kafka.consumer import AsyncKafkaConsumer, ConsumerStats
from mtls_kafka.connectors.kafka.listener import LoggingRebalanceListener, RebalanceListener
from mtls_kafka.connectors.kafka.producer import AsyncKafkaProducer

logger = structlog.get_logger()

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@contextmanager
def stop_on_signals(stop_event: asyncio.Event) -> Iterator[None]:
    """Set ``stop_event`` on SIGINT/SIGTERM while the block runs."""
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []

    def _request_stop(sig: signal.Signals) -> None:
        logger.info("shutdown_requested", signal=sig.name)
        stop_event.set()

    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, _request_stop, sig)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # No signal support (e.g. non-main thread); stop_event still works.
            logger.debug("signal_handler_unavailable", signal=sig.name)

    try:
        yield
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


async def run_consumer(
    config: ConsumerConfig,
    listener: RebalanceListener | None = None,
    stop_event: asyncio.Event | None = None,
    handle_signals: bool = True,
) -> ConsumerStats:
    """
    Run the consumer loop until ``stop_event`` is set or a signal arrives.

    Raises:
        ConnectError: If the consumer cannot connect or subscribe.
    """
    stop_event = stop_event or asyncio.Event()
    consumer = AsyncKafkaConsumer(config, listener=listener or LoggingRebalanceListener())

    logger.info("aiokafka_version", version=aiokafka.__version__)

    try:
        await consumer.subscribe()
    except Exception:
        await consumer.disconnect()
        raise

    if handle_signals:
        with stop_on_signals(stop_event):
            return await consumer.run(stop_event)
    return await consumer.run(stop_event)


async def run_producer(
    config: ProducerConfig,
    topic: str,
    records: list[OutboundRecord],
    queue_timeout_ms: int = 0,
) -> BatchResult:
    """
    Publish one batch and return its outcomes.

    Raises:
        ConnectError: If the producer cannot connect.
    """
    logger.info("aiokafka_version", version=aiokafka.__version__)

    async with AsyncKafkaProducer(config) as producer:
        return await producer.publish_batch(topic, records, queue_timeout_ms=queue_timeout_ms)
