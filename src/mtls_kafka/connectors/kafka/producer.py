"""
Async Kafka producer that pipelines a batch of sends.

Every record of a batch is handed to the client before any delivery is
awaited; outcomes are then collected in dispatch order, whatever order the
brokers acknowledge them in. A failed record never aborts its siblings.
"""

import asyncio
from typing import Any

import structlog
from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError as AIOKafkaError
from aiokafka.structs import RecordMetadata

from mtls_kafka.connectors.kafka.auth import AuthHandler
from mtls_kafka.connectors.kafka.batch import BatchResult, DeliveryOutcome, OutboundRecord
from mtls_kafka.connectors.kafka.config import ProducerConfig
from mtls_kafka.core.base import AbstractConnector, ConnectorState
from mtls_kafka.core.exceptions import ConnectError, DeliveryError, KafkaError

logger = structlog.get_logger()


class AsyncKafkaProducer(AbstractConnector):
    """
    Async Kafka producer with pipelined batch publishing.

    Usage:
        config = ProducerConfig(brokers=["broker-0:9093"], ca_path=..., key_path=..., cert_path=...)

        async with AsyncKafkaProducer(config) as producer:
            result = await producer.publish_batch("testing", build_demo_batch())
            for outcome in result:
                print(outcome.index, outcome.success, outcome.offset)
    """

    def __init__(
        self,
        config: ProducerConfig,
        auth_handler: AuthHandler | None = None,
    ) -> None:
        """
        Initialize the Kafka producer.

        Args:
            config: Producer configuration.
            auth_handler: Authentication handler (created from config if not provided).
        """
        super().__init__("kafka_producer", config.client_id)

        self._config = config
        self._auth_handler = auth_handler or AuthHandler.from_kafka_config(config)
        self._producer: AIOKafkaProducer | None = None

        # Statistics
        self._messages_sent = 0
        self._messages_failed = 0
        self._bytes_sent = 0

    @property
    def config(self) -> ProducerConfig:
        return self._config

    @property
    def messages_sent(self) -> int:
        """Total records acknowledged by the brokers."""
        return self._messages_sent

    @property
    def messages_failed(self) -> int:
        """Total records that failed to deliver."""
        return self._messages_failed

    @property
    def bytes_sent(self) -> int:
        """Total key and payload bytes acknowledged."""
        return self._bytes_sent

    async def _do_connect(self) -> None:
        """Start the client. Raises ConnectError (or AuthenticationError)."""
        self._auth_handler.validate()

        config = self._config.to_aiokafka_config()
        config.update(self._auth_handler.to_aiokafka_config())

        logger.info(
            "kafka_producer_connecting",
            bootstrap_servers=self._config.bootstrap_servers,
            security_protocol=self._config.security_mode.protocol,
            delivery_timeout_ms=self._config.delivery_timeout_ms,
        )

        producer = AIOKafkaProducer(**config)
        try:
            await producer.start()
        except (AIOKafkaError, OSError) as e:
            await self._stop_quietly(producer)
            raise ConnectError(
                f"Failed to connect to Kafka: {e}",
                operation="connect",
                details={"bootstrap_servers": self._config.bootstrap_servers},
            ) from e

        self._producer = producer
        logger.info("kafka_producer_connected")

    async def _do_disconnect(self) -> None:
        """Flush outstanding records and stop the client."""
        if self._producer:
            logger.info(
                "kafka_producer_disconnecting",
                messages_sent=self._messages_sent,
                messages_failed=self._messages_failed,
            )
            await self._stop_quietly(self._producer)
            self._producer = None

    @staticmethod
    async def _stop_quietly(producer: AIOKafkaProducer) -> None:
        try:
            await producer.stop()
        except Exception as e:
            logger.warning("kafka_producer_disconnect_error", error=str(e))

    async def publish_batch(
        self,
        topic: str,
        records: list[OutboundRecord],
        queue_timeout_ms: int = 0,
    ) -> BatchResult:
        """
        Publish records and wait for every delivery outcome.

        Every send is started at once, so records waiting on topic metadata
        or buffer space wait side by side rather than one after another. No
        acknowledgment is awaited until all of them are queued. The returned
        outcomes are index-aligned with ``records``.

        Args:
            topic: Destination topic (a record's own ``topic`` wins when set).
            records: Records to publish.
            queue_timeout_ms: Bound on queueing each record. 0 queues
                immediately and lets ``delivery_timeout_ms`` govern completion.

        Returns:
            BatchResult with one DeliveryOutcome per record.

        Raises:
            KafkaError: If the producer is not connected.
        """
        if not self._producer or self._state != ConnectorState.CONNECTED:
            raise KafkaError("Producer not connected", topic=topic, operation="publish_batch")

        result = BatchResult()
        # gather keeps dispatch order; tasks start in creation order.
        pending = await asyncio.gather(*(
            self._dispatch(index, record.topic or topic, record, queue_timeout_ms)
            for index, record in enumerate(records)
        ))

        for index, (record, future) in enumerate(zip(records, pending)):
            outcome = await self._collect(index, record.topic or topic, record, future)
            logger.info(
                "delivery_outcome",
                index=index,
                success=outcome.success,
                partition=outcome.partition,
                offset=outcome.offset,
                error=str(outcome.error) if outcome.error else None,
            )
            result.outcomes.append(outcome)

        result.finalize()

        logger.info(
            "batch_published",
            topic=topic,
            total=result.total,
            successful=result.successful,
            failed=result.failed,
            duration_ms=result.duration_ms,
        )
        return result

    async def _dispatch(
        self,
        index: int,
        topic: str,
        record: OutboundRecord,
        queue_timeout_ms: int,
    ) -> "asyncio.Future[RecordMetadata]":
        """Hand one record to the client and return its pending delivery."""
        if not self._producer:
            raise KafkaError("Producer not connected", topic=topic, operation="send")

        try:
            send = self._producer.send(
                topic,
                value=record.encoded_payload(),
                key=record.encoded_key(),
                headers=record.encoded_headers(),
            )
            if queue_timeout_ms > 0:
                future = await asyncio.wait_for(send, timeout=queue_timeout_ms / 1000)
            else:
                future = await send
        except (AIOKafkaError, asyncio.TimeoutError, ValueError, TypeError) as e:
            future = asyncio.get_running_loop().create_future()
            future.set_exception(e)

        future.add_done_callback(lambda _: logger.info("delivery_status_received", index=index))
        return future

    async def _collect(
        self,
        index: int,
        topic: str,
        record: OutboundRecord,
        future: "asyncio.Future[RecordMetadata]",
    ) -> DeliveryOutcome:
        """Await one delivery and convert it into an outcome."""
        try:
            metadata = await future
        except (AIOKafkaError, asyncio.TimeoutError, ValueError, TypeError) as e:
            self._messages_failed += 1
            return DeliveryOutcome(
                index=index,
                success=False,
                topic=topic,
                error=DeliveryError(
                    f"Delivery failed: {e!r}",
                    topic=topic,
                    index=index,
                ),
                record=record,
            )

        self._messages_sent += 1
        self._bytes_sent += len(record.encoded_payload()) + len(record.encoded_key())
        return DeliveryOutcome(
            index=index,
            success=True,
            topic=metadata.topic,
            partition=metadata.partition,
            offset=metadata.offset,
            timestamp_ms=metadata.timestamp,
            record=record,
        )

    def get_stats(self) -> dict[str, Any]:
        """Get producer statistics."""
        return {
            "state": self._state.value,
            "messages_sent": self._messages_sent,
            "messages_failed": self._messages_failed,
            "bytes_sent": self._bytes_sent,
            "connected_at": (
                self._metadata.connected_at.isoformat() if self._metadata.connected_at else None
            ),
        }
