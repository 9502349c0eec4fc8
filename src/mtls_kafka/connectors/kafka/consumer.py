"""
Async Kafka consumer with a poll/process/commit loop.

Provides:
- Consumer group subscription over mutual TLS
- Lenient per-record decoding and structured logging
- Fire-and-forget offset commits reported to a listener
- Rebalance observation that never gates polling
- Cooperative shutdown that drains pending commits
"""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import structlog
from aiokafka import AIOKafkaConsumer, TopicPartition
from aiokafka.errors import KafkaError as AIOKafkaError

from mtls_kafka.connectors.kafka.auth import AuthHandler
from mtls_kafka.connectors.kafka.config import ConsumerConfig
from mtls_kafka.connectors.kafka.listener import (
    CommitEvent,
    ListenerAdapter,
    RebalanceListener,
)
from mtls_kafka.connectors.kafka.records import DecodedRecord, InboundRecord, decode_record
from mtls_kafka.core.base import AbstractConnector
from mtls_kafka.core.exceptions import (
    AuthenticationError,
    CommitError,
    ConfigurationError,
    ConnectError,
    PollError,
)

logger = structlog.get_logger()

# Pause after a failed poll so a dead broker does not spin the loop.
POLL_ERROR_BACKOFF_S = 0.1


class ConsumerState(Enum):
    """Lifecycle of the consumer loop."""

    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBED = "subscribed"
    POLLING = "polling"
    REBALANCING = "rebalancing"
    CLOSED = "closed"


@dataclass(frozen=True)
class Subscription:
    """Topics and group this consumer is subscribed with."""

    topics: tuple[str, ...]
    group_id: str


@dataclass
class ConsumerStats:
    """Statistics for consumer operations."""

    records_received: int = 0
    records_processed: int = 0
    decode_errors: int = 0
    poll_errors: int = 0
    commits_requested: int = 0
    commits_succeeded: int = 0
    commits_failed: int = 0
    rebalances: int = 0
    start_time: datetime = field(default_factory=datetime.now)
    last_record_time: datetime | None = None

    @property
    def records_per_second(self) -> float:
        elapsed = (datetime.now() - self.start_time).total_seconds()
        if elapsed == 0:
            return 0.0
        return self.records_processed / elapsed


class AsyncKafkaConsumer(AbstractConnector):
    """
    Consumer group member that logs and commits every record it receives.

    The loop suspends only while polling. Each record is decoded, logged and
    its offset committed in the background; commit results reach the
    listener's ``on_commit`` hook. Poll, decode and commit failures are
    logged and never stop the loop. Only connect/subscribe failures are
    fatal.

    Usage:
        config = ConsumerConfig(
            brokers=["broker-0:9093"],
            group_id="my-group",
            topics=["testing"],
            ca_path="tls/ca.pem",
            key_path="tls/client-key.pem",
            cert_path="tls/client.pem",
        )

        consumer = AsyncKafkaConsumer(config, listener=LoggingRebalanceListener())
        await consumer.subscribe()
        await consumer.run()  # until consumer.stop()
    """

    def __init__(
        self,
        config: ConsumerConfig,
        listener: RebalanceListener | None = None,
        auth_handler: AuthHandler | None = None,
    ) -> None:
        """
        Initialize the Kafka consumer.

        Args:
            config: Consumer configuration.
            listener: Rebalance/commit telemetry hooks (no-op by default).
            auth_handler: Authentication handler (created from config if not provided).
        """
        super().__init__("kafka_consumer", config.client_id)

        self._config = config
        self._auth_handler = auth_handler or AuthHandler.from_kafka_config(config)
        self._adapter = ListenerAdapter(
            listener or RebalanceListener(),
            on_revoked=self._enter_rebalance,
            on_assigned=self._leave_rebalance,
        )

        self._consumer: AIOKafkaConsumer | None = None
        self._consumer_state = ConsumerState.UNSUBSCRIBED
        self._subscription: Subscription | None = None
        self._pending_commits: set[asyncio.Task[Any]] = set()
        self._stop_event = asyncio.Event()
        self._stats = ConsumerStats()

    @property
    def config(self) -> ConsumerConfig:
        return self._config

    @property
    def consumer_state(self) -> ConsumerState:
        """Current loop state."""
        return self._consumer_state

    @property
    def subscription(self) -> Subscription | None:
        return self._subscription

    @property
    def stats(self) -> ConsumerStats:
        """Get consumer statistics."""
        return self._stats

    @property
    def pending_commits(self) -> int:
        """Commits issued but not yet acknowledged."""
        return len(self._pending_commits)

    async def _do_connect(self) -> None:
        """Start the client. Raises ConnectError (or AuthenticationError)."""
        try:
            self._auth_handler.validate()
        except AuthenticationError:
            self._consumer_state = ConsumerState.CLOSED
            raise

        config = self._config.to_aiokafka_config()
        config.update(self._auth_handler.to_aiokafka_config())

        logger.info(
            "kafka_consumer_connecting",
            bootstrap_servers=self._config.bootstrap_servers,
            group_id=self._config.group_id,
            security_protocol=self._config.security_mode.protocol,
        )

        consumer = AIOKafkaConsumer(**config)
        try:
            await consumer.start()
        except (AIOKafkaError, OSError) as e:
            await self._stop_quietly(consumer)
            self._consumer_state = ConsumerState.CLOSED
            raise ConnectError(
                f"Failed to connect consumer: {e}",
                operation="connect",
                details={"bootstrap_servers": self._config.bootstrap_servers},
            ) from e

        self._consumer = consumer
        self._stats = ConsumerStats()
        logger.info("kafka_consumer_connected", group_id=self._config.group_id)

    async def _do_disconnect(self) -> None:
        """Drain pending commits, then stop the client."""
        self._stop_event.set()
        await self.flush_commits(timeout=self._config.shutdown_timeout_ms / 1000)

        if self._consumer:
            logger.info(
                "kafka_consumer_disconnecting",
                group_id=self._config.group_id,
                records_processed=self._stats.records_processed,
            )
            await self._stop_quietly(self._consumer)
            self._consumer = None

        self._consumer_state = ConsumerState.CLOSED

    @staticmethod
    async def _stop_quietly(consumer: AIOKafkaConsumer) -> None:
        try:
            await consumer.stop()
        except Exception as e:
            logger.warning("kafka_consumer_disconnect_error", error=str(e))

    async def subscribe(
        self,
        topics: list[str] | None = None,
        group_id: str | None = None,
    ) -> Subscription:
        """
        Connect if needed and subscribe to topics under the configured group.

        Args:
            topics: Topics to subscribe to (defaults to the configured topics).
            group_id: Must match the configured group id when given.

        Returns:
            The active Subscription.

        Raises:
            ConfigurationError: If the topic set is empty or the group differs.
            ConnectError: If the brokers cannot be reached or subscription fails.
        """
        topic_list = list(dict.fromkeys(topics if topics is not None else self._config.topics))
        if not topic_list:
            raise ConfigurationError("topic set cannot be empty")
        if group_id is not None and group_id != self._config.group_id:
            raise ConfigurationError(
                f"group_id {group_id!r} does not match configured group {self._config.group_id!r}",
            )

        await self.connect()
        if not self._consumer:
            raise ConnectError("Consumer not connected", operation="subscribe")

        try:
            self._consumer.subscribe(topics=topic_list, listener=self._adapter)
        except (AIOKafkaError, ValueError, TypeError) as e:
            raise ConnectError(
                f"Can't subscribe to specified topics: {e}",
                operation="subscribe",
                details={"topics": topic_list},
            ) from e

        self._subscription = Subscription(tuple(topic_list), self._config.group_id)
        self._consumer_state = ConsumerState.SUBSCRIBED

        logger.info(
            "consumer_subscribed",
            topics=topic_list,
            group_id=self._config.group_id,
        )
        return self._subscription

    async def poll(self) -> InboundRecord | None:
        """
        Wait up to ``poll_timeout_ms`` for the next record.

        Returns:
            The record, or None on timeout or a (logged) poll error.
        """
        if not self._consumer or self._consumer_state in (
            ConsumerState.UNSUBSCRIBED,
            ConsumerState.CLOSED,
        ):
            raise ConnectError("Consumer not subscribed", operation="poll")

        if self._consumer_state is ConsumerState.SUBSCRIBED:
            self._consumer_state = ConsumerState.POLLING

        try:
            record = await asyncio.wait_for(
                self._consumer.getone(),
                timeout=self._config.poll_timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            return None
        except AIOKafkaError as e:
            error = PollError(f"Kafka error: {e}", operation="poll")
            self._stats.poll_errors += 1
            logger.warning("poll_error", error=str(error))
            await asyncio.sleep(POLL_ERROR_BACKOFF_S)
            return None

        self._stats.records_received += 1
        self._stats.last_record_time = datetime.now()
        return InboundRecord.from_record(record)

    async def consume(self, stop_event: asyncio.Event | None = None) -> AsyncIterator[InboundRecord]:
        """
        Yield records in poll order until stopped.

        Args:
            stop_event: Optional external cancellation signal.
        """
        while not self._should_stop(stop_event):
            record = await self.poll()
            if record is not None:
                yield record

    def process_record(self, record: InboundRecord) -> DecodedRecord:
        """
        Decode, log and commit one record.

        Decode failures are logged as warnings; the record is still logged
        and its offset still committed.
        """
        decoded = decode_record(record)

        for error in decoded.errors:
            self._stats.decode_errors += 1
            logger.warning(
                f"{error.field}_decode_failed",
                topic=record.topic,
                partition=record.partition,
                offset=record.offset,
                error=str(error),
            )

        logger.info(
            "record_consumed",
            key=decoded.key,
            payload=decoded.payload,
            topic=record.topic,
            partition=record.partition,
            offset=record.offset,
            timestamp=record.timestamp,
            headers=decoded.headers,
            line=decoded.describe(),
        )

        self.commit_async(record)
        self._stats.records_processed += 1

        if self._config.partition_eof_enabled:
            self._check_partition_eof(record)

        return decoded

    def commit_async(self, record: InboundRecord) -> asyncio.Task[Any]:
        """
        Commit ``record.offset + 1`` for the record's partition in the background.

        Returns immediately. The outcome is logged and passed to the
        listener; a failed commit is not retried.
        """
        if not self._consumer:
            raise ConnectError("Consumer not connected", operation="commit")

        tp = TopicPartition(record.topic, record.partition)
        next_offset = record.offset + 1

        task = asyncio.create_task(self._consumer.commit({tp: next_offset}))
        self._pending_commits.add(task)
        self._stats.commits_requested += 1
        task.add_done_callback(
            lambda t: self._on_commit_done(t, record.topic, record.partition, next_offset)
        )
        return task

    def _on_commit_done(
        self,
        task: asyncio.Task[Any],
        topic: str,
        partition: int,
        offset: int,
    ) -> None:
        self._pending_commits.discard(task)

        error: CommitError | None = None
        if task.cancelled():
            error = CommitError("Commit cancelled", topic, partition, offset)
        elif task.exception() is not None:
            error = CommitError(
                f"Commit failed: {task.exception()}",
                topic,
                partition,
                offset,
            )

        if error is None:
            self._stats.commits_succeeded += 1
        else:
            self._stats.commits_failed += 1
            logger.warning(
                "offset_commit_failed",
                topic=topic,
                partition=partition,
                offset=offset,
                error=str(error),
            )

        self._adapter.notify_commit(CommitEvent(((topic, partition, offset),), error))

    async def flush_commits(self, timeout: float | None = None) -> None:
        """
        Wait for every commit issued so far to complete.

        Commits still running after ``timeout`` seconds are cancelled and
        reported to the listener as failed.
        """
        if not self._pending_commits:
            return

        logger.debug("flushing_commits", pending=len(self._pending_commits))
        _, unfinished = await asyncio.wait(list(self._pending_commits), timeout=timeout)
        if not unfinished:
            return

        logger.warning("commit_flush_timed_out", abandoned=len(unfinished), timeout_s=timeout)
        for task in unfinished:
            task.cancel()
        await asyncio.gather(*unfinished, return_exceptions=True)

    def _check_partition_eof(self, record: InboundRecord) -> None:
        if not self._consumer:
            return
        highwater = self._consumer.highwater(TopicPartition(record.topic, record.partition))
        if highwater is not None and record.offset + 1 >= highwater:
            logger.info(
                "partition_eof",
                topic=record.topic,
                partition=record.partition,
                offset=record.offset,
            )

    async def run(self, stop_event: asyncio.Event | None = None) -> ConsumerStats:
        """
        Poll, process and commit until stopped, then release the connection.

        Subscribes first if needed. On stop, pending commits are flushed
        before the client is closed.

        Args:
            stop_event: Optional external cancellation signal.

        Returns:
            Consumer statistics.
        """
        if self._consumer_state is ConsumerState.UNSUBSCRIBED:
            await self.subscribe()

        try:
            async for record in self.consume(stop_event):
                self.process_record(record)
        finally:
            await self.disconnect()

        logger.info(
            "consumer_stopped",
            records_processed=self._stats.records_processed,
            commits_failed=self._stats.commits_failed,
        )
        return self._stats

    poll_and_process = run

    def stop(self) -> None:
        """Signal the loop to stop after the current poll."""
        self._stop_event.set()

    def _should_stop(self, stop_event: asyncio.Event | None) -> bool:
        return self._stop_event.is_set() or (stop_event is not None and stop_event.is_set())

    def _enter_rebalance(self) -> None:
        if self._consumer_state is not ConsumerState.CLOSED:
            self._consumer_state = ConsumerState.REBALANCING
            self._stats.rebalances += 1

    def _leave_rebalance(self) -> None:
        if self._consumer_state is ConsumerState.REBALANCING:
            self._consumer_state = ConsumerState.POLLING

    def get_stats(self) -> dict[str, Any]:
        """Get consumer statistics as dictionary."""
        return {
            "state": self._state.value,
            "consumer_state": self._consumer_state.value,
            "subscribed_topics": list(self._subscription.topics) if self._subscription else [],
            "records_received": self._stats.records_received,
            "records_processed": self._stats.records_processed,
            "decode_errors": self._stats.decode_errors,
            "poll_errors": self._stats.poll_errors,
            "commits_requested": self._stats.commits_requested,
            "commits_succeeded": self._stats.commits_succeeded,
            "commits_failed": self._stats.commits_failed,
            "records_per_second": self._stats.records_per_second,
        }
