"""
Shared fixtures: TLS material on disk, configs and mocked aiokafka clients.
"""

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiokafka.structs import ConsumerRecord

from mtls_kafka.connectors.kafka.config import (
    ConsumerConfig,
    ProducerConfig,
    SecurityMode,
)


@pytest.fixture
def tls_files(tmp_path: Path) -> dict[str, Path]:
    """CA, key and certificate files (content is not a real PEM)."""
    paths = {
        "ca_path": tmp_path / "ca.pem",
        "key_path": tmp_path / "client-key.pem",
        "cert_path": tmp_path / "client.pem",
    }
    for path in paths.values():
        path.write_text("-----BEGIN CERTIFICATE-----\nnot-a-cert\n-----END CERTIFICATE-----\n")
    return paths


@pytest.fixture
def consumer_config() -> ConsumerConfig:
    """Plaintext consumer config for loop tests."""
    return ConsumerConfig(
        brokers=["localhost:9092"],
        security_mode=SecurityMode.PLAINTEXT,
        group_id="g1",
        topics=["t1"],
        poll_timeout_ms=50,
    )


@pytest.fixture
def producer_config() -> ProducerConfig:
    """Plaintext producer config for batch tests."""
    return ProducerConfig(
        brokers=["localhost:9092"],
        security_mode=SecurityMode.PLAINTEXT,
    )


@pytest.fixture
def tls_auth_handler() -> MagicMock:
    """Auth handler that skips building a real SSL context."""
    handler = MagicMock()
    handler.validate.return_value = None
    handler.to_aiokafka_config.return_value = {"security_protocol": "SSL"}
    return handler


def make_consumer_record(
    topic: str = "t1",
    partition: int = 0,
    offset: int = 0,
    key: bytes | None = b"k",
    value: bytes | None = b"hello",
    headers: list[tuple[str, bytes]] | None = None,
) -> ConsumerRecord:
    """Build an aiokafka ConsumerRecord."""
    return ConsumerRecord(
        topic=topic,
        partition=partition,
        offset=offset,
        timestamp=int(datetime.now(timezone.utc).timestamp() * 1000),
        timestamp_type=0,
        key=key,
        value=value,
        checksum=None,
        serialized_key_size=len(key) if key else -1,
        serialized_value_size=len(value) if value else -1,
        headers=headers or [],
    )


def make_aiokafka_consumer() -> MagicMock:
    """Mock AIOKafkaConsumer instance with async lifecycle methods."""
    client = MagicMock()
    client.start = AsyncMock()
    client.stop = AsyncMock()
    client.commit = AsyncMock(return_value=None)
    client.getone = AsyncMock()
    client.subscribe = MagicMock()
    client.highwater = MagicMock(return_value=None)
    return client


def feed_then_stop(client: MagicMock, items: list, stop) -> None:
    """
    Make ``client.getone`` return ``items`` in order, then call ``stop`` and
    time out. Exceptions in ``items`` are raised instead of returned.
    """
    queue = list(items)

    async def getone():
        if queue:
            item = queue.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item
        stop()
        raise asyncio.TimeoutError

    client.getone.side_effect = getone


def make_record_metadata(topic: str = "t1", partition: int = 0, offset: int = 0) -> SimpleNamespace:
    """Stand-in for aiokafka RecordMetadata."""
    return SimpleNamespace(topic=topic, partition=partition, offset=offset, timestamp=1700000000000)


def make_aiokafka_producer() -> MagicMock:
    """Mock AIOKafkaProducer instance with async lifecycle methods."""
    client = MagicMock()
    client.start = AsyncMock()
    client.stop = AsyncMock()
    client.send = AsyncMock()
    return client
