"""
mtls-kafka - Kafka consumer and producer over mutual TLS.

This library provides:
- Immutable connection settings validated before any network activity
- A consumer group loop that logs every record and commits asynchronously
- Rebalance and commit telemetry hooks
- A producer that pipelines a batch and reports index-aligned outcomes
"""

from mtls_kafka.connectors.kafka import (
    AsyncKafkaConsumer,
    AsyncKafkaProducer,
    ConsumerConfig,
    KafkaConfig,
    ProducerConfig,
    SecurityMode,
)

__version__ = "0.1.0"
__all__ = [
    "AsyncKafkaConsumer",
    "AsyncKafkaProducer",
    "KafkaConfig",
    "ConsumerConfig",
    "ProducerConfig",
    "SecurityMode",
    "__version__",
]
