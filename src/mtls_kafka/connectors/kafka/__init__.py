"""
Kafka Connector module - Async consumer and producer over mutual TLS.
"""

from mtls_kafka.connectors.kafka.auth import AuthConfig, AuthHandler, MutualTLSAuth, PlaintextAuth
from mtls_kafka.connectors.kafka.batch import (
    BatchResult,
    DeliveryOutcome,
    OutboundRecord,
    build_demo_batch,
)
from mtls_kafka.connectors.kafka.config import (
    ConsumerConfig,
    KafkaConfig,
    ProducerConfig,
    SecurityMode,
)
from mtls_kafka.connectors.kafka.consumer import (
    AsyncKafkaConsumer,
    ConsumerState,
    ConsumerStats,
    Subscription,
)
from mtls_kafka.connectors.kafka.listener import (
    Assigned,
    CommitEvent,
    LoggingRebalanceListener,
    RebalanceEvent,
    RebalanceListener,
    Revoked,
)
from mtls_kafka.connectors.kafka.producer import AsyncKafkaProducer
from mtls_kafka.connectors.kafka.records import DecodedRecord, InboundRecord

__all__ = [
    "AsyncKafkaConsumer",
    "AsyncKafkaProducer",
    "ConsumerState",
    "ConsumerStats",
    "Subscription",
    "KafkaConfig",
    "ConsumerConfig",
    "ProducerConfig",
    "SecurityMode",
    "AuthHandler",
    "AuthConfig",
    "MutualTLSAuth",
    "PlaintextAuth",
    "InboundRecord",
    "DecodedRecord",
    "OutboundRecord",
    "DeliveryOutcome",
    "BatchResult",
    "build_demo_batch",
    "RebalanceListener",
    "LoggingRebalanceListener",
    "RebalanceEvent",
    "Assigned",
    "Revoked",
    "CommitEvent",
]
