"""
Core module - Base connector, configuration, templating, logging and errors.
"""

from mtls_kafka.core.base import AbstractConnector, ConnectorState
from mtls_kafka.core.config import ConfigManager
from mtls_kafka.core.exceptions import (
    AuthenticationError,
    CommitError,
    ConfigurationError,
    ConnectError,
    ConnectorError,
    DecodeError,
    DeliveryError,
    KafkaError,
    MtlsKafkaError,
    PollError,
    TemplateError,
)
from mtls_kafka.core.logging import configure_logging
from mtls_kafka.core.templating import TemplateEngine

__all__ = [
    "AbstractConnector",
    "ConnectorState",
    "ConfigManager",
    "TemplateEngine",
    "configure_logging",
    "MtlsKafkaError",
    "ConfigurationError",
    "TemplateError",
    "DecodeError",
    "ConnectorError",
    "KafkaError",
    "ConnectError",
    "AuthenticationError",
    "PollError",
    "CommitError",
    "DeliveryError",
]
