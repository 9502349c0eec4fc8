"""
Custom exceptions for the mtls-kafka library.

All exceptions inherit from MtlsKafkaError for easy catching.

Fatal at startup:
- ConfigurationError (bad settings, missing TLS material)
- ConnectError / AuthenticationError (brokers unreachable, TLS failure)

Recovered locally and only logged:
- PollError, DecodeError, CommitError, DeliveryError
"""

from typing import Any


class MtlsKafkaError(Exception):
    """Base exception for all mtls-kafka errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(MtlsKafkaError):
    """Raised when there's a configuration error."""

    def __init__(
        self,
        message: str,
        config_path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.config_path = config_path


class TemplateError(MtlsKafkaError):
    """Raised when template rendering fails."""

    def __init__(
        self,
        message: str,
        template_name: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.template_name = template_name


class DecodeError(MtlsKafkaError):
    """Raised when a record field is not valid UTF-8."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.field = field


class ConnectorError(MtlsKafkaError):
    """Raised when a connector operation fails."""

    def __init__(
        self,
        message: str,
        connector_type: str | None = None,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.connector_type = connector_type
        self.operation = operation


class KafkaError(ConnectorError):
    """Raised when a Kafka operation fails."""

    def __init__(
        self,
        message: str,
        topic: str | None = None,
        partition: int | None = None,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, "kafka", operation, details)
        self.topic = topic
        self.partition = partition


class ConnectError(KafkaError):
    """Raised when a client cannot be started or subscribed."""


class AuthenticationError(ConnectError):
    """Raised when TLS material cannot be turned into a secure session."""

    def __init__(
        self,
        message: str,
        auth_type: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, operation="authenticate", details=details)
        self.auth_type = auth_type


class PollError(KafkaError):
    """Raised when a poll against the brokers fails transiently."""


class CommitError(KafkaError):
    """Raised when the broker rejects or fails to acknowledge a commit."""

    def __init__(
        self,
        message: str,
        topic: str | None = None,
        partition: int | None = None,
        offset: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, topic, partition, "commit", details)
        self.offset = offset


class DeliveryError(KafkaError):
    """Raised when a produced record is not acknowledged by the brokers."""

    def __init__(
        self,
        message: str,
        topic: str | None = None,
        index: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, topic, None, "send", details)
        self.index = index
