"""
Kafka configuration models.

Provides immutable, type-safe configuration for broker connections secured
by mutual TLS, plus the consumer- and producer-specific settings layered on
top. Invalid settings fail at construction with ConfigurationError, before
any network activity.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
    model_validator,
)

from mtls_kafka.core.exceptions import ConfigurationError


class SecurityMode(str, Enum):
    """Transport security modes."""

    PLAINTEXT = "PLAINTEXT"
    MUTUAL_TLS = "MUTUAL_TLS"

    @property
    def protocol(self) -> str:
        """Kafka security protocol name for this mode."""
        return "SSL" if self is SecurityMode.MUTUAL_TLS else "PLAINTEXT"


class KafkaConfig(BaseModel):
    """
    Connection configuration shared by consumers and producers.

    Immutable once constructed.
    """

    model_config = ConfigDict(frozen=True)

    brokers: list[str] = Field(description="Ordered list of host:port broker addresses")
    security_mode: SecurityMode = Field(
        default=SecurityMode.MUTUAL_TLS,
        description="Transport security mode",
    )

    # TLS material
    ca_path: Path | None = Field(default=None, description="Path to CA certificate file")
    key_path: Path | None = Field(default=None, description="Path to client private key file")
    cert_path: Path | None = Field(default=None, description="Path to client certificate file")
    key_password: SecretStr | None = Field(default=None, description="Password for private key")
    verify_server_cert: bool = Field(default=True, description="Verify the broker certificate")

    # Client settings
    client_id: str = Field(default="mtls-kafka", description="Client identifier")
    request_timeout_ms: int = Field(
        default=30000,
        gt=0,
        description="Request timeout in milliseconds",
    )

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid {type(self).__name__}: {_first_error(e)}",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e

    @field_validator("brokers", mode="before")
    @classmethod
    def split_brokers(cls, v: Any) -> Any:
        """Accept the comma-delimited ``host1:port,host2:port`` form."""
        if isinstance(v, str):
            return [b.strip() for b in v.split(",") if b.strip()]
        return v

    @field_validator("brokers")
    @classmethod
    def validate_brokers(cls, v: list[str]) -> list[str]:
        """Validate broker list format."""
        if not v:
            raise ValueError("broker list cannot be empty")
        for broker in v:
            host, sep, port = broker.strip().rpartition(":")
            if not sep or not host or not port.isdigit():
                raise ValueError(f"broker must be host:port, got {broker!r}")
        return [b.strip() for b in v]

    @model_validator(mode="after")
    def validate_tls_material(self) -> "KafkaConfig":
        """TLS files must exist and be readable before any connection attempt."""
        if self.security_mode is not SecurityMode.MUTUAL_TLS:
            return self

        for name in ("ca_path", "key_path", "cert_path"):
            path = getattr(self, name)
            if path is None:
                raise ValueError(f"{name} is required for mutual TLS")
            if not path.is_file():
                raise ValueError(f"{name} does not exist or is not a file: {path}")
            if not os.access(path, os.R_OK):
                raise ValueError(f"{name} is not readable: {path}")
        return self

    @property
    def bootstrap_servers(self) -> str:
        """Brokers in the comma-delimited form expected by the client."""
        return ",".join(self.brokers)

    def to_aiokafka_config(self) -> dict[str, Any]:
        """
        Convert to aiokafka connection options.

        TLS settings are supplied separately by the auth handler.
        """
        return {
            "bootstrap_servers": self.bootstrap_servers,
            "client_id": self.client_id,
            "request_timeout_ms": self.request_timeout_ms,
        }


class ConsumerConfig(KafkaConfig):
    """Kafka consumer configuration."""

    group_id: str = Field(description="Consumer group ID")
    topics: list[str] = Field(description="Topics to subscribe to")

    session_timeout_ms: int = Field(default=6000, gt=0, description="Session timeout")
    auto_commit: bool = Field(
        default=True,
        description="Client-side periodic commit; processed records are always committed explicitly",
    )
    partition_eof_enabled: bool = Field(
        default=False,
        description="Log when a partition has been read up to its high-water mark",
    )
    auto_offset_reset: str = Field(
        default="earliest",
        description="Where to start reading: earliest, latest, none",
    )
    poll_timeout_ms: int = Field(default=1000, gt=0, description="Poll interval timeout")
    shutdown_timeout_ms: int = Field(
        default=5000,
        gt=0,
        description="How long shutdown waits for pending commits before abandoning them",
    )

    @field_validator("group_id")
    @classmethod
    def validate_group_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("group_id cannot be empty")
        return v.strip()

    @field_validator("topics", mode="before")
    @classmethod
    def normalize_topics(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.split(",")
        if isinstance(v, (set, frozenset)):
            v = sorted(v)
        return v

    @field_validator("topics")
    @classmethod
    def validate_topics(cls, v: list[str]) -> list[str]:
        topics = list(dict.fromkeys(t.strip() for t in v if t and t.strip()))
        if not topics:
            raise ValueError("topic set cannot be empty")
        return topics

    @field_validator("auto_offset_reset")
    @classmethod
    def validate_offset_reset(cls, v: str) -> str:
        if v not in ("earliest", "latest", "none"):
            raise ValueError(f"auto_offset_reset must be earliest, latest or none, got {v!r}")
        return v

    def to_aiokafka_config(self) -> dict[str, Any]:
        """Convert to aiokafka consumer configuration."""
        config = super().to_aiokafka_config()
        config.update({
            "group_id": self.group_id,
            "session_timeout_ms": self.session_timeout_ms,
            "heartbeat_interval_ms": max(self.session_timeout_ms // 3, 1),
            "enable_auto_commit": self.auto_commit,
            "auto_offset_reset": self.auto_offset_reset,
        })
        return config


class ProducerConfig(KafkaConfig):
    """Kafka producer configuration."""

    delivery_timeout_ms: int = Field(
        default=5000,
        gt=0,
        description="Time a record may wait for broker acknowledgment",
    )
    acks: str = Field(default="all", description="Acknowledgment mode: 0, 1, or 'all'")
    linger_ms: int = Field(default=0, ge=0, description="Time to wait for more records per batch")

    @field_validator("acks")
    @classmethod
    def validate_acks(cls, v: str) -> str:
        if v not in ("0", "1", "all"):
            raise ValueError(f"acks must be 0, 1 or all, got {v!r}")
        return v

    def to_aiokafka_config(self) -> dict[str, Any]:
        """Convert to aiokafka producer configuration."""
        config = super().to_aiokafka_config()
        config.update({
            "request_timeout_ms": self.delivery_timeout_ms,
            "acks": self.acks if self.acks == "all" else int(self.acks),
            "linger_ms": self.linger_ms,
        })
        return config


def _first_error(error: ValidationError) -> str:
    first = error.errors(include_url=False)[0]
    location = ".".join(str(part) for part in first["loc"]) or "config"
    return f"{location}: {first['msg']}"
