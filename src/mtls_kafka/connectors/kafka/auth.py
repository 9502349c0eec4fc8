"""
Kafka authentication handlers.

Supports:
- MUTUAL_TLS (client certificate + CA verification)
- PLAINTEXT (no encryption, local development only)
"""

import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from mtls_kafka.connectors.kafka.config import KafkaConfig, SecurityMode
from mtls_kafka.core.exceptions import AuthenticationError

logger = structlog.get_logger()


@dataclass(frozen=True)
class AuthConfig:
    """TLS material resolved from a KafkaConfig."""

    security_mode: SecurityMode = SecurityMode.PLAINTEXT
    ca_path: Path | None = None
    cert_path: Path | None = None
    key_path: Path | None = None
    key_password: str | None = None
    verify_server_cert: bool = True


class AuthHandler(ABC):
    """
    Abstract base class for authentication handlers.

    Each handler is responsible for:
    - Validating configuration
    - Building the SSL context if needed
    - Providing aiokafka-compatible configuration
    """

    def __init__(self, config: AuthConfig) -> None:
        self._config = config
        self._ssl_context: ssl.SSLContext | None = None

    @property
    def config(self) -> AuthConfig:
        """Get the authentication configuration."""
        return self._config

    @property
    def ssl_context(self) -> ssl.SSLContext | None:
        """Get the SSL context if configured."""
        return self._ssl_context

    @abstractmethod
    def validate(self) -> None:
        """
        Validate the authentication configuration.

        Raises:
            AuthenticationError: If configuration is invalid.
        """
        ...

    @abstractmethod
    def to_aiokafka_config(self) -> dict[str, Any]:
        """Return aiokafka security options."""
        ...

    @classmethod
    def from_kafka_config(cls, kafka_config: KafkaConfig) -> "AuthHandler":
        """
        Create the handler matching the config's security mode.

        Args:
            kafka_config: Kafka configuration.

        Returns:
            Appropriate AuthHandler subclass instance.
        """
        auth_config = AuthConfig(
            security_mode=kafka_config.security_mode,
            ca_path=kafka_config.ca_path,
            cert_path=kafka_config.cert_path,
            key_path=kafka_config.key_path,
            key_password=(
                kafka_config.key_password.get_secret_value()
                if kafka_config.key_password
                else None
            ),
            verify_server_cert=kafka_config.verify_server_cert,
        )

        if kafka_config.security_mode is SecurityMode.MUTUAL_TLS:
            return MutualTLSAuth(auth_config)
        return PlaintextAuth(auth_config)


class PlaintextAuth(AuthHandler):
    """Handler for PLAINTEXT connections (no authentication)."""

    def validate(self) -> None:
        logger.warning(
            "plaintext_auth",
            message="Using PLAINTEXT protocol - no encryption or authentication",
        )

    def to_aiokafka_config(self) -> dict[str, Any]:
        return {"security_protocol": "PLAINTEXT"}


class MutualTLSAuth(AuthHandler):
    """
    Handler for mutual TLS connections.

    Requires a CA certificate to verify the brokers and a client
    certificate/key pair to present to them.
    """

    def validate(self) -> None:
        """Validate TLS material and build the SSL context."""
        for label, path in (
            ("CA certificate", self._config.ca_path),
            ("Client certificate", self._config.cert_path),
            ("Client key", self._config.key_path),
        ):
            if path is None:
                raise AuthenticationError(
                    f"Mutual TLS requires a {label.lower()} file",
                    auth_type="mutual_tls",
                )
            if not path.is_file():
                raise AuthenticationError(
                    f"{label} file not found: {path}",
                    auth_type="mutual_tls",
                )

        self._ssl_context = self._build_ssl_context()

        logger.info(
            "mutual_tls_configured",
            cafile=str(self._config.ca_path),
            certfile=str(self._config.cert_path),
            verify_server_cert=self._config.verify_server_cert,
        )

    def _build_ssl_context(self) -> ssl.SSLContext:
        try:
            context = ssl.create_default_context(
                ssl.Purpose.SERVER_AUTH,
                cafile=str(self._config.ca_path),
            )
            context.load_cert_chain(
                certfile=str(self._config.cert_path),
                keyfile=str(self._config.key_path),
                password=self._config.key_password,
            )

            if not self._config.verify_server_cert:
                context.check_hostname = False
                context.verify_mode = ssl.CERT_NONE

            return context

        except (ssl.SSLError, OSError) as e:
            raise AuthenticationError(
                f"Failed to create SSL context: {e}",
                auth_type="mutual_tls",
            ) from e

    def to_aiokafka_config(self) -> dict[str, Any]:
        return {
            "security_protocol": "SSL",
            "ssl_context": self._ssl_context,
        }
