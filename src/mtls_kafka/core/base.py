"""
Connection lifecycle shared by the consumer and the producer.

A connector owns exactly one client. ``connect`` and ``disconnect`` are
idempotent and serialized, so a signal-triggered shutdown racing a normal
one releases the client once.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Self

import structlog

logger = structlog.get_logger()


class ConnectorState(Enum):
    """Connection state of a connector."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    ERROR = "error"


@dataclass
class ConnectorMetadata:
    connector_type: str
    client_id: str
    created_at: datetime = field(default_factory=datetime.now)
    connected_at: datetime | None = None
    connect_attempts: int = 0


class AbstractConnector(ABC):
    """
    Base for connectors that wrap a single broker client.

    Subclasses start their client in ``_do_connect`` and release it in
    ``_do_disconnect``. A failure in either leaves the connector in
    ``ERROR`` with the exception kept in ``last_error``; ``disconnect`` is
    still allowed from ``ERROR`` so partially started clients get closed.
    """

    def __init__(self, connector_type: str, client_id: str) -> None:
        self._state = ConnectorState.DISCONNECTED
        self._metadata = ConnectorMetadata(connector_type=connector_type, client_id=client_id)
        self._error: Exception | None = None
        self._lifecycle_lock = asyncio.Lock()

    @property
    def state(self) -> ConnectorState:
        return self._state

    @property
    def metadata(self) -> ConnectorMetadata:
        return self._metadata

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectorState.CONNECTED

    @property
    def last_error(self) -> Exception | None:
        """Exception from the last failed connect or disconnect."""
        return self._error

    def _transition(self, state: ConnectorState) -> None:
        logger.debug(
            "connector_state_changed",
            connector=self._metadata.connector_type,
            previous=self._state.value,
            current=state.value,
        )
        self._state = state

    async def connect(self) -> None:
        """
        Start the client unless it is already running.

        Raises:
            ConnectError: If the brokers cannot be reached or TLS fails.
        """
        async with self._lifecycle_lock:
            if self._state is ConnectorState.CONNECTED:
                return

            self._transition(ConnectorState.CONNECTING)
            self._metadata.connect_attempts += 1
            self._error = None

            try:
                await self._do_connect()
            except Exception as e:
                self._error = e
                self._transition(ConnectorState.ERROR)
                raise

            self._metadata.connected_at = datetime.now()
            self._transition(ConnectorState.CONNECTED)

    async def disconnect(self) -> None:
        """Release the client. A no-op when nothing was started."""
        async with self._lifecycle_lock:
            if self._state is ConnectorState.DISCONNECTED:
                return

            self._transition(ConnectorState.DISCONNECTING)
            try:
                await self._do_disconnect()
            except Exception as e:
                self._error = e
                self._transition(ConnectorState.ERROR)
                raise

            self._transition(ConnectorState.DISCONNECTED)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.disconnect()

    @abstractmethod
    async def _do_connect(self) -> None:
        """Start the client. Raises ConnectError on failure."""

    @abstractmethod
    async def _do_disconnect(self) -> None:
        """Stop the client, flushing whatever it still owes the brokers."""
