"""
Inbound record model and the per-record rendering used by the consumer.

Decoding is lenient: a key or payload that is not valid UTF-8 is rendered
as an empty string and reported as a DecodeError, it never stops the loop.
"""

from dataclasses import dataclass

from aiokafka.structs import ConsumerRecord

from mtls_kafka.core.exceptions import DecodeError

Header = tuple[str, bytes | None]


@dataclass(frozen=True)
class InboundRecord:
    """A record received from a subscribed topic."""

    topic: str
    partition: int
    offset: int
    key: bytes | None = None
    payload: bytes | None = None
    headers: tuple[Header, ...] = ()
    timestamp: int | None = None
    timestamp_type: int | None = None

    @classmethod
    def from_record(cls, record: ConsumerRecord) -> "InboundRecord":
        """Create from aiokafka ConsumerRecord."""
        return cls(
            topic=record.topic,
            partition=record.partition,
            offset=record.offset,
            key=record.key,
            payload=record.value,
            headers=tuple(record.headers) if record.headers else (),
            timestamp=record.timestamp,
            timestamp_type=record.timestamp_type,
        )


@dataclass(frozen=True)
class DecodedRecord:
    """Text view of an InboundRecord, ready to be logged."""

    record: InboundRecord
    key: str
    payload: str
    headers: str
    errors: tuple[DecodeError, ...] = ()

    def describe(self) -> str:
        """Single human-readable line for the record."""
        return (
            f"key='{self.key}' payload='{self.payload}', "
            f"topic={self.record.topic} partition={self.record.partition}, "
            f"offset={self.record.offset} timestamp={self.record.timestamp} "
            f"headers=[{self.headers}]"
        )


def decode_text(value: bytes | None, field: str = "payload") -> str:
    """
    Decode an optional byte field as UTF-8.

    Returns:
        The decoded text, or ``""`` when the field is absent.

    Raises:
        DecodeError: If the bytes are not valid UTF-8.
    """
    if value is None:
        return ""
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(
            f"Error while deserializing message {field}: {e}",
            field=field,
        ) from e


def render_headers(headers: tuple[Header, ...] | list[Header]) -> str:
    """Render headers as ``0:"name"=>"value", 1:"name"=>"value"``."""
    return ", ".join(
        f'{i}:"{name}"=>"{value.decode("utf-8", errors="replace") if value is not None else ""}"'
        for i, (name, value) in enumerate(headers)
    )


def decode_record(record: InboundRecord) -> DecodedRecord:
    """Decode key, payload and headers of a record, collecting decode failures."""
    errors: list[DecodeError] = []

    try:
        payload = decode_text(record.payload, "payload")
    except DecodeError as e:
        errors.append(e)
        payload = ""

    try:
        key = decode_text(record.key, "key")
    except DecodeError as e:
        errors.append(e)
        key = ""

    return DecodedRecord(
        record=record,
        key=key,
        payload=payload,
        headers=render_headers(record.headers),
        errors=tuple(errors),
    )
