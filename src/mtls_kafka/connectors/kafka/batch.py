"""
Outbound records and delivery results for the producer.

Provides:
- OutboundRecord: a keyed, headered record to publish
- DeliveryOutcome: the acknowledgment (or failure) for one record
- BatchResult: index-aligned outcomes of one publish_batch call
- build_demo_batch: templated record generation
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import overload

from mtls_kafka.core.exceptions import DeliveryError
from mtls_kafka.core.templating import TemplateEngine

DEFAULT_HEADERS: tuple[tuple[str, str], ...] = (("header_key", "header_value"),)
DEFAULT_KEY_TEMPLATE = "Key {{ index }}"
DEFAULT_PAYLOAD_TEMPLATE = "Message {{ index }}"


@dataclass
class OutboundRecord:
    """A record to publish."""

    key: str
    payload: str
    headers: list[tuple[str, str]] = field(default_factory=list)
    topic: str | None = None

    def encoded_key(self) -> bytes:
        return self.key.encode("utf-8")

    def encoded_payload(self) -> bytes:
        return self.payload.encode("utf-8")

    def encoded_headers(self) -> list[tuple[str, bytes]]:
        return [(name, value.encode("utf-8")) for name, value in self.headers]


@dataclass
class DeliveryOutcome:
    """Result of publishing a single record."""

    index: int
    success: bool
    topic: str
    partition: int | None = None
    offset: int | None = None
    timestamp_ms: int | None = None
    error: DeliveryError | None = None
    record: OutboundRecord | None = None


@dataclass
class BatchResult:
    """
    Outcomes of one batch, index-aligned with the records that were sent.

    Behaves as a read-only sequence of DeliveryOutcome.
    """

    outcomes: list[DeliveryOutcome] = field(default_factory=list)
    start_time: datetime = field(default_factory=datetime.now)
    end_time: datetime | None = None
    duration_ms: float = 0.0

    def __len__(self) -> int:
        return len(self.outcomes)

    def __iter__(self) -> Iterator[DeliveryOutcome]:
        return iter(self.outcomes)

    @overload
    def __getitem__(self, index: int) -> DeliveryOutcome: ...

    @overload
    def __getitem__(self, index: slice) -> list[DeliveryOutcome]: ...

    def __getitem__(self, index: int | slice) -> DeliveryOutcome | list[DeliveryOutcome]:
        return self.outcomes[index]

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def successful(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return self.total - self.successful

    @property
    def errors(self) -> list[DeliveryError]:
        return [o.error for o in self.outcomes if o.error is not None]

    @property
    def success_rate(self) -> float:
        """Calculate success rate as percentage."""
        if self.total == 0:
            return 0.0
        return (self.successful / self.total) * 100

    def finalize(self) -> None:
        """Finalize the batch result."""
        self.end_time = datetime.now()
        self.duration_ms = (self.end_time - self.start_time).total_seconds() * 1000


def build_demo_batch(
    count: int = 5,
    key_template: str = DEFAULT_KEY_TEMPLATE,
    payload_template: str = DEFAULT_PAYLOAD_TEMPLATE,
    headers: list[tuple[str, str]] | None = None,
    template_engine: TemplateEngine | None = None,
) -> list[OutboundRecord]:
    """
    Generate ``count`` records whose key and payload are rendered from templates.

    Templates see ``index`` (0-based) and ``count``. Every record carries
    ``headers`` (default ``header_key=header_value``).
    """
    if count < 0:
        raise ValueError("count cannot be negative")

    engine = template_engine or TemplateEngine()
    engine.add_string_template("key", key_template)
    engine.add_string_template("payload", payload_template)
    record_headers = list(DEFAULT_HEADERS) if headers is None else list(headers)

    return [
        OutboundRecord(
            key=engine.render("key", {"index": i, "count": count}),
            payload=engine.render("payload", {"index": i, "count": count}),
            headers=list(record_headers),
        )
        for i in range(count)
    ]
