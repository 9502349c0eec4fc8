"""
Tests for outbound records, batch generation and batch results.
"""

import pytest

from mtls_kafka.connectors.kafka.batch import (
    BatchResult,
    DeliveryOutcome,
    OutboundRecord,
    build_demo_batch,
)
from mtls_kafka.core.exceptions import DeliveryError, TemplateError
from mtls_kafka.core.templating import TemplateEngine


class TestBuildDemoBatch:
    def test_defaults(self):
        records = build_demo_batch()

        assert [r.key for r in records] == [f"Key {i}" for i in range(5)]
        assert [r.payload for r in records] == [f"Message {i}" for i in range(5)]
        assert all(r.headers == [("header_key", "header_value")] for r in records)

    def test_custom_templates_and_headers(self):
        records = build_demo_batch(
            count=2,
            key_template="order-{{ index }}",
            payload_template='{{ {"n": index, "of": count} | to_json }}',
            headers=[("source", "cli")],
        )

        assert records[1].key == "order-1"
        assert records[1].payload == '{"n":1,"of":2}'
        assert records[0].headers == [("source", "cli")]

    def test_templates_see_engine_context(self):
        engine = TemplateEngine()
        engine.set_context({"ENV": "staging"})

        records = build_demo_batch(count=1, key_template="{{ ENV }}-{{ index }}", template_engine=engine)

        assert records[0].key == "staging-0"

    def test_zero_count(self):
        assert build_demo_batch(count=0) == []

    def test_negative_count_rejected(self):
        with pytest.raises(ValueError):
            build_demo_batch(count=-1)

    def test_undefined_variable_raises(self):
        with pytest.raises(TemplateError):
            build_demo_batch(count=1, key_template="{{ missing }}")

    def test_headers_are_not_shared_between_records(self):
        records = build_demo_batch(count=2)
        records[0].headers.append(("extra", "x"))

        assert records[1].headers == [("header_key", "header_value")]


class TestOutboundRecord:
    def test_encoding(self):
        record = OutboundRecord(key="κ", payload="p", headers=[("h", "v")])

        assert record.encoded_key() == "κ".encode("utf-8")
        assert record.encoded_payload() == b"p"
        assert record.encoded_headers() == [("h", b"v")]


class TestBatchResult:
    def test_aggregates(self):
        result = BatchResult(
            outcomes=[
                DeliveryOutcome(index=0, success=True, topic="t1", partition=0, offset=1),
                DeliveryOutcome(
                    index=1,
                    success=False,
                    topic="t1",
                    error=DeliveryError("Delivery failed", topic="t1", index=1),
                ),
            ]
        )
        result.finalize()

        assert result.total == 2
        assert result.successful == 1
        assert result.failed == 1
        assert result.success_rate == 50.0
        assert [e.index for e in result.errors] == [1]
        assert result[0].offset == 1
        assert result.end_time is not None
        assert result.duration_ms >= 0
