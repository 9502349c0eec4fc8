"""
Tests for pipelined batch publishing.
"""

import asyncio
from unittest.mock import patch

import pytest
from aiokafka.errors import KafkaConnectionError, KafkaTimeoutError, UnknownTopicOrPartitionError
from structlog.testing import capture_logs

from conftest import make_aiokafka_producer, make_record_metadata
from mtls_kafka.connectors.kafka.batch import OutboundRecord, build_demo_batch
from mtls_kafka.connectors.kafka.producer import AsyncKafkaProducer
from mtls_kafka.core.base import ConnectorState
from mtls_kafka.core.exceptions import ConnectError, DeliveryError, KafkaError

CLIENT = "mtls_kafka.connectors.kafka.producer.AIOKafkaProducer"


def deferred_sends(client):
    """
    Make ``client.send`` return unresolved futures, one per call, so the test
    decides when (and in which order) each delivery completes.
    """
    futures = []

    async def send(topic, value=None, key=None, headers=None):
        future = asyncio.get_running_loop().create_future()
        futures.append(future)
        return future

    client.send.side_effect = send
    return futures


async def wait_for_sends(futures, count):
    for _ in range(100):
        if len(futures) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"expected {count} sends, saw {len(futures)}")


class TestPublishBatch:
    """Batches are pipelined and outcomes come back index-aligned."""

    @pytest.mark.asyncio
    async def test_outcomes_align_with_records_despite_completion_order(self, producer_config):
        client = make_aiokafka_producer()
        futures = deferred_sends(client)
        records = build_demo_batch()

        with patch(CLIENT, return_value=client):
            async with AsyncKafkaProducer(producer_config) as producer:
                task = asyncio.create_task(producer.publish_batch("t1", records))

                await wait_for_sends(futures, 5)
                assert not task.done()

                for index in reversed(range(5)):
                    futures[index].set_result(make_record_metadata(offset=100 + index))
                    await asyncio.sleep(0)

                result = await task

        assert len(result) == 5
        assert [o.index for o in result] == [0, 1, 2, 3, 4]
        assert [o.offset for o in result] == [100, 101, 102, 103, 104]
        assert [o.record.key for o in result] == [f"Key {i}" for i in range(5)]
        assert result.successful == 5
        assert producer.messages_sent == 5

        first = client.send.await_args_list[0]
        assert first.args == ("t1",)
        assert first.kwargs == {
            "value": b"Message 0",
            "key": b"Key 0",
            "headers": [("header_key", b"header_value")],
        }

    @pytest.mark.asyncio
    async def test_one_failed_delivery_does_not_abort_siblings(self, producer_config):
        client = make_aiokafka_producer()
        futures = deferred_sends(client)

        with patch(CLIENT, return_value=client):
            async with AsyncKafkaProducer(producer_config) as producer:
                task = asyncio.create_task(producer.publish_batch("t1", build_demo_batch()))
                await wait_for_sends(futures, 5)

                for index, future in enumerate(futures):
                    if index == 2:
                        future.set_exception(KafkaTimeoutError())
                    else:
                        future.set_result(make_record_metadata(offset=index))

                with capture_logs() as logs:
                    result = await task

        assert [o.success for o in result] == [True, True, False, True, True]
        assert result.failed == 1
        assert isinstance(result[2].error, DeliveryError)
        assert result[2].error.index == 2
        assert result[2].offset is None
        assert "KafkaTimeoutError" in str(result[2].error)

        outcomes = [e for e in logs if e["event"] == "delivery_outcome"]
        assert [e["index"] for e in outcomes] == [0, 1, 2, 3, 4]
        summary = next(e for e in logs if e["event"] == "batch_published")
        assert summary["successful"] == 4
        assert summary["failed"] == 1

    @pytest.mark.asyncio
    async def test_send_rejected_at_queue_time_is_an_outcome(self, producer_config):
        client = make_aiokafka_producer()
        done = asyncio.get_running_loop().create_future()
        done.set_result(make_record_metadata(offset=9))
        client.send.side_effect = [done, KafkaTimeoutError()]

        with patch(CLIENT, return_value=client):
            async with AsyncKafkaProducer(producer_config) as producer:
                result = await producer.publish_batch("t1", build_demo_batch(count=2))

        assert result[0].success
        assert result[0].offset == 9
        assert not result[1].success
        assert producer.messages_failed == 1

    @pytest.mark.asyncio
    async def test_queue_timeout_bounds_each_send(self, producer_config):
        client = make_aiokafka_producer()

        async def stuck_send(topic, value=None, key=None, headers=None):
            await asyncio.sleep(10)

        client.send.side_effect = stuck_send

        with patch(CLIENT, return_value=client):
            async with AsyncKafkaProducer(producer_config) as producer:
                result = await producer.publish_batch(
                    "t1",
                    build_demo_batch(count=2),
                    queue_timeout_ms=10,
                )

        assert result.failed == 2
        assert all(isinstance(o.error, DeliveryError) for o in result)

    @pytest.mark.asyncio
    async def test_record_topic_overrides_batch_topic(self, producer_config):
        client = make_aiokafka_producer()
        futures = deferred_sends(client)
        record = OutboundRecord(key="k", payload="p", topic="other")

        with patch(CLIENT, return_value=client):
            async with AsyncKafkaProducer(producer_config) as producer:
                task = asyncio.create_task(producer.publish_batch("t1", [record]))
                await wait_for_sends(futures, 1)
                futures[0].set_result(make_record_metadata(topic="other"))
                result = await task

        assert client.send.await_args.args == ("other",)
        assert result[0].topic == "other"

    @pytest.mark.asyncio
    async def test_empty_batch(self, producer_config):
        client = make_aiokafka_producer()

        with patch(CLIENT, return_value=client):
            async with AsyncKafkaProducer(producer_config) as producer:
                result = await producer.publish_batch("t1", [])

        assert len(result) == 0
        assert result.success_rate == 0.0
        client.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rerun_produces_a_fresh_result(self, producer_config):
        client = make_aiokafka_producer()
        futures = deferred_sends(client)

        with patch(CLIENT, return_value=client):
            async with AsyncKafkaProducer(producer_config) as producer:
                results = []
                for run in range(2):
                    task = asyncio.create_task(producer.publish_batch("t1", build_demo_batch(count=2)))
                    await wait_for_sends(futures, 2 * (run + 1))
                    for future in futures[-2:]:
                        future.set_result(make_record_metadata())
                    results.append(await task)

        assert [len(r) for r in results] == [2, 2]
        assert results[0] is not results[1]
        assert producer.messages_sent == 4

    @pytest.mark.asyncio
    async def test_publish_requires_connection(self, producer_config):
        producer = AsyncKafkaProducer(producer_config)

        with pytest.raises(KafkaError, match="not connected"):
            await producer.publish_batch("t1", build_demo_batch(count=1))

    @pytest.mark.asyncio
    async def test_dispatch_without_client_raises(self, producer_config):
        producer = AsyncKafkaProducer(producer_config)

        with pytest.raises(KafkaError, match="not connected"):
            await producer._dispatch(0, "t1", OutboundRecord(key="k", payload="p"), 0)

    @pytest.mark.asyncio
    async def test_sends_waiting_on_metadata_overlap(self, producer_config):
        client = make_aiokafka_producer()

        async def unknown_topic(topic, value=None, key=None, headers=None):
            await asyncio.sleep(0.2)
            raise UnknownTopicOrPartitionError()

        client.send.side_effect = unknown_topic
        loop = asyncio.get_running_loop()

        with patch(CLIENT, return_value=client):
            async with AsyncKafkaProducer(producer_config) as producer:
                started = loop.time()
                result = await producer.publish_batch("missing", build_demo_batch())
                elapsed = loop.time() - started

        assert result.failed == 5
        assert [o.index for o in result] == [0, 1, 2, 3, 4]
        assert client.send.await_count == 5
        # One metadata wait for the whole batch, not one per record.
        assert elapsed < 0.6


class TestProducerLifecycle:
    """Connecting and disconnecting the producer."""

    @pytest.mark.asyncio
    async def test_client_receives_delivery_timeout(self, producer_config):
        client = make_aiokafka_producer()

        with patch(CLIENT, return_value=client) as client_cls:
            async with AsyncKafkaProducer(producer_config) as producer:
                assert producer.state is ConnectorState.CONNECTED

        options = client_cls.call_args.kwargs
        assert options["bootstrap_servers"] == "localhost:9092"
        assert options["request_timeout_ms"] == 5000
        assert options["acks"] == "all"
        assert options["security_protocol"] == "PLAINTEXT"
        client.stop.assert_awaited_once()
        assert producer.state is ConnectorState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_mutual_tls_options_reach_the_client(self, producer_config, tls_auth_handler):
        client = make_aiokafka_producer()

        with patch(CLIENT, return_value=client) as client_cls:
            async with AsyncKafkaProducer(producer_config, auth_handler=tls_auth_handler):
                pass

        tls_auth_handler.validate.assert_called_once()
        assert client_cls.call_args.kwargs["security_protocol"] == "SSL"

    @pytest.mark.asyncio
    async def test_connect_failure_raises_connect_error(self, producer_config):
        client = make_aiokafka_producer()
        client.start.side_effect = KafkaConnectionError("Unable to bootstrap")

        with patch(CLIENT, return_value=client):
            producer = AsyncKafkaProducer(producer_config)
            with pytest.raises(ConnectError):
                await producer.connect()

        assert producer.state is ConnectorState.ERROR
        client.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_get_stats(self, producer_config):
        client = make_aiokafka_producer()
        done = asyncio.get_running_loop().create_future()
        done.set_result(make_record_metadata())
        client.send.return_value = done

        with patch(CLIENT, return_value=client):
            async with AsyncKafkaProducer(producer_config) as producer:
                await producer.publish_batch("t1", [OutboundRecord(key="ab", payload="cde")])
                stats = producer.get_stats()

        assert stats["state"] == "connected"
        assert stats["messages_sent"] == 1
        assert stats["bytes_sent"] == 5
        assert stats["connected_at"] is not None
