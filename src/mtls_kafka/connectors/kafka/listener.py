"""
Rebalance and commit listeners.

Listeners are passive telemetry: they are told about partition assignment
changes and offset commit acknowledgments, and must never block, raise or
try to change the subscription. The client library owns reassignment.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass

import structlog
from aiokafka import TopicPartition
from aiokafka.abc import ConsumerRebalanceListener

from mtls_kafka.core.exceptions import CommitError

logger = structlog.get_logger()

Partition = tuple[str, int]


def _partitions(partitions: Iterable[TopicPartition]) -> tuple[Partition, ...]:
    return tuple(sorted((tp.topic, tp.partition) for tp in partitions))


@dataclass(frozen=True)
class Assigned:
    """Partitions assigned to this consumer once a rebalance settled."""

    partitions: tuple[Partition, ...]

    @classmethod
    def from_topic_partitions(cls, partitions: Iterable[TopicPartition]) -> "Assigned":
        return cls(_partitions(partitions))


@dataclass(frozen=True)
class Revoked:
    """Partitions about to be taken away by a rebalance."""

    partitions: tuple[Partition, ...]

    @classmethod
    def from_topic_partitions(cls, partitions: Iterable[TopicPartition]) -> "Revoked":
        return cls(_partitions(partitions))


RebalanceEvent = Assigned | Revoked


@dataclass(frozen=True)
class CommitEvent:
    """Broker acknowledgment (or rejection) of an offset commit."""

    offsets: tuple[tuple[str, int, int], ...]
    error: CommitError | None = None

    @property
    def success(self) -> bool:
        return self.error is None


class RebalanceListener:
    """
    No-op listener. Subclass and override the hooks you care about.
    """

    def on_revoked(self, event: Revoked) -> None:
        """Called before a rebalance removes partitions."""

    def on_assigned(self, event: Assigned) -> None:
        """Called after a rebalance settled."""

    def on_commit(self, event: CommitEvent) -> None:
        """Called when an offset commit completes or fails."""


class LoggingRebalanceListener(RebalanceListener):
    """Logs every rebalance and commit event."""

    def on_revoked(self, event: Revoked) -> None:
        logger.info("pre_rebalance", revoked=[f"{t}:{p}" for t, p in event.partitions])

    def on_assigned(self, event: Assigned) -> None:
        logger.info("post_rebalance", assigned=[f"{t}:{p}" for t, p in event.partitions])

    def on_commit(self, event: CommitEvent) -> None:
        offsets = [f"{t}:{p}@{o}" for t, p, o in event.offsets]
        if event.success:
            logger.info("offsets_committed", offsets=offsets)
        else:
            logger.warning("commit_not_acknowledged", offsets=offsets, error=str(event.error))


class ListenerAdapter(ConsumerRebalanceListener):
    """
    Bridges aiokafka rebalance callbacks to a RebalanceListener.

    Exceptions raised by the wrapped listener are logged and dropped so a
    faulty hook cannot break the group protocol.
    """

    def __init__(
        self,
        listener: RebalanceListener,
        on_revoked: Callable[[], None] | None = None,
        on_assigned: Callable[[], None] | None = None,
    ) -> None:
        self._listener = listener
        self._on_revoked = on_revoked
        self._on_assigned = on_assigned

    @property
    def listener(self) -> RebalanceListener:
        return self._listener

    def on_partitions_revoked(self, revoked: set[TopicPartition]) -> None:
        if self._on_revoked:
            self._on_revoked()
        self._notify("on_revoked", Revoked.from_topic_partitions(revoked))

    def on_partitions_assigned(self, assigned: set[TopicPartition]) -> None:
        self._notify("on_assigned", Assigned.from_topic_partitions(assigned))
        if self._on_assigned:
            self._on_assigned()

    def notify_commit(self, event: CommitEvent) -> None:
        self._notify("on_commit", event)

    def _notify(self, hook: str, event: RebalanceEvent | CommitEvent) -> None:
        try:
            getattr(self._listener, hook)(event)
        except Exception as e:
            logger.warning(
                "listener_hook_failed",
                hook=hook,
                listener=type(self._listener).__name__,
                error=str(e),
            )
