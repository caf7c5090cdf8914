"""Port interfaces for telemetry sinks.

These protocols define the contracts that sink adapters must implement.
The core depends only on these interfaces, not concrete implementations.
Implementations are shared across concurrent requests and must tolerate
concurrent calls.
"""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from instrumentipy.core.models import LogRecord, MetricPoint, SegmentEvent


@runtime_checkable
class MetricsSinkPort(Protocol):
    """Port for delivering metric points to a monitoring backend.

    Examples: InMemoryMetricsSink, SQLiteMetricsSink, CloudWatchMetricsSink.
    """

    async def put_metric_data(
        self, namespace: str, points: Sequence[MetricPoint]
    ) -> None:
        """Deliver a batch of metric points.

        Args:
            namespace: Fixed per-deployment namespace.
            points: Points to deliver, in emission order.

        Raises:
            TransportError: If the backend cannot accept the batch.
        """
        ...


@runtime_checkable
class LogSinkPort(Protocol):
    """Port for delivering structured log records.

    Examples: InMemoryLogSink, SQLiteLogSink, CloudWatchLogSink.
    """

    async def put_log_events(
        self, group: str, stream: str, records: Sequence[LogRecord]
    ) -> None:
        """Deliver a batch of log records to a group/stream.

        Raises:
            TransportError: If the sink cannot accept the batch.
        """
        ...


@runtime_checkable
class TraceBackendPort(Protocol):
    """Port for delivering segment open/close events.

    Examples: InMemoryTraceBackend, XRayTraceBackend.
    """

    async def send(self, events: Sequence[SegmentEvent]) -> None:
        """Deliver a batch of segment events.

        Raises:
            TransportError: If the backend cannot accept the batch.
        """
        ...
