"""Test doubles shared by unit, integration and scenario tests."""

from collections.abc import Sequence

from instrumentipy.core.errors import TransportError
from instrumentipy.core.models import LogRecord, MetricPoint, SegmentEvent


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingMetricsSink:
    """Metrics sink whose backend is unreachable."""

    def __init__(self) -> None:
        self.attempts = 0

    async def put_metric_data(
        self, namespace: str, points: Sequence[MetricPoint]
    ) -> None:
        self.attempts += 1
        raise TransportError("metrics", "connection refused")


class FailingLogSink:
    """Log sink whose backend is unreachable."""

    def __init__(self) -> None:
        self.attempts = 0

    async def put_log_events(
        self, group: str, stream: str, records: Sequence[LogRecord]
    ) -> None:
        self.attempts += 1
        raise TransportError("logs", "connection refused")


class FailingTraceBackend:
    """Trace backend whose daemon is unreachable."""

    async def send(self, events: Sequence[SegmentEvent]) -> None:
        raise TransportError("traces", "connection refused")
