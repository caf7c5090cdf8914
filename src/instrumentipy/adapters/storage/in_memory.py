"""In-memory sink adapters for metrics, logs and trace segments."""

from collections.abc import AsyncIterable, Sequence

from instrumentipy.core.models import LogRecord, MetricPoint, SegmentEvent


class InMemoryMetricsSink:
    """In-memory implementation of MetricsSinkPort.

    Stores delivered points in a list together with their namespace.
    Suitable for testing and local runs where no backend is available.
    """

    def __init__(self) -> None:
        self._points: list[tuple[str, MetricPoint]] = []

    async def put_metric_data(
        self, namespace: str, points: Sequence[MetricPoint]
    ) -> None:
        """Store a batch of points."""
        self._points.extend((namespace, point) for point in points)

    async def read(self, name: str | None = None) -> AsyncIterable[MetricPoint]:
        """Read delivered points in delivery order, optionally by name."""
        for _namespace, point in list(self._points):
            if name is None or point.name == name:
                yield point

    @property
    def namespaces(self) -> set[str]:
        return {namespace for namespace, _ in self._points}


class InMemoryLogSink:
    """In-memory implementation of LogSinkPort.

    Keeps delivered records keyed by (group, stream).
    """

    def __init__(self) -> None:
        self._records: list[tuple[str, str, LogRecord]] = []

    async def put_log_events(
        self, group: str, stream: str, records: Sequence[LogRecord]
    ) -> None:
        """Store a batch of records."""
        self._records.extend((group, stream, record) for record in records)

    async def read(
        self, since: float = 0, level: str | None = None
    ) -> AsyncIterable[LogRecord]:
        """Read records with timestamp > since, ordered by timestamp ascending.

        Args:
            since: Unix timestamp lower bound (exclusive).
            level: Optional case-insensitive level filter.
        """
        filtered = [
            record
            for _group, _stream, record in self._records
            if record.timestamp > since
            and (level is None or record.level.upper() == level.upper())
        ]
        for record in sorted(filtered, key=lambda r: r.timestamp):
            yield record

    @property
    def streams(self) -> set[tuple[str, str]]:
        return {(group, stream) for group, stream, _ in self._records}


class InMemoryTraceBackend:
    """In-memory implementation of TraceBackendPort."""

    def __init__(self) -> None:
        self.events: list[SegmentEvent] = []

    async def send(self, events: Sequence[SegmentEvent]) -> None:
        """Store a batch of segment events."""
        self.events.extend(events)

    def closes_for(self, segment_id: str) -> list[SegmentEvent]:
        """Close events recorded for one segment."""
        return [
            e
            for e in self.events
            if e.kind == "close" and e.segment.segment_id == segment_id
        ]
