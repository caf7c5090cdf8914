"""Core domain models for request instrumentation data."""

import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


# Keys written from LogRecord attributes; extras never replace them
_CORE_KEYS = frozenset(
    {"timestamp", "level", "message", "method", "path", "status", "latency_ms", "error"}
)


class MetricUnit(StrEnum):
    """Units accepted by the metrics backend (CloudWatch standard units)."""

    MILLISECONDS = "Milliseconds"
    MICROSECONDS = "Microseconds"
    SECONDS = "Seconds"
    COUNT = "Count"
    BYTES = "Bytes"
    PERCENT = "Percent"
    NONE = "None"


@dataclass(frozen=True)
class MetricPoint:
    """A single named, dimensioned metric observation.

    Attributes:
        name: Metric name (e.g., RequestCount, Latency).
        value: The observed value.
        unit: Unit of the value.
        dimensions: Label to value pairs identifying the origin.
        timestamp: Unix timestamp in seconds.
    """

    name: str
    value: float
    unit: MetricUnit
    dimensions: dict[str, str] = field(default_factory=dict)
    timestamp: float = 0.0


@dataclass(frozen=True)
class LogRecord:
    """A structured per-request log record.

    Attributes:
        level: Log level (INFO, WARN, ERROR).
        message: Human readable message.
        method: HTTP method of the request.
        path: Request path.
        status: Response status code, if one was produced.
        latency_ms: Elapsed handler time in milliseconds.
        error_message: Failure text for failed requests.
        timestamp: Unix timestamp in seconds.
        extra: Additional structured fields (trace ids, logger name, ...).
    """

    level: str
    message: str
    method: str = ""
    path: str = ""
    status: int | None = None
    latency_ms: float | None = None
    error_message: str | None = None
    timestamp: float = 0.0
    extra: dict[str, str | int | float | bool] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return the structured form sent to log sinks.

        Optional fields that were never set are left out so downstream
        queries only see fields that carry information. Extras sharing a
        name with a record field are dropped.
        """
        data: dict[str, Any] = {
            key: value for key, value in self.extra.items() if key not in _CORE_KEYS
        }
        data["timestamp"] = self.timestamp
        data["level"] = self.level
        data["message"] = self.message
        if self.method:
            data["method"] = self.method
        if self.path:
            data["path"] = self.path
        if self.status is not None:
            data["status"] = self.status
        if self.latency_ms is not None:
            data["latency_ms"] = round(self.latency_ms, 3)
        if self.error_message is not None:
            data["error"] = self.error_message
        return data


@dataclass(frozen=True)
class TraceSegmentHandle:
    """Ownership token for one open tracing segment.

    Attributes:
        segment_id: 16 hex character segment id.
        trace_id: X-Ray style trace id the segment belongs to.
        name: Service name recorded on the segment.
        start_time: Unix timestamp at which the segment was opened.
        parent_id: Segment id of an enclosing segment, if any.
    """

    segment_id: str
    trace_id: str
    name: str
    start_time: float
    parent_id: str | None = None


@dataclass(frozen=True)
class TraceParent:
    """Trace context propagated from an enclosing boundary."""

    trace_id: str
    parent_id: str | None = None
    sampled: bool = True


@dataclass(frozen=True)
class SegmentEvent:
    """An open or close notification delivered to the trace backend."""

    kind: str
    segment: TraceSegmentHandle
    end_time: float | None = None
    http: dict[str, str | int] = field(default_factory=dict)
    error: bool = False
    fault: bool = False
    abandoned: bool = False
    cause: str | None = None


@dataclass
class RequestContext:
    """Per-request state owned by a single chain invocation.

    Attributes:
        method: HTTP method.
        path: Request path.
        start_time: Monotonic clock value recorded at entry.
        segment: The open trace segment, if the tracer opened one.
        status: Status code sent by the handler (or by ErrorCapture).
        response_started: True once response headers were sent.
        response_complete: True once the final body chunk was sent.
        abandoned: True when the client went away before completion.
        error: The handler failure, if any.
    """

    method: str
    path: str
    start_time: float = 0.0
    segment: TraceSegmentHandle | None = None
    status: int | None = None
    response_started: bool = False
    response_complete: bool = False
    abandoned: bool = False
    error: BaseException | None = None


@dataclass(frozen=True)
class FailureResponse:
    """Uniform response produced for a failed request."""

    message: str
    status_code: int = 500

    @property
    def body(self) -> dict[str, str]:
        return {"status": "error", "message": self.message}

    def render(self) -> bytes:
        """Render the body as JSON bytes."""
        return json.dumps(self.body).encode()
