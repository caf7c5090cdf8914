"""Instrumentation stages composed by the chain.

Each stage has exactly one role:

- ``PreHandlerStage.before`` runs after the segment opens, before the handler.
- ``PostHandlerStage.after`` runs only when the handler completed normally.
- ``ErrorStage.on_error`` runs only when the handler failed; it is terminal.
"""

from typing import Protocol

from instrumentipy.core import logs, metrics
from instrumentipy.core.errors import HandlerError
from instrumentipy.core.models import (
    FailureResponse,
    LogRecord,
    MetricPoint,
    RequestContext,
)


class MetricEmitterLike(Protocol):
    def emit(self, point: MetricPoint) -> None: ...


class RequestLoggerLike(Protocol):
    def log(self, record: LogRecord) -> None: ...


class PreHandlerStage(Protocol):
    def before(self, ctx: RequestContext) -> None: ...


class PostHandlerStage(Protocol):
    def after(self, ctx: RequestContext, elapsed_ms: float) -> None: ...


class ErrorStage(Protocol):
    def on_error(
        self, ctx: RequestContext, exc: Exception, elapsed_ms: float
    ) -> FailureResponse: ...


def describe_error(exc: BaseException) -> str:
    """Message text shown to clients: the exception message, never a traceback."""
    if isinstance(exc, HandlerError):
        return exc.message
    return str(exc) or type(exc).__name__


def _trace_fields(ctx: RequestContext) -> dict[str, str]:
    if ctx.segment is None:
        return {}
    return {"trace_id": ctx.segment.trace_id, "segment_id": ctx.segment.segment_id}


class TrafficCounter:
    """Emits one RequestCount point per request before the handler runs."""

    def __init__(self, emitter: MetricEmitterLike) -> None:
        self.emitter = emitter

    def before(self, ctx: RequestContext) -> None:
        self.emitter.emit(metrics.request_count(ctx.method, ctx.path))


class LatencyRecorder:
    """Emits one Latency point for a normally completed request."""

    def __init__(self, emitter: MetricEmitterLike) -> None:
        self.emitter = emitter

    def after(self, ctx: RequestContext, elapsed_ms: float) -> None:
        self.emitter.emit(metrics.latency(ctx.method, ctx.path, elapsed_ms))


class AccessLog:
    """Writes the per-request access log record.

    The level follows the response status: 2xx/3xx INFO, 4xx WARN, 5xx ERROR.
    """

    def __init__(self, request_logger: RequestLoggerLike) -> None:
        self.request_logger = request_logger

    def after(self, ctx: RequestContext, elapsed_ms: float) -> None:
        record = logs.log(
            logs.level_for_status(ctx.status),
            f"{ctx.method} {ctx.path} {ctx.status} {elapsed_ms:.0f}ms",
            method=ctx.method,
            path=ctx.path,
            status=ctx.status,
            latency_ms=elapsed_ms,
            **_trace_fields(ctx),
        )
        self.request_logger.log(record)


class ErrorCapture:
    """Terminal stage for failed requests.

    Logs the failure with request context, emits one ErrorCount point and
    returns the uniform failure response.
    """

    def __init__(
        self, emitter: MetricEmitterLike, request_logger: RequestLoggerLike
    ) -> None:
        self.emitter = emitter
        self.request_logger = request_logger

    def on_error(
        self, ctx: RequestContext, exc: Exception, elapsed_ms: float
    ) -> FailureResponse:
        message = describe_error(exc)
        status_code = 500
        if isinstance(exc, HandlerError) and 500 <= exc.status_code < 600:
            status_code = exc.status_code
        failure = FailureResponse(message=message, status_code=status_code)
        self.request_logger.log(
            logs.error(
                f"Error: {message}",
                method=ctx.method,
                path=ctx.path,
                status=status_code,
                latency_ms=elapsed_ms,
                error_message=message,
                error_type=type(exc).__name__,
                **_trace_fields(ctx),
            )
        )
        self.emitter.emit(metrics.error_count(ctx.method, ctx.path))
        return failure
