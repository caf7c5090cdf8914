"""The ordered instrumentation chain around a request handler.

The chain brackets a handler invocation in a trace segment and runs three
explicit stage lists around it: pre-handler stages, post-handler stages
(normal completion only) and a single terminal error stage (failure only).
Every stage call is isolated: a failing stage or sink is reported on the
diagnostics logger and never alters the handler outcome.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol

from instrumentipy.core.logs import log_exception
from instrumentipy.core.models import (
    FailureResponse,
    RequestContext,
    TraceParent,
    TraceSegmentHandle,
)
from instrumentipy.core.stages import (
    AccessLog,
    ErrorCapture,
    ErrorStage,
    LatencyRecorder,
    MetricEmitterLike,
    PostHandlerStage,
    PreHandlerStage,
    RequestLoggerLike,
    TrafficCounter,
    describe_error,
)

Handler = Callable[[RequestContext], Awaitable[None]]


class SegmentTracer(Protocol):
    def open(
        self, name: str, parent: TraceParent | None = None
    ) -> TraceSegmentHandle: ...

    def close(
        self,
        handle: TraceSegmentHandle,
        *,
        status: int | None = None,
        cause: str | None = None,
        abandoned: bool = False,
        request: dict[str, str] | None = None,
    ) -> bool: ...


class InstrumentationChain:
    """Runs a handler inside the trace, metric and log stages.

    Args:
        tracer: Opens and closes one segment per request.
        service_name: Name recorded on every segment.
        pre_stages: Stages run before the handler, in order.
        post_stages: Stages run after normal completion, in order.
        error_stage: Terminal stage run when the handler raises.
        clock: Monotonic clock in seconds. Only differences are used.
    """

    def __init__(
        self,
        tracer: SegmentTracer,
        service_name: str,
        pre_stages: Sequence[PreHandlerStage],
        post_stages: Sequence[PostHandlerStage],
        error_stage: ErrorStage,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.tracer = tracer
        self.service_name = service_name
        self.pre_stages = tuple(pre_stages)
        self.post_stages = tuple(post_stages)
        self.error_stage = error_stage
        self.clock = clock

    @classmethod
    def standard(
        cls,
        emitter: MetricEmitterLike,
        request_logger: RequestLoggerLike,
        tracer: SegmentTracer,
        service_name: str,
        clock: Callable[[], float] = time.perf_counter,
    ) -> "InstrumentationChain":
        """Build the default chain: traffic count, latency, access log, error capture."""
        return cls(
            tracer=tracer,
            service_name=service_name,
            pre_stages=[TrafficCounter(emitter)],
            post_stages=[LatencyRecorder(emitter), AccessLog(request_logger)],
            error_stage=ErrorCapture(emitter, request_logger),
            clock=clock,
        )

    def elapsed_ms(self, ctx: RequestContext) -> float:
        return (self.clock() - ctx.start_time) * 1000.0

    def _isolate(self, stage: object, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except Exception:
            log_exception(
                "Instrumentation stage %s failed for request",
                type(stage).__name__,
            )
            return None

    async def run(
        self,
        ctx: RequestContext,
        handler: Handler,
        parent: TraceParent | None = None,
    ) -> FailureResponse | None:
        """Run ``handler`` for one request.

        Args:
            ctx: Fresh context for this request.
            handler: The downstream handler. Its outcome is observed, never
                altered, except that a failure is replaced by the uniform
                failure response.
            parent: Trace context of an enclosing boundary, if any.

        Returns:
            The failure response to send when the handler raised, None when
            it completed normally or the request was abandoned.

        Raises:
            asyncio.CancelledError: Re-raised after the segment is closed.
        """
        ctx.segment = self._isolate(
            self.tracer, self.tracer.open, self.service_name, parent
        )
        ctx.start_time = self.clock()
        failure: FailureResponse | None = None
        try:
            for stage in self.pre_stages:
                self._isolate(stage, stage.before, ctx)
            try:
                await handler(ctx)
            except asyncio.CancelledError:
                ctx.abandoned = True
                raise
            except Exception as exc:
                ctx.error = exc
                if ctx.abandoned:
                    return None
                failure = self._isolate(
                    self.error_stage,
                    self.error_stage.on_error,
                    ctx,
                    exc,
                    self.elapsed_ms(ctx),
                )
                if failure is None:
                    failure = FailureResponse(message=describe_error(exc))
                if not ctx.response_started:
                    ctx.status = failure.status_code
                return failure
            if ctx.abandoned:
                return None
            elapsed = self.elapsed_ms(ctx)
            for post in self.post_stages:
                self._isolate(post, post.after, ctx, elapsed)
            return None
        finally:
            self._close_segment(ctx)

    def _close_segment(self, ctx: RequestContext) -> None:
        if ctx.segment is None:
            return
        cause = describe_error(ctx.error) if ctx.error is not None else None
        self._isolate(
            self.tracer,
            lambda: self.tracer.close(
                ctx.segment,
                status=ctx.status,
                cause=cause,
                abandoned=ctx.abandoned,
                request={"method": ctx.method, "url": ctx.path},
            ),
        )
