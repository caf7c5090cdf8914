"""Process-scoped telemetry wiring.

Sinks, emitter, request logger and tracer are built once at startup and
handed to the chain by reference, so tests can substitute any of them.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from instrumentipy.adapters.emitter import MetricEmitter
from instrumentipy.adapters.request_logger import RequestLogger
from instrumentipy.adapters.storage.in_memory import (
    InMemoryLogSink,
    InMemoryMetricsSink,
    InMemoryTraceBackend,
)
from instrumentipy.adapters.tracing import Tracer
from instrumentipy.config import Settings
from instrumentipy.core.chain import InstrumentationChain
from instrumentipy.core.ports import LogSinkPort, MetricsSinkPort, TraceBackendPort

logger = logging.getLogger(__name__)


@dataclass
class Telemetry:
    """The shared telemetry clients of one process."""

    service_name: str
    metrics_sink: MetricsSinkPort
    log_sink: LogSinkPort
    trace_backend: TraceBackendPort
    emitter: MetricEmitter
    request_logger: RequestLogger
    tracer: Tracer
    _closers: list[Any] = field(default_factory=list)

    def chain(
        self, clock: Callable[[], float] = time.perf_counter
    ) -> InstrumentationChain:
        return InstrumentationChain.standard(
            emitter=self.emitter,
            request_logger=self.request_logger,
            tracer=self.tracer,
            service_name=self.service_name,
            clock=clock,
        )

    def start(self) -> None:
        """Start the background dispatchers. Requires a running event loop."""
        self.emitter.start()
        self.request_logger.start()
        self.tracer.start()

    async def flush(self) -> None:
        """Deliver everything queued so far."""
        await self.emitter.flush()
        await self.request_logger.flush()
        await self.tracer.flush()

    async def stop(self) -> None:
        """Close in-flight segments, drain the queues and release sinks."""
        self.tracer.close_all()
        await self.emitter.stop()
        await self.request_logger.stop()
        await self.tracer.stop()
        for close in self._closers:
            await close()


def build_telemetry(
    settings: Settings,
    metrics_sink: MetricsSinkPort | None = None,
    log_sink: LogSinkPort | None = None,
    trace_backend: TraceBackendPort | None = None,
) -> Telemetry:
    """Build the shared telemetry clients for ``settings.sink_backend``.

    Explicitly passed sinks take precedence over the configured backend.
    """
    closers: list[Any] = []
    if settings.sink_backend == "aws":
        from instrumentipy.adapters.aws import (
            CloudWatchLogSink,
            CloudWatchMetricsSink,
            XRayTraceBackend,
            make_client,
        )

        def client(service: str) -> Any:
            return make_client(
                service,
                region=settings.aws_region,
                access_key=settings.aws_access_key_id,
                secret_key=settings.aws_secret_access_key,
                endpoint_url=settings.aws_endpoint_url,
            )

        metrics_sink = metrics_sink or CloudWatchMetricsSink(client("cloudwatch"))
        log_sink = log_sink or CloudWatchLogSink(client("logs"))
        trace_backend = trace_backend or XRayTraceBackend(client("xray"))
    elif settings.sink_backend == "sqlite":
        from instrumentipy.adapters.storage.sqlite import (
            SQLiteLogSink,
            SQLiteMetricsSink,
            SQLiteTraceBackend,
        )

        metrics_sink = metrics_sink or SQLiteMetricsSink(settings.sqlite_path)
        log_sink = log_sink or SQLiteLogSink(settings.sqlite_path)
        trace_backend = trace_backend or SQLiteTraceBackend(settings.sqlite_path)
        for sink in (metrics_sink, log_sink, trace_backend):
            if hasattr(sink, "close"):
                closers.append(sink.close)
    else:
        metrics_sink = metrics_sink or InMemoryMetricsSink()
        log_sink = log_sink or InMemoryLogSink()
        trace_backend = trace_backend or InMemoryTraceBackend()

    queue_options = {
        "max_size": settings.queue_max_size,
        "batch_size": settings.batch_size,
        "flush_interval": settings.flush_interval_seconds,
        "overflow": settings.overflow_policy,
    }
    logger.info(
        "Telemetry configured: backend=%s namespace=%s log_group=%s log_stream=%s",
        settings.sink_backend,
        settings.namespace,
        settings.log_group_name,
        settings.log_stream_name,
    )
    return Telemetry(
        service_name=settings.app_name,
        metrics_sink=metrics_sink,
        log_sink=log_sink,
        trace_backend=trace_backend,
        emitter=MetricEmitter(metrics_sink, settings.namespace, **queue_options),
        request_logger=RequestLogger(
            log_sink, settings.log_group_name, settings.log_stream_name, **queue_options
        ),
        tracer=Tracer(trace_backend, **queue_options),
        _closers=closers,
    )
