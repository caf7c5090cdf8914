"""HTTP request instrumentation: metrics, structured logs and trace segments."""

from instrumentipy.adapters.emitter import MetricEmitter
from instrumentipy.adapters.frameworks.asgi import InstrumentationMiddleware
from instrumentipy.adapters.logging import LogSinkHandler
from instrumentipy.adapters.request_logger import RequestLogger
from instrumentipy.adapters.tracing import Tracer
from instrumentipy.core.chain import InstrumentationChain
from instrumentipy.core.errors import (
    ConfigurationError,
    HandlerError,
    InstrumentationError,
    TransportError,
)
from instrumentipy.core.models import (
    LogRecord,
    MetricPoint,
    MetricUnit,
    RequestContext,
    TraceSegmentHandle,
)
from instrumentipy.core.stages import ErrorCapture

__all__ = [
    "ConfigurationError",
    "ErrorCapture",
    "HandlerError",
    "InstrumentationChain",
    "InstrumentationError",
    "InstrumentationMiddleware",
    "LogRecord",
    "LogSinkHandler",
    "MetricEmitter",
    "MetricPoint",
    "MetricUnit",
    "RequestContext",
    "RequestLogger",
    "TraceSegmentHandle",
    "Tracer",
    "TransportError",
]
