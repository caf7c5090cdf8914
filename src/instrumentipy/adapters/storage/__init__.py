"""Sink adapters implementing core ports."""

from instrumentipy.adapters.storage.in_memory import (
    InMemoryLogSink,
    InMemoryMetricsSink,
    InMemoryTraceBackend,
)

__all__ = [
    "InMemoryLogSink",
    "InMemoryMetricsSink",
    "InMemoryTraceBackend",
]
