"""Shared helpers for instrumentation BDD scenarios."""

import asyncio
from dataclasses import dataclass, field
from typing import Any

import httpx

from instrumentipy.adapters.storage.in_memory import (
    InMemoryLogSink,
    InMemoryMetricsSink,
    InMemoryTraceBackend,
)
from instrumentipy.app import create_app
from instrumentipy.config import Settings
from instrumentipy.core.models import LogRecord, MetricPoint
from instrumentipy.runtime import Telemetry, build_telemetry
from tests.helpers import FakeClock


@dataclass
class ScenarioContext:
    """Shared state between steps in an instrumentation scenario."""

    settings: Settings
    clock: FakeClock = field(default_factory=FakeClock)
    metrics_sink: Any = field(default_factory=InMemoryMetricsSink)
    log_sink: Any = field(default_factory=InMemoryLogSink)
    trace_backend: Any = field(default_factory=InMemoryTraceBackend)
    telemetry: Telemetry | None = None
    response: httpx.Response | None = None


def run_async(coro: Any) -> Any:
    """Run a coroutine synchronously."""
    return asyncio.run(coro)


def build_service(ctx: ScenarioContext) -> Any:
    """Wire telemetry from the scenario's sinks and create the app."""
    ctx.telemetry = build_telemetry(
        ctx.settings,
        metrics_sink=ctx.metrics_sink,
        log_sink=ctx.log_sink,
        trace_backend=ctx.trace_backend,
    )
    return create_app(ctx.settings, ctx.telemetry, clock=ctx.clock)


async def simulate_request(ctx: ScenarioContext, method: str, path: str) -> None:
    """Send one request, then deliver whatever telemetry it queued."""
    app = build_service(ctx)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        ctx.response = await client.request(method, path)
    assert ctx.telemetry is not None
    await ctx.telemetry.flush()


async def read_metrics(sink: InMemoryMetricsSink, name: str) -> list[MetricPoint]:
    return [point async for point in sink.read(name)]


async def read_logs(sink: InMemoryLogSink, level: str) -> list[LogRecord]:
    return [record async for record in sink.read(level=level)]
