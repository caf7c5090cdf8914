"""BDD step definitions for request instrumentation scenarios."""

from types import SimpleNamespace

import pytest
from pytest_bdd import given, parsers, then, when

from instrumentipy.config import Settings
from tests.features.instrumentation.steps_helpers import (
    ScenarioContext,
    read_logs,
    read_metrics,
    run_async,
    simulate_request,
)
from tests.helpers import FailingLogSink, FailingMetricsSink, FailingTraceBackend


@pytest.fixture
def ctx(settings: Settings) -> ScenarioContext:
    """Fresh scenario context for each test."""
    return ScenarioContext(settings=settings)


# === Background Steps ===
@given("an instrumented service with in-memory sinks")
def step_service(ctx: ScenarioContext) -> None:
    assert ctx.settings.sink_backend == "memory"


@given(parsers.parse("the long-running handler takes {minutes:d} minutes"))
def step_long_running(
    ctx: ScenarioContext, minutes: int, monkeypatch: pytest.MonkeyPatch
) -> None:
    seconds = minutes * 60.0
    ctx.settings = ctx.settings.model_copy(
        update={"long_running_delay_seconds": seconds}
    )

    async def fake_sleep(delay: float) -> None:
        ctx.clock.advance(delay)

    monkeypatch.setattr("instrumentipy.app.asyncio", SimpleNamespace(sleep=fake_sleep))


@given("every telemetry sink is unreachable")
def step_unreachable_sinks(ctx: ScenarioContext) -> None:
    ctx.metrics_sink = FailingMetricsSink()
    ctx.log_sink = FailingLogSink()
    ctx.trace_backend = FailingTraceBackend()


# === Request Steps ===
@when(parsers.parse('a {method} request is made to "{path}"'))
def when_request(ctx: ScenarioContext, method: str, path: str) -> None:
    run_async(simulate_request(ctx, method, path))


# === Response Assertions ===
@then(parsers.parse("the response status is {code:d}"))
def then_status(ctx: ScenarioContext, code: int) -> None:
    assert ctx.response is not None
    assert ctx.response.status_code == code


@then(parsers.parse('the response body is "{body}"'))
def then_body(ctx: ScenarioContext, body: str) -> None:
    assert ctx.response.text == body


@then(parsers.parse('the response is an error with message "{message}"'))
def then_error_body(ctx: ScenarioContext, message: str) -> None:
    assert ctx.response.json() == {"status": "error", "message": message}


# === Metric Assertions ===
@then(parsers.parse('the "{name}" metric count for {method} "{path}" is {n:d}'))
def then_metric_count(
    ctx: ScenarioContext, name: str, method: str, path: str, n: int
) -> None:
    points = run_async(read_metrics(ctx.metrics_sink, name))
    matching = [p for p in points if p.dimensions == {"method": method, "path": path}]
    assert len(matching) == n


@then(parsers.parse('the "{name}" metric for {method} "{path}" is about {ms:d} ms'))
def then_metric_value(
    ctx: ScenarioContext, name: str, method: str, path: str, ms: int
) -> None:
    points = run_async(read_metrics(ctx.metrics_sink, name))
    (point,) = [p for p in points if p.dimensions == {"method": method, "path": path}]
    assert point.value == pytest.approx(ms, abs=50)


# === Log Assertions ===
@then(parsers.parse('the number of "{level}" log records is {n:d}'))
def then_log_count(ctx: ScenarioContext, level: str, n: int) -> None:
    assert len(run_async(read_logs(ctx.log_sink, level))) == n


# === Trace Assertions ===
@then("every trace segment is closed exactly once")
def then_segments_closed(ctx: ScenarioContext) -> None:
    events = ctx.trace_backend.events
    opened = [e.segment.segment_id for e in events if e.kind == "open"]
    closed = [e.segment.segment_id for e in events if e.kind == "close"]
    assert opened
    assert sorted(closed) == sorted(opened)
    assert ctx.telemetry.tracer.open_segments == []


@then("the trace segment is marked as a fault")
def then_segment_fault(ctx: ScenarioContext) -> None:
    (close,) = [e for e in ctx.trace_backend.events if e.kind == "close"]
    assert close.fault is True


# === Failure Isolation ===
@then("the sink failures are reported on the diagnostics logger")
def then_failures_reported(
    ctx: ScenarioContext, caplog: pytest.LogCaptureFixture
) -> None:
    assert ctx.metrics_sink.attempts >= 1
    assert ctx.log_sink.attempts >= 1
    assert ctx.telemetry.emitter.dispatcher.failed_batches >= 1
    assert ctx.telemetry.request_logger.dispatcher.failed_batches >= 1
    assert "dispatcher failed to deliver" in caplog.text
