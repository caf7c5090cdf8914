"""Shared test fixtures for all test modules."""

import httpx
import pytest

from instrumentipy.adapters.storage.in_memory import (
    InMemoryLogSink,
    InMemoryMetricsSink,
    InMemoryTraceBackend,
)
from instrumentipy.config import Settings, load_settings
from instrumentipy.runtime import Telemetry, build_telemetry
from tests.helpers import FakeClock


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Settings for an in-memory deployment, independent of the environment."""
    return load_settings(
        _env_file=None,
        app_name="instrumentipy-test",
        namespace="TestNamespace",
        log_group_name="test-group",
        log_stream_name="test-stream",
        sink_backend="memory",
        long_running_delay_seconds=0.05,
    )


@pytest.fixture
def metrics_sink() -> InMemoryMetricsSink:
    return InMemoryMetricsSink()


@pytest.fixture
def log_sink() -> InMemoryLogSink:
    return InMemoryLogSink()


@pytest.fixture
def trace_backend() -> InMemoryTraceBackend:
    return InMemoryTraceBackend()


@pytest.fixture
def telemetry(
    settings: Settings,
    metrics_sink: InMemoryMetricsSink,
    log_sink: InMemoryLogSink,
    trace_backend: InMemoryTraceBackend,
) -> Telemetry:
    """Telemetry wired to the in-memory sinks (dispatchers not started)."""
    return build_telemetry(
        settings,
        metrics_sink=metrics_sink,
        log_sink=log_sink,
        trace_backend=trace_backend,
    )


# === ASGI Test Fixtures ===


@pytest.fixture
def basic_asgi_app():
    """Basic ASGI app fixture that returns 200 OK."""
    from instrumentipy.adapters.frameworks.asgi import Receive, Scope, Send

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.body", "body": b"OK"})

    return app


@pytest.fixture
def asgi_scope():
    """Factory fixture for creating ASGI scope dicts."""
    from instrumentipy.adapters.frameworks.asgi import Scope

    def _scope(
        method: str = "GET",
        path: str = "/test",
        headers: list[tuple[bytes, bytes]] | None = None,
    ) -> Scope:
        return {
            "type": "http",
            "method": method,
            "path": path,
            "query_string": b"",
            "headers": headers or [],
        }

    return _scope


@pytest.fixture
def asgi_receive():
    """Receive callable delivering an empty request body."""

    async def receive() -> dict[str, object]:
        return {"type": "http.request", "body": b"", "more_body": False}

    return receive


@pytest.fixture
def asgi_send_capture():
    """Fixture that returns a send callable and a responses list for capture."""

    responses: list[dict[str, object]] = []

    async def send(message: dict[str, object]) -> None:
        """Capture ASGI messages."""
        responses.append(message)

    return send, responses


@pytest.fixture
def asgi_test_client():
    """Build an httpx client that drives an ASGI app in-process (no lifespan)."""

    def _get_client(app):
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return _get_client
