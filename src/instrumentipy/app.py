"""Example FastAPI service instrumented with instrumentipy.

Run with:
    python -m instrumentipy

Endpoints:
    /               - returns "Hello, World!"
    /error          - fails on purpose; answered by the error capture stage
    /long-running   - responds after LONG_RUNNING_DELAY_SECONDS (default 3 minutes)

Every route passes through InstrumentationMiddleware, which emits
RequestCount, Latency and ErrorCount metrics, one log record per request and
one trace segment per request.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from instrumentipy.adapters.frameworks.asgi import InstrumentationMiddleware
from instrumentipy.adapters.logging import LogSinkHandler, configure_logging
from instrumentipy.config import Settings, get_settings
from instrumentipy.runtime import Telemetry, build_telemetry


def create_app(
    settings: Settings | None = None,
    telemetry: Telemetry | None = None,
    clock: Callable[[], float] = time.perf_counter,
) -> FastAPI:
    """Create the instrumented application.

    Args:
        settings: Deployment settings (default: loaded from the environment).
        telemetry: Shared telemetry clients (default: built from settings).
        clock: Monotonic clock used for latency measurement.
    """
    settings = settings or get_settings()
    telemetry = telemetry or build_telemetry(settings)
    sink_handler = LogSinkHandler(telemetry.request_logger, level=logging.INFO)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        configure_logging(getattr(logging, settings.log_level.upper(), logging.INFO))
        logging.getLogger().addHandler(sink_handler)
        telemetry.start()
        try:
            yield
        finally:
            logging.getLogger().removeHandler(sink_handler)
            await telemetry.stop()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.telemetry = telemetry
    app.add_middleware(
        InstrumentationMiddleware,
        chain=telemetry.chain(clock),
        trace_header=settings.trace_header,
    )

    @app.get("/", response_class=PlainTextResponse)
    async def index() -> str:
        return "Hello, World!"

    @app.get("/error")
    async def error() -> None:
        raise RuntimeError("This is a deliberate error")

    @app.get("/long-running", response_class=PlainTextResponse)
    async def long_running() -> str:
        delay = settings.long_running_delay_seconds
        await asyncio.sleep(delay)
        return f"This request took {delay / 60:g} minutes to finish."

    return app
