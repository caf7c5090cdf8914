"""ASGI middleware running every HTTP request through the instrumentation chain.

The middleware works with any ASGI server (uvicorn, hypercorn, daphne) and
any ASGI framework. Register it inside the framework's outermost error
handler (``app.add_middleware`` for Starlette/FastAPI) so that unhandled
route exceptions reach it before a generic 500 page is rendered.
"""

import asyncio
import contextlib
from collections.abc import Callable, Coroutine
from typing import Any

from instrumentipy.adapters.tracing import (
    TRACE_HEADER,
    format_trace_header,
    parse_trace_header,
)
from instrumentipy.core.chain import InstrumentationChain
from instrumentipy.core.models import FailureResponse, RequestContext

# ASGI type aliases
Scope = dict[str, Any]
Receive = Callable[[], Coroutine[Any, Any, dict[str, Any]]]
Send = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
ASGIApp = Callable[[Scope, Receive, Send], Coroutine[Any, Any, None]]


def _extract_header(scope: Scope, header_name: str) -> str | None:
    """Return the first value of a request header (case-insensitive).

    Args:
        scope: ASGI scope dictionary containing request metadata.
        header_name: Name of the header to search for.

    Returns:
        Header value, or None if absent.
    """
    header_bytes = header_name.lower().encode()
    headers: list[tuple[bytes, bytes]] = scope.get("headers", [])
    for name, value in headers:
        if name.lower() == header_bytes:
            return value.decode("latin-1")
    return None


async def _send_failure(
    send: Send,
    failure: FailureResponse,
    extra_headers: list[tuple[bytes, bytes]] | None = None,
) -> None:
    """Send the uniform JSON failure response."""
    body = failure.render()
    headers = [
        (b"content-type", b"application/json"),
        (b"content-length", str(len(body)).encode()),
        *(extra_headers or []),
    ]
    await send(
        {"type": "http.response.start", "status": failure.status_code, "headers": headers}
    )
    await send({"type": "http.response.body", "body": body})


class InstrumentationMiddleware:
    """ASGI middleware that brackets each HTTP request in the chain.

    Non-HTTP scopes (lifespan, websocket) pass through untouched. For HTTP
    requests a background listener owns ``receive``: it replays request
    messages to the app and marks the request abandoned when the client
    disconnects before the response is complete.

    Args:
        app: The ASGI application to wrap.
        chain: Shared instrumentation chain.
        trace_header: Request header carrying the parent trace context, also
            used to return the trace id on the response.
    """

    def __init__(
        self,
        app: ASGIApp,
        chain: InstrumentationChain,
        trace_header: str = TRACE_HEADER,
    ) -> None:
        self.app = app
        self.chain = chain
        self.trace_header = trace_header
        self._response_header = trace_header.lower().encode()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        ctx = RequestContext(method=scope["method"], path=scope["path"])
        parent = parse_trace_header(_extract_header(scope, self.trace_header))
        # The listener reads one message ahead of the app, so a disconnect after
        # the last body chunk is seen even if the app never calls receive.
        inbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=1)

        async def listen_for_disconnect() -> None:
            while True:
                message = await receive()
                if message["type"] == "http.disconnect":
                    if not ctx.response_complete:
                        ctx.abandoned = True
                    while True:
                        await inbox.put(message)
                await inbox.put(message)

        async def wrapped_receive() -> dict[str, Any]:
            return await inbox.get()

        async def wrapped_send(message: dict[str, Any]) -> None:
            if message["type"] == "http.response.start":
                ctx.status = message["status"]
                ctx.response_started = True
                if ctx.segment is not None:
                    headers = list(message.get("headers", []))
                    headers.append(
                        (self._response_header, format_trace_header(ctx.segment).encode())
                    )
                    message = {**message, "headers": headers}
            elif message["type"] == "http.response.body" and not message.get(
                "more_body", False
            ):
                ctx.response_complete = True
            try:
                await send(message)
            except OSError:
                # Server reports the client connection as gone.
                ctx.abandoned = True
                raise

        async def handler(_ctx: RequestContext) -> None:
            await self.app(scope, wrapped_receive, wrapped_send)

        listener = asyncio.create_task(listen_for_disconnect())
        try:
            failure = await self.chain.run(ctx, handler, parent)
        finally:
            listener.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await listener
        if failure is None:
            return
        if ctx.response_started:
            # Headers already went out; only the body can still be ended.
            if not ctx.response_complete:
                await send({"type": "http.response.body", "body": b"", "more_body": False})
            return
        extra_headers = []
        if ctx.segment is not None:
            extra_headers.append(
                (self._response_header, format_trace_header(ctx.segment).encode())
            )
        await _send_failure(send, failure, extra_headers)
