"""Trace segments with exactly-once close semantics.

Segment and trace ids follow the AWS X-Ray format so segments nest under a
parent propagated in the ``X-Amzn-Trace-Id`` header.
"""

import re
import secrets
import threading
import time

from instrumentipy.adapters.dispatch import OverflowPolicy, QueueDispatcher
from instrumentipy.core.logs import log_diagnostic, log_exception
from instrumentipy.core.models import SegmentEvent, TraceParent, TraceSegmentHandle
from instrumentipy.core.ports import TraceBackendPort

TRACE_HEADER = "X-Amzn-Trace-Id"

_TRACE_ID_RE = re.compile(r"^1-[0-9a-f]{8}-[0-9a-f]{24}$")
_SEGMENT_ID_RE = re.compile(r"^[0-9a-f]{16}$")
_MAX_HEADER_LENGTH = 256


def new_trace_id(now: float | None = None) -> str:
    """Generate an X-Ray trace id: version, epoch seconds, 96 random bits."""
    epoch = int(time.time() if now is None else now)
    return f"1-{epoch:08x}-{secrets.token_hex(12)}"


def new_segment_id() -> str:
    return secrets.token_hex(8)


def parse_trace_header(header: str | None) -> TraceParent | None:
    """Parse an ``X-Amzn-Trace-Id`` header value.

    Args:
        header: Raw header value such as
            ``Root=1-5759e988-bd862e3fe1be46a994272793;Parent=53995c3f42cd8ad8;Sampled=1``.

    Returns:
        TraceParent, or None when the header is absent or malformed.
    """
    if not header or len(header) > _MAX_HEADER_LENGTH:
        return None
    fields: dict[str, str] = {}
    for part in header.split(";"):
        key, sep, value = part.strip().partition("=")
        if sep:
            fields[key.strip().lower()] = value.strip().lower()
    root = fields.get("root")
    if root is None or not _TRACE_ID_RE.match(root):
        return None
    parent = fields.get("parent")
    if parent is not None and not _SEGMENT_ID_RE.match(parent):
        parent = None
    return TraceParent(
        trace_id=root, parent_id=parent, sampled=fields.get("sampled") != "0"
    )


def format_trace_header(handle: TraceSegmentHandle) -> str:
    """Response header value identifying the request's trace."""
    return f"Root={handle.trace_id}"


class Tracer:
    """Opens and closes one segment per request.

    Each handle is closed at most once: the first ``close`` for a handle
    sends the close event and returns True, later calls return False. The
    set of open segments is guarded by a lock held only for membership
    changes. Events go to the trace backend through a background dispatcher.

    Args:
        backend: Trace backend adapter.
        max_size: Event queue capacity.
        batch_size: Events per backend call.
        flush_interval: Seconds between periodic deliveries.
        overflow: Which event to drop when the queue is full.
    """

    def __init__(
        self,
        backend: TraceBackendPort,
        max_size: int = 10000,
        batch_size: int = 20,
        flush_interval: float = 1.0,
        overflow: OverflowPolicy = OverflowPolicy.DROP_NEWEST,
    ) -> None:
        self.backend = backend
        self._open: dict[str, TraceSegmentHandle] = {}
        self._unsampled: set[str] = set()
        self._lock = threading.Lock()
        self.dispatcher: QueueDispatcher[SegmentEvent] = QueueDispatcher(
            "traces",
            self._deliver,
            max_size=max_size,
            batch_size=batch_size,
            flush_interval=flush_interval,
            overflow=overflow,
        )

    @property
    def open_segments(self) -> list[TraceSegmentHandle]:
        with self._lock:
            return list(self._open.values())

    def open(
        self, name: str, parent: TraceParent | None = None
    ) -> TraceSegmentHandle:
        """Open a segment, joining ``parent``'s trace when given."""
        now = time.time()
        handle = TraceSegmentHandle(
            segment_id=new_segment_id(),
            trace_id=parent.trace_id if parent is not None else new_trace_id(now),
            name=name,
            start_time=now,
            parent_id=parent.parent_id if parent is not None else None,
        )
        sampled = parent is None or parent.sampled
        with self._lock:
            self._open[handle.segment_id] = handle
            if not sampled:
                self._unsampled.add(handle.segment_id)
        if sampled:
            self._send(SegmentEvent(kind="open", segment=handle))
        return handle

    def close(
        self,
        handle: TraceSegmentHandle,
        *,
        status: int | None = None,
        cause: str | None = None,
        abandoned: bool = False,
        request: dict[str, str] | None = None,
    ) -> bool:
        """Close a segment exactly once.

        4xx statuses mark the segment as an error, 5xx statuses or a
        handler failure mark it as a fault.

        Returns:
            True if this call closed the segment, False if it was already
            closed (or never opened by this tracer).
        """
        with self._lock:
            if self._open.pop(handle.segment_id, None) is None:
                return False
            unsampled = handle.segment_id in self._unsampled
            self._unsampled.discard(handle.segment_id)
        if unsampled:
            return True
        http: dict[str, str | int] = dict(request or {})
        if status is not None:
            http["status"] = status
        self._send(
            SegmentEvent(
                kind="close",
                segment=handle,
                end_time=time.time(),
                http=http,
                error=status is not None and 400 <= status < 500,
                fault=cause is not None or (status is not None and status >= 500),
                abandoned=abandoned,
                cause=cause,
            )
        )
        return True

    def close_all(self) -> int:
        """Close every segment still open, e.g. at process shutdown.

        Returns:
            Number of segments closed.
        """
        closed = 0
        for handle in self.open_segments:
            if self.close(handle, abandoned=True):
                closed += 1
        if closed:
            log_diagnostic("Closed %d in-flight trace segments at shutdown", closed)
        return closed

    def _send(self, event: SegmentEvent) -> None:
        try:
            self.dispatcher.submit(event)
        except Exception:
            log_exception("Failed to queue %s event for segment", event.kind)

    async def _deliver(self, batch: list[SegmentEvent]) -> None:
        await self.backend.send(batch)

    def start(self) -> None:
        self.dispatcher.start()

    async def flush(self) -> None:
        await self.dispatcher.flush()

    async def stop(self, flush: bool = True) -> None:
        await self.dispatcher.stop(flush=flush)
