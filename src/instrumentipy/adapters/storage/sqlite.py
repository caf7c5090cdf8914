"""SQLite sink adapters for local, durable telemetry.

Used when the deployment runs without a cloud backend. Each sink writes with
aiosqlite so delivery never blocks the event loop; the database uses WAL mode
so the three sinks can share one file.
"""

import asyncio
import json
import sqlite3
from collections.abc import AsyncIterable, AsyncIterator, Sequence
from typing import Any

import aiosqlite

from instrumentipy.core.encoding import segment_document
from instrumentipy.core.errors import TransportError
from instrumentipy.core.models import LogRecord, MetricPoint, MetricUnit, SegmentEvent

_SCHEMA = """
CREATE TABLE IF NOT EXISTS metrics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    namespace TEXT NOT NULL,
    name TEXT NOT NULL,
    timestamp REAL NOT NULL,
    value REAL NOT NULL,
    unit TEXT NOT NULL,
    dimensions TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_metrics_name_timestamp ON metrics(name, timestamp);
CREATE TABLE IF NOT EXISTS logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    log_group TEXT NOT NULL,
    log_stream TEXT NOT NULL,
    timestamp REAL NOT NULL,
    level TEXT NOT NULL,
    message TEXT NOT NULL,
    record TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_logs_timestamp ON logs(timestamp);
CREATE TABLE IF NOT EXISTS segments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    segment_id TEXT NOT NULL,
    trace_id TEXT NOT NULL,
    kind TEXT NOT NULL,
    document TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_segments_segment_id ON segments(segment_id);
"""

_INSERT_METRIC = """
INSERT INTO metrics (namespace, name, timestamp, value, unit, dimensions)
VALUES (?, ?, ?, ?, ?, ?)
"""

_SELECT_METRICS = """
SELECT name, value, unit, dimensions, timestamp FROM metrics
WHERE (? IS NULL OR name = ?)
ORDER BY id ASC
"""

_INSERT_LOG = """
INSERT INTO logs (log_group, log_stream, timestamp, level, message, record)
VALUES (?, ?, ?, ?, ?, ?)
"""

_SELECT_LOGS = """
SELECT record FROM logs
WHERE timestamp > ?
ORDER BY timestamp ASC
"""

_INSERT_SEGMENT = """
INSERT INTO segments (segment_id, trace_id, kind, document) VALUES (?, ?, ?, ?)
"""

_SELECT_SEGMENTS = """
SELECT kind, document FROM segments ORDER BY id ASC
"""


class _SQLiteSink:
    """One lazily opened aiosqlite connection shared by a sink's calls.

    aiosqlite runs the connection on its own thread, so a single connection
    serves every delivery from the dispatcher without blocking the loop.
    The schema is created on first use; file databases switch to WAL so the
    three sinks can write the same file.
    """

    _sink_name = "sqlite"

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self._open_lock: asyncio.Lock | None = None

    async def _connect(self) -> aiosqlite.Connection:
        if self._conn is not None:
            return self._conn
        if self._open_lock is None:
            self._open_lock = asyncio.Lock()
        async with self._open_lock:
            if self._conn is None:
                conn = await aiosqlite.connect(self._db_path)
                if self._db_path != ":memory:":
                    await conn.execute("PRAGMA journal_mode=WAL")
                await conn.executescript(_SCHEMA)
                self._conn = conn
        return self._conn

    async def _write_many(self, query: str, rows: list[tuple[Any, ...]]) -> None:
        try:
            db = await self._connect()
            await db.executemany(query, rows)
            await db.commit()
        except (sqlite3.Error, OSError) as exc:
            raise TransportError(self._sink_name, str(exc)) from exc

    async def _select(
        self, query: str, params: tuple[Any, ...] = ()
    ) -> AsyncIterator[Any]:
        db = await self._connect()
        async with db.execute(query, params) as cursor:
            async for row in cursor:
                yield row

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None


class SQLiteMetricsSink(_SQLiteSink):
    """SQLite implementation of MetricsSinkPort."""

    _sink_name = "sqlite-metrics"

    async def put_metric_data(
        self, namespace: str, points: Sequence[MetricPoint]
    ) -> None:
        rows = [
            (
                namespace,
                p.name,
                p.timestamp,
                p.value,
                str(p.unit),
                json.dumps(p.dimensions),
            )
            for p in points
        ]
        await self._write_many(_INSERT_METRIC, rows)

    async def read(self, name: str | None = None) -> AsyncIterable[MetricPoint]:
        """Read stored points in insertion order, optionally by name."""
        async for metric_name, value, unit, dimensions, timestamp in self._select(
            _SELECT_METRICS, (name, name)
        ):
            yield MetricPoint(
                name=metric_name,
                value=value,
                unit=MetricUnit(unit),
                dimensions=json.loads(dimensions),
                timestamp=timestamp,
            )


class SQLiteLogSink(_SQLiteSink):
    """SQLite implementation of LogSinkPort.

    The full structured record is stored as JSON next to the indexed
    timestamp and level columns.
    """

    _sink_name = "sqlite-logs"

    async def put_log_events(
        self, group: str, stream: str, records: Sequence[LogRecord]
    ) -> None:
        rows = [
            (
                group,
                stream,
                r.timestamp,
                r.level,
                r.message,
                json.dumps(r.to_dict()),
            )
            for r in records
        ]
        await self._write_many(_INSERT_LOG, rows)

    async def read(self, since: float = 0) -> AsyncIterable[dict[str, Any]]:
        """Read stored records (as dicts) with timestamp > since."""
        async for (record,) in self._select(_SELECT_LOGS, (since,)):
            yield json.loads(record)


class SQLiteTraceBackend(_SQLiteSink):
    """SQLite implementation of TraceBackendPort storing segment documents."""

    _sink_name = "sqlite-traces"

    async def send(self, events: Sequence[SegmentEvent]) -> None:
        rows = [
            (
                e.segment.segment_id,
                e.segment.trace_id,
                e.kind,
                segment_document(e),
            )
            for e in events
        ]
        await self._write_many(_INSERT_SEGMENT, rows)

    async def read(self) -> AsyncIterable[tuple[str, dict[str, Any]]]:
        """Read (kind, document) pairs in insertion order."""
        async for kind, document in self._select(_SELECT_SEGMENTS):
            yield kind, json.loads(document)
