"""Structured request logging decoupled from the response path."""

from instrumentipy.adapters.dispatch import OverflowPolicy, QueueDispatcher
from instrumentipy.core import logs
from instrumentipy.core.logs import log_exception
from instrumentipy.core.models import LogRecord
from instrumentipy.core.ports import LogSinkPort


class RequestLogger:
    """Queues structured log records for a log group and stream.

    A sink that blocks only stalls the background dispatcher, never the
    response being sent to the client.

    Args:
        sink: Log sink adapter.
        group: Log group identity from deployment configuration.
        stream: Log stream identity from deployment configuration.
        max_size: Queue capacity before the overflow policy applies.
        batch_size: Records per ``put_log_events`` call.
        flush_interval: Seconds between periodic deliveries.
        overflow: Which record to drop when the queue is full.
    """

    def __init__(
        self,
        sink: LogSinkPort,
        group: str,
        stream: str,
        max_size: int = 10000,
        batch_size: int = 20,
        flush_interval: float = 1.0,
        overflow: OverflowPolicy = OverflowPolicy.DROP_NEWEST,
    ) -> None:
        self.sink = sink
        self.group = group
        self.stream = stream
        self.dispatcher: QueueDispatcher[LogRecord] = QueueDispatcher(
            "logs",
            self._deliver,
            max_size=max_size,
            batch_size=batch_size,
            flush_interval=flush_interval,
            overflow=overflow,
        )

    def log(self, record: LogRecord) -> None:
        """Queue one record for delivery."""
        try:
            self.dispatcher.submit(record)
        except Exception:
            log_exception("Failed to queue log record %r", record.message)

    def info(self, message: str, **fields: str | int | float | bool | None) -> None:
        self.log(logs.info(message, **fields))

    def error(self, message: str, **fields: str | int | float | bool | None) -> None:
        self.log(logs.error(message, **fields))

    async def _deliver(self, batch: list[LogRecord]) -> None:
        await self.sink.put_log_events(self.group, self.stream, batch)

    def start(self) -> None:
        self.dispatcher.start()

    async def flush(self) -> None:
        await self.dispatcher.flush()

    async def stop(self, flush: bool = True) -> None:
        await self.dispatcher.stop(flush=flush)
