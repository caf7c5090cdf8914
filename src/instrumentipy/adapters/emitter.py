"""Non-blocking metric emission to a metrics sink."""

from instrumentipy.adapters.dispatch import OverflowPolicy, QueueDispatcher
from instrumentipy.core.logs import log_exception
from instrumentipy.core.models import MetricPoint
from instrumentipy.core.ports import MetricsSinkPort


class MetricEmitter:
    """Queues metric points and ships them to the sink in batches.

    ``emit`` returns immediately and never raises into the request path.
    Delivery happens on a background dispatcher; transport failures are
    logged on the diagnostics logger and otherwise ignored.

    Args:
        sink: Metrics backend adapter.
        namespace: Fixed per-deployment metrics namespace.
        max_size: Queue capacity before the overflow policy applies.
        batch_size: Points per ``put_metric_data`` call.
        flush_interval: Seconds between periodic deliveries.
        overflow: Which point to drop when the queue is full.
    """

    def __init__(
        self,
        sink: MetricsSinkPort,
        namespace: str,
        max_size: int = 10000,
        batch_size: int = 20,
        flush_interval: float = 1.0,
        overflow: OverflowPolicy = OverflowPolicy.DROP_NEWEST,
    ) -> None:
        self.sink = sink
        self.namespace = namespace
        self.dispatcher: QueueDispatcher[MetricPoint] = QueueDispatcher(
            "metrics",
            self._deliver,
            max_size=max_size,
            batch_size=batch_size,
            flush_interval=flush_interval,
            overflow=overflow,
        )

    def emit(self, point: MetricPoint) -> None:
        """Queue one point for delivery."""
        try:
            self.dispatcher.submit(point)
        except Exception:
            log_exception("Failed to queue metric %s", point.name)

    async def _deliver(self, batch: list[MetricPoint]) -> None:
        await self.sink.put_metric_data(self.namespace, batch)

    def start(self) -> None:
        self.dispatcher.start()

    async def flush(self) -> None:
        await self.dispatcher.flush()

    async def stop(self, flush: bool = True) -> None:
        await self.dispatcher.stop(flush=flush)
