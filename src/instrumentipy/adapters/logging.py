"""Python logging integration for instrumentipy.

``LogSinkHandler`` bridges the standard library logging module to the
request logger queue, so application logs reach the same log group and
stream as the per-request records.
"""

import logging
import sys
import traceback

from instrumentipy.adapters.request_logger import RequestLogger
from instrumentipy.core.logs import DIAGNOSTICS_LOGGER
from instrumentipy.core.models import LogRecord

# Attributes every stdlib record carries; anything else came in via ``extra=``
_BUILTIN_ATTRS = frozenset(
    logging.LogRecord("", logging.NOTSET, "", 0, "", None, None).__dict__
) | {"message", "asctime"}

# Request fields carried as LogRecord attributes rather than extras
_REQUEST_FIELDS = frozenset({"method", "path", "status", "latency_ms"})

_LEVEL_NAMES = {"WARNING": "WARN", "CRITICAL": "ERROR"}

_CONFIGURED = False


class LogSinkHandler(logging.Handler):
    """Logging handler that forwards records to a RequestLogger.

    Records from the diagnostics logger are skipped so a failing sink
    cannot feed its own failure reports back into itself.

    Example:
        ```python
        handler = LogSinkHandler(request_logger)
        logging.getLogger().addHandler(handler)
        ```
    """

    def __init__(self, request_logger: RequestLogger, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self._request_logger = request_logger

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith(DIAGNOSTICS_LOGGER):
            return False
        return super().filter(record)

    def emit(self, record: logging.LogRecord) -> None:
        """Convert a stdlib record and queue it. Never blocks on the sink."""
        try:
            self._request_logger.log(self._convert(record))
        except Exception:
            self.handleError(record)

    def _convert(self, record: logging.LogRecord) -> LogRecord:
        extra: dict[str, str | int | float | bool] = {
            "logger": record.name,
            "funcName": record.funcName or "",
            "lineno": record.lineno,
        }
        request: dict[str, str | int | float | bool] = {}

        for key, value in record.__dict__.items():
            if key in _BUILTIN_ATTRS or not isinstance(
                value, (str, int, float, bool)
            ):
                continue
            if key in _REQUEST_FIELDS:
                request[key] = value
            else:
                extra[key] = value

        error_message = None
        if record.exc_info:
            exc_type, exc_value, exc_tb = record.exc_info
            if exc_type is not None:
                extra["exc_type"] = exc_type.__name__
            if exc_value is not None:
                error_message = str(exc_value)
            if exc_tb is not None:
                extra["exc_traceback"] = "".join(
                    traceback.format_exception(exc_type, exc_value, exc_tb)
                )

        status = request.get("status")
        latency_ms = request.get("latency_ms")
        return LogRecord(
            level=_LEVEL_NAMES.get(record.levelname, record.levelname),
            message=record.getMessage(),
            method=str(request.get("method", "")),
            path=str(request.get("path", "")),
            status=int(status) if status is not None else None,
            latency_ms=float(latency_ms) if latency_ms is not None else None,
            error_message=error_message,
            timestamp=record.created,
            extra=extra,
        )


def configure_logging(level: int = logging.INFO) -> None:
    """Install a stderr stream handler on the root logger.

    Safe to call multiple times (no-op after first call).
    """
    global _CONFIGURED
    if _CONFIGURED:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(level)
    _CONFIGURED = True
