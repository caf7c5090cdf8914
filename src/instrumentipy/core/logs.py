"""Log helper functions for creating LogRecord objects."""

import logging
import time

from instrumentipy.core.models import LogRecord

DIAGNOSTICS_LOGGER = "instrumentipy.diagnostics"

_diagnostics = logging.getLogger(DIAGNOSTICS_LOGGER)


def log_exception(message: str, *args: object) -> None:
    """Report a swallowed telemetry failure on the diagnostics logger.

    Must be called from an ``except`` block so the traceback is attached.
    """
    _diagnostics.warning(message, *args, exc_info=True)


def log_diagnostic(message: str, *args: object) -> None:
    """Report a telemetry condition (drops, late closes) without a traceback."""
    _diagnostics.warning(message, *args)


def level_for_status(status_code: int | None) -> str:
    """Level for an access log record: 4xx WARN, 5xx ERROR, anything else INFO."""
    if status_code is None:
        return "INFO"
    if 400 <= status_code < 500:
        return "WARN"
    if 500 <= status_code < 600:
        return "ERROR"
    return "INFO"


def log(
    level: str,
    message: str,
    **fields: str | int | float | bool | None,
) -> LogRecord:
    """Create a log record with automatic timestamp.

    Known request fields (method, path, status, latency_ms, error_message)
    fill the matching LogRecord attributes; anything else goes to ``extra``.

    Args:
        level: Log level (e.g., "INFO", "ERROR")
        message: The log message
        **fields: Structured fields

    Returns:
        LogRecord with current timestamp
    """
    method = fields.pop("method", "") or ""
    path = fields.pop("path", "") or ""
    status = fields.pop("status", None)
    latency_ms = fields.pop("latency_ms", None)
    error_message = fields.pop("error_message", None)
    return LogRecord(
        level=level,
        message=message,
        method=str(method),
        path=str(path),
        status=int(status) if status is not None else None,
        latency_ms=float(latency_ms) if latency_ms is not None else None,
        error_message=str(error_message) if error_message is not None else None,
        timestamp=time.time(),
        extra={k: v for k, v in fields.items() if v is not None},
    )


def info(message: str, **fields: str | int | float | bool | None) -> LogRecord:
    """Create an INFO log record with automatic timestamp."""
    return log("INFO", message, **fields)


def error(message: str, **fields: str | int | float | bool | None) -> LogRecord:
    """Create an ERROR log record with automatic timestamp."""
    return log("ERROR", message, **fields)
