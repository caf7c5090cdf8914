"""Metric helper functions for creating MetricPoint objects."""

import time

from instrumentipy.core.models import MetricPoint, MetricUnit

REQUEST_COUNT = "RequestCount"
LATENCY = "Latency"
ERROR_COUNT = "ErrorCount"


def counter(
    name: str,
    value: float = 1.0,
    dimensions: dict[str, str] | None = None,
) -> MetricPoint:
    """Create a count metric point.

    Args:
        name: Metric name (e.g., "RequestCount")
        value: Increment value (default: 1.0)
        dimensions: Optional dimension labels

    Returns:
        MetricPoint with unit Count and current timestamp
    """
    return MetricPoint(
        name=name,
        value=value,
        unit=MetricUnit.COUNT,
        dimensions=dict(dimensions or {}),
        timestamp=time.time(),
    )


def timing(
    name: str,
    elapsed_ms: float,
    dimensions: dict[str, str] | None = None,
) -> MetricPoint:
    """Create a duration metric point in milliseconds.

    Args:
        name: Metric name (e.g., "Latency")
        elapsed_ms: Observed duration in milliseconds
        dimensions: Optional dimension labels

    Returns:
        MetricPoint with unit Milliseconds and current timestamp
    """
    return MetricPoint(
        name=name,
        value=float(elapsed_ms),
        unit=MetricUnit.MILLISECONDS,
        dimensions=dict(dimensions or {}),
        timestamp=time.time(),
    )


def request_count(method: str, path: str) -> MetricPoint:
    """RequestCount point for one inbound request."""
    return counter(REQUEST_COUNT, 1.0, {"method": method, "path": path})


def latency(method: str, path: str, elapsed_ms: float) -> MetricPoint:
    """Latency point for one completed request."""
    return timing(LATENCY, elapsed_ms, {"method": method, "path": path})


def error_count(method: str, path: str) -> MetricPoint:
    """ErrorCount point for one failed request."""
    return counter(ERROR_COUNT, 1.0, {"method": method, "path": path})
