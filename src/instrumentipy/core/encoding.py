"""Encoders turning core models into sink payloads."""

import json
from datetime import UTC, datetime
from typing import Any

from instrumentipy.core.models import MetricPoint, SegmentEvent


def api_name(dimensions: dict[str, str]) -> str | None:
    """Combined "<METHOD> <path>" label, if both dimensions are present."""
    method = dimensions.get("method")
    path = dimensions.get("path")
    if method is None or path is None:
        return None
    return f"{method} {path}"


def metric_datum(point: MetricPoint) -> dict[str, Any]:
    """Encode a metric point as a CloudWatch MetricDatum.

    Request points get an extra ``APIName`` dimension so dashboards can
    group by endpoint with a single label.

    Args:
        point: The metric point to encode.

    Returns:
        Dict accepted by ``put_metric_data(MetricData=[...])``.
    """
    dimensions = [
        {"Name": name, "Value": value}
        for name, value in sorted(point.dimensions.items())
    ]
    combined = api_name(point.dimensions)
    if combined is not None:
        dimensions.append({"Name": "APIName", "Value": combined})
    datum: dict[str, Any] = {
        "MetricName": point.name,
        "Dimensions": dimensions,
        "Unit": str(point.unit),
        "Value": point.value,
    }
    if point.timestamp:
        datum["Timestamp"] = datetime.fromtimestamp(point.timestamp, tz=UTC)
    return datum


def segment_document(event: SegmentEvent) -> str:
    """Encode a segment event as an X-Ray segment document.

    Open events produce an in-progress document; close events produce the
    completed segment with end time, HTTP data and error flags.
    """
    segment = event.segment
    doc: dict[str, Any] = {
        "name": segment.name,
        "id": segment.segment_id,
        "trace_id": segment.trace_id,
        "start_time": segment.start_time,
    }
    if segment.parent_id is not None:
        doc["parent_id"] = segment.parent_id
    if event.kind == "open":
        doc["in_progress"] = True
        return json.dumps(doc)

    doc["end_time"] = event.end_time
    if event.http:
        request = {k: v for k, v in event.http.items() if k in ("method", "url")}
        doc["http"] = {"request": request}
        if "status" in event.http:
            doc["http"]["response"] = {"status": event.http["status"]}
    if event.error:
        doc["error"] = True
    if event.fault:
        doc["fault"] = True
    if event.cause is not None:
        doc["cause"] = {"exceptions": [{"message": event.cause}]}
    if event.abandoned:
        doc["annotations"] = {"abandoned": True}
    return json.dumps(doc)
