"""Tests for sink payload encoders."""

import json
from datetime import UTC, datetime

import pytest

from instrumentipy.core.encoding import (
    api_name,
    metric_datum,
    segment_document,
)
from instrumentipy.core.models import (
    MetricPoint,
    MetricUnit,
    SegmentEvent,
    TraceSegmentHandle,
)

pytestmark = [pytest.mark.unit, pytest.mark.tier(1)]

HANDLE = TraceSegmentHandle(
    segment_id="53995c3f42cd8ad8",
    trace_id="1-5759e988-bd862e3fe1be46a994272793",
    name="my-service",
    start_time=1700000000.0,
)


class TestMetricDatum:
    def test_request_point_gets_api_name_dimension(self) -> None:
        point = MetricPoint(
            name="Latency",
            value=12.0,
            unit=MetricUnit.MILLISECONDS,
            dimensions={"method": "GET", "path": "/"},
            timestamp=1700000000.0,
        )

        datum = metric_datum(point)

        assert datum["MetricName"] == "Latency"
        assert datum["Unit"] == "Milliseconds"
        assert datum["Value"] == 12.0
        assert datum["Dimensions"] == [
            {"Name": "method", "Value": "GET"},
            {"Name": "path", "Value": "/"},
            {"Name": "APIName", "Value": "GET /"},
        ]
        assert datum["Timestamp"] == datetime.fromtimestamp(1700000000.0, tz=UTC)

    def test_point_without_request_dimensions_has_no_api_name(self) -> None:
        point = MetricPoint(name="QueueDepth", value=3, unit=MetricUnit.COUNT)

        datum = metric_datum(point)

        assert datum["Dimensions"] == []
        assert "Timestamp" not in datum

    def test_api_name_requires_both_dimensions(self) -> None:
        assert api_name({"method": "GET"}) is None
        assert api_name({"method": "GET", "path": "/x"}) == "GET /x"


class TestSegmentDocument:
    def test_open_event_is_in_progress(self) -> None:
        doc = json.loads(segment_document(SegmentEvent(kind="open", segment=HANDLE)))

        assert doc == {
            "name": "my-service",
            "id": "53995c3f42cd8ad8",
            "trace_id": "1-5759e988-bd862e3fe1be46a994272793",
            "start_time": 1700000000.0,
            "in_progress": True,
        }

    def test_close_event_carries_http_and_fault(self) -> None:
        event = SegmentEvent(
            kind="close",
            segment=HANDLE,
            end_time=1700000001.5,
            http={"method": "GET", "url": "/error", "status": 500},
            fault=True,
            cause="This is a deliberate error",
        )

        doc = json.loads(segment_document(event))

        assert doc["end_time"] == 1700000001.5
        assert "in_progress" not in doc
        assert doc["http"] == {
            "request": {"method": "GET", "url": "/error"},
            "response": {"status": 500},
        }
        assert doc["fault"] is True
        assert "error" not in doc
        assert doc["cause"] == {"exceptions": [{"message": "This is a deliberate error"}]}

    def test_nested_segment_keeps_parent_id(self) -> None:
        child = TraceSegmentHandle(
            segment_id="1111111111111111",
            trace_id=HANDLE.trace_id,
            name="my-service",
            start_time=1.0,
            parent_id=HANDLE.segment_id,
        )

        doc = json.loads(segment_document(SegmentEvent(kind="open", segment=child)))

        assert doc["parent_id"] == HANDLE.segment_id

    def test_abandoned_segment_is_annotated(self) -> None:
        event = SegmentEvent(kind="close", segment=HANDLE, end_time=2.0, abandoned=True)

        doc = json.loads(segment_document(event))

        assert doc["annotations"] == {"abandoned": True}
