"""Tests for core models and the metric/log helper functions."""

import dataclasses
import json

import pytest

from instrumentipy.core import logs, metrics
from instrumentipy.core.models import (
    FailureResponse,
    LogRecord,
    MetricPoint,
    MetricUnit,
    RequestContext,
)

pytestmark = [pytest.mark.unit, pytest.mark.tier(1)]


class TestMetricPoint:
    def test_metric_point_is_immutable(self) -> None:
        point = MetricPoint(name="Latency", value=1.0, unit=MetricUnit.MILLISECONDS)

        with pytest.raises(dataclasses.FrozenInstanceError):
            point.value = 2.0  # type: ignore[misc]

    def test_request_count_helper_carries_method_and_path(self) -> None:
        point = metrics.request_count("GET", "/")

        assert point.name == "RequestCount"
        assert point.value == 1.0
        assert point.unit is MetricUnit.COUNT
        assert point.dimensions == {"method": "GET", "path": "/"}
        assert point.timestamp > 0

    def test_latency_helper_uses_milliseconds(self) -> None:
        point = metrics.latency("POST", "/orders", 12.5)

        assert point.name == "Latency"
        assert point.value == 12.5
        assert point.unit is MetricUnit.MILLISECONDS
        assert point.dimensions == {"method": "POST", "path": "/orders"}

    def test_error_count_helper(self) -> None:
        point = metrics.error_count("GET", "/error")

        assert point.name == "ErrorCount"
        assert point.unit is MetricUnit.COUNT
        assert point.dimensions == {"method": "GET", "path": "/error"}

    def test_counter_copies_dimensions(self) -> None:
        dims = {"method": "GET"}
        point = metrics.counter("Hits", dimensions=dims)
        dims["method"] = "PUT"

        assert point.dimensions == {"method": "GET"}


class TestLogRecord:
    def test_to_dict_includes_request_fields(self) -> None:
        record = LogRecord(
            level="INFO",
            message="GET / 200 3ms",
            method="GET",
            path="/",
            status=200,
            latency_ms=3.14159,
            timestamp=1700000000.0,
        )

        assert record.to_dict() == {
            "timestamp": 1700000000.0,
            "level": "INFO",
            "message": "GET / 200 3ms",
            "method": "GET",
            "path": "/",
            "status": 200,
            "latency_ms": 3.142,
        }

    def test_to_dict_omits_unset_fields_and_merges_extra(self) -> None:
        record = LogRecord(
            level="ERROR",
            message="Error: boom",
            error_message="boom",
            extra={"trace_id": "1-abc"},
        )

        data = record.to_dict()

        assert data["error"] == "boom"
        assert data["trace_id"] == "1-abc"
        assert "status" not in data
        assert "method" not in data

    def test_extras_cannot_replace_record_fields(self) -> None:
        record = LogRecord(
            level="ERROR",
            message="boom",
            status=500,
            timestamp=1700000000.0,
            extra={"level": "INFO", "timestamp": 0, "status": 200, "error": "x", "user": "ada"},
        )

        assert record.to_dict() == {
            "timestamp": 1700000000.0,
            "level": "ERROR",
            "message": "boom",
            "status": 500,
            "user": "ada",
        }

    def test_log_helper_routes_known_fields(self) -> None:
        record = logs.error(
            "Error: boom",
            method="GET",
            path="/error",
            status=500,
            latency_ms=4,
            error_message="boom",
            error_type="RuntimeError",
        )

        assert record.level == "ERROR"
        assert record.method == "GET"
        assert record.path == "/error"
        assert record.status == 500
        assert record.latency_ms == 4.0
        assert record.error_message == "boom"
        assert record.extra == {"error_type": "RuntimeError"}

    def test_log_helper_drops_none_extras(self) -> None:
        record = logs.info("hello", trace_id=None)

        assert record.extra == {}

    @pytest.mark.parametrize(
        ("status", "level"),
        [(200, "INFO"), (302, "INFO"), (404, "WARN"), (503, "ERROR"), (None, "INFO")],
    )
    def test_level_for_status(self, status: int | None, level: str) -> None:
        assert logs.level_for_status(status) == level


class TestRequestContext:
    def test_contexts_do_not_share_state(self) -> None:
        first = RequestContext(method="GET", path="/")
        second = RequestContext(method="GET", path="/")
        first.status = 200

        assert second.status is None


class TestFailureResponse:
    def test_body_is_uniform(self) -> None:
        failure = FailureResponse(message="This is a deliberate error")

        assert failure.status_code == 500
        assert json.loads(failure.render()) == {
            "status": "error",
            "message": "This is a deliberate error",
        }
