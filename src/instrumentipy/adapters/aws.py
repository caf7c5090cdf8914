"""AWS sink adapters: CloudWatch metrics, CloudWatch Logs and X-Ray.

boto3 clients are blocking and thread-safe, so every call runs in a worker
thread via ``asyncio.to_thread`` and one client is shared by all requests.
"""

import asyncio
import json
import logging
from collections.abc import Sequence
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from instrumentipy.core.encoding import metric_datum, segment_document
from instrumentipy.core.errors import TransportError
from instrumentipy.core.logs import log_diagnostic
from instrumentipy.core.models import LogRecord, MetricPoint, SegmentEvent

logger = logging.getLogger(__name__)

# Service limits per API call
MAX_METRIC_DATUMS = 1000
MAX_LOG_EVENTS = 10000
MAX_TRACE_DOCUMENTS = 50


def make_client(
    service_name: str,
    region: str | None = None,
    access_key: str | None = None,
    secret_key: str | None = None,
    endpoint_url: str | None = None,
) -> Any:
    """Build a boto3 client with short timeouts and no SDK-level retries.

    Explicit keys are used only when both are given; otherwise boto3's
    default credential chain applies.
    """
    client_kwargs: dict[str, Any] = {
        "service_name": service_name,
        "region_name": region,
        "config": Config(
            connect_timeout=5, read_timeout=10, retries={"max_attempts": 1}
        ),
    }
    if endpoint_url:
        client_kwargs["endpoint_url"] = endpoint_url
    if access_key and secret_key:
        client_kwargs["aws_access_key_id"] = access_key
        client_kwargs["aws_secret_access_key"] = secret_key
    return boto3.client(**client_kwargs)


def _chunks(items: Sequence[Any], size: int) -> list[Sequence[Any]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class CloudWatchMetricsSink:
    """MetricsSinkPort backed by CloudWatch ``put_metric_data``."""

    def __init__(self, client: Any) -> None:
        self.client = client

    async def put_metric_data(
        self, namespace: str, points: Sequence[MetricPoint]
    ) -> None:
        datums = [metric_datum(point) for point in points]
        for chunk in _chunks(datums, MAX_METRIC_DATUMS):
            try:
                await asyncio.to_thread(
                    self.client.put_metric_data,
                    Namespace=namespace,
                    MetricData=list(chunk),
                )
            except (BotoCoreError, ClientError) as exc:
                raise TransportError("cloudwatch", str(exc)) from exc
        logger.debug("Sent %d metric datums to %s", len(datums), namespace)


class CloudWatchLogSink:
    """LogSinkPort backed by CloudWatch Logs ``put_log_events``.

    The log stream is created on first use if it does not exist yet. Each
    record is sent as a JSON message so fields stay queryable in Logs
    Insights.
    """

    def __init__(self, client: Any) -> None:
        self.client = client
        self._known_streams: set[tuple[str, str]] = set()

    def _create_stream(self, group: str, stream: str) -> None:
        try:
            self.client.create_log_stream(logGroupName=group, logStreamName=stream)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code != "ResourceAlreadyExistsException":
                raise

    def _put(self, group: str, stream: str, events: list[dict[str, Any]]) -> None:
        try:
            self.client.put_log_events(
                logGroupName=group, logStreamName=stream, logEvents=events
            )
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code != "ResourceNotFoundException" or (group, stream) in self._known_streams:
                raise
            self._create_stream(group, stream)
            self._known_streams.add((group, stream))
            self.client.put_log_events(
                logGroupName=group, logStreamName=stream, logEvents=events
            )

    async def put_log_events(
        self, group: str, stream: str, records: Sequence[LogRecord]
    ) -> None:
        # CloudWatch rejects batches that are not in chronological order
        events = [
            {
                "timestamp": int(record.timestamp * 1000),
                "message": json.dumps(record.to_dict()),
            }
            for record in sorted(records, key=lambda r: r.timestamp)
        ]
        for chunk in _chunks(events, MAX_LOG_EVENTS):
            try:
                await asyncio.to_thread(self._put, group, stream, list(chunk))
            except (BotoCoreError, ClientError) as exc:
                raise TransportError("cloudwatch-logs", str(exc)) from exc


class XRayTraceBackend:
    """TraceBackendPort backed by X-Ray ``put_trace_segments``.

    Open events are sent as in-progress segment documents; close events
    replace them with the completed document.
    """

    def __init__(self, client: Any) -> None:
        self.client = client

    async def send(self, events: Sequence[SegmentEvent]) -> None:
        documents = [segment_document(event) for event in events]
        for chunk in _chunks(documents, MAX_TRACE_DOCUMENTS):
            try:
                response = await asyncio.to_thread(
                    self.client.put_trace_segments,
                    TraceSegmentDocuments=list(chunk),
                )
            except (BotoCoreError, ClientError) as exc:
                raise TransportError("xray", str(exc)) from exc
            unprocessed = response.get("UnprocessedTraceSegments") or []
            if unprocessed:
                log_diagnostic(
                    "X-Ray rejected %d of %d segment documents",
                    len(unprocessed),
                    len(chunk),
                )
