"""Tests for OTLP/HTTP JSON span export."""

from __future__ import annotations

import json

import httpx
import pytest

from fixtureops.errors import SpanStateError
from fixtureops.telemetry import SpanId, SpanRecord, SpanStatus, TraceId
from fixtureops.telemetry.export import build_trace_request, export_spans, span_to_otlp


@pytest.fixture
def span() -> SpanRecord:
    parent = SpanId(0x10)
    span = SpanRecord.start(
        "GET /users",
        1_000,
        trace_id=TraceId(0xABC),
        span_id=SpanId(0x20),
        parent=parent,
        attributes={
            "http.method": "GET",
            "http.status_code": 200,
            "cache.hit": False,
            "duration.ratio": 0.5,
            "tags": ["a", "b"],
        },
    )
    span.add_event("retry", 1_500, {"attempt": 1})
    span.complete(2_000, status=SpanStatus.ERROR)
    return span


class TestSpanToOtlp:
    """Tests for encoding a single span."""

    def test_ids_and_times(self, span):
        """Test ids are hex and timestamps are decimal strings."""
        encoded = span_to_otlp(span)
        assert encoded["traceId"] == TraceId(0xABC).hex
        assert encoded["spanId"] == "0000000000000020"
        assert encoded["parentSpanId"] == "0000000000000010"
        assert encoded["startTimeUnixNano"] == "1000"
        assert encoded["endTimeUnixNano"] == "2000"
        assert encoded["status"] == {"code": 2}

    def test_attribute_values(self, span):
        """Test each attribute type gets its OTLP value wrapper."""
        values = {kv["key"]: kv["value"] for kv in span_to_otlp(span)["attributes"]}
        assert values["http.method"] == {"stringValue": "GET"}
        assert values["http.status_code"] == {"intValue": "200"}
        assert values["cache.hit"] == {"boolValue": False}
        assert values["duration.ratio"] == {"doubleValue": 0.5}
        assert values["tags"] == {"arrayValue": {"values": [{"stringValue": "a"}, {"stringValue": "b"}]}}

    def test_events(self, span):
        event = span_to_otlp(span)["events"][0]
        assert event["name"] == "retry"
        assert event["timeUnixNano"] == "1500"

    def test_root_span_has_no_parent(self):
        """Test parentSpanId is omitted for root spans."""
        root = SpanRecord.completed("root", 1, 2)
        assert "parentSpanId" not in span_to_otlp(root)

    def test_string_status(self):
        """Test a raw status string is encoded by its meaning."""
        root = SpanRecord.completed("root", 1, 2)
        root.status = "ok"
        assert span_to_otlp(root)["status"] == {"code": 1}

    def test_active_span_rejected(self):
        """Test only completed spans can be exported."""
        with pytest.raises(SpanStateError):
            span_to_otlp(SpanRecord.start("op", 1))

    def test_zero_id_rejected(self):
        """Test a zero identifier never reaches the wire."""
        zero = SpanRecord.completed("op", 1, 2, trace_id=TraceId(0))
        with pytest.raises(SpanStateError):
            span_to_otlp(zero)


class TestExportSpans:
    """Tests for posting spans to an ingest endpoint."""

    def test_request_shape(self, span):
        """Test the body is a single resource with the service name."""
        body = build_trace_request([span], "checkout")
        resource = body["resourceSpans"][0]
        assert resource["resource"]["attributes"] == [{"key": "service.name", "value": {"stringValue": "checkout"}}]
        assert resource["scopeSpans"][0]["scope"] == {"name": "fixtureops"}
        assert len(resource["scopeSpans"][0]["spans"]) == 1

    def test_posts_to_traces_path(self, span):
        """Test spans are POSTed as JSON to <endpoint>/v1/traces."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={})

        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            response = export_spans("http://127.0.0.1:4317/", [span], "checkout", client=client)

        assert response.status_code == 200
        assert str(requests[0].url) == "http://127.0.0.1:4317/v1/traces"
        body = json.loads(requests[0].content)
        assert body["resourceSpans"][0]["scopeSpans"][0]["spans"][0]["name"] == "GET /users"

    def test_error_status_raises(self, span):
        """Test a non-2xx response raises."""
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        with httpx.Client(transport=transport) as client:
            with pytest.raises(httpx.HTTPStatusError):
                export_spans("http://127.0.0.1:4317", [span], "checkout", client=client)
