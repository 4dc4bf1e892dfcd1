"""Send spans to an OTLP/HTTP ingest endpoint as JSON.

Used to feed a running live-check process:

    >>> with LiveCheckProcess(config) as weaver:
    ...     export_spans(weaver.ingest_endpoint(), spans, service_name="checkout")
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import httpx

from fixtureops.errors import SpanStateError
from fixtureops.telemetry.models import AttributeValue, SpanRecord, SpanStatus

logger = logging.getLogger(__name__)

TRACES_PATH = "/v1/traces"

# OTLP span kind and status codes
_SPAN_KIND_INTERNAL = 1
_STATUS_CODES = {
    SpanStatus.UNSET: 0,
    SpanStatus.OK: 1,
    SpanStatus.ERROR: 2,
}


def _any_value(value: AttributeValue) -> dict[str, Any]:
    if isinstance(value, bool):
        return {"boolValue": value}
    if isinstance(value, int):
        # OTLP/JSON encodes 64-bit integers as strings
        return {"intValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, Sequence):
        return {"arrayValue": {"values": [_any_value(v) for v in value]}}
    raise TypeError(f"Unsupported attribute value type {type(value).__name__}")


def _key_values(attributes: Mapping[str, AttributeValue]) -> list[dict[str, Any]]:
    return [{"key": key, "value": _any_value(value)} for key, value in attributes.items()]


def _status_code(status: SpanStatus | str) -> int:
    if isinstance(status, str):
        status = SpanStatus(status.lower())
    return _STATUS_CODES[status]


def span_to_otlp(span: SpanRecord) -> dict[str, Any]:
    """Encode one completed span as an OTLP/JSON span object.

    Raises:
        SpanStateError: If the span is still active or has a zero identifier.
    """
    if not span.is_completed or span.end_time_ns is None:
        raise SpanStateError(f"Only completed spans can be exported: {span.identity}")
    if not span.trace_id.is_valid or not span.span_id.is_valid:
        raise SpanStateError(f"Spans with zero identifiers cannot be exported: {span.identity}")

    encoded: dict[str, Any] = {
        "traceId": span.trace_id.hex,
        "spanId": span.span_id.hex,
        "name": span.name,
        "kind": _SPAN_KIND_INTERNAL,
        "startTimeUnixNano": str(span.start_time_ns),
        "endTimeUnixNano": str(span.end_time_ns),
        "attributes": _key_values(span.attributes),
        "events": [
            {
                "name": event.name,
                "timeUnixNano": str(event.timestamp_ns),
                "attributes": _key_values(event.attributes),
            }
            for event in span.events
        ],
        "status": {"code": _status_code(span.status)},
    }
    if span.parent_span_id is not None:
        encoded["parentSpanId"] = span.parent_span_id.hex
    return encoded


def build_trace_request(
    spans: Iterable[SpanRecord],
    service_name: str,
    scope_name: str = "fixtureops",
) -> dict[str, Any]:
    """Build an ExportTraceServiceRequest body for ``spans``."""
    return {
        "resourceSpans": [
            {
                "resource": {"attributes": _key_values({"service.name": service_name})},
                "scopeSpans": [
                    {
                        "scope": {"name": scope_name},
                        "spans": [span_to_otlp(span) for span in spans],
                    }
                ],
            }
        ]
    }


def export_spans(
    endpoint: str,
    spans: Iterable[SpanRecord],
    service_name: str,
    timeout: float = 5.0,
    client: httpx.Client | None = None,
) -> httpx.Response:
    """POST spans to ``<endpoint>/v1/traces``.

    Raises:
        httpx.HTTPError: On connection failure or a non-2xx response.
    """
    body = build_trace_request(spans, service_name)
    count = len(body["resourceSpans"][0]["scopeSpans"][0]["spans"])
    url = endpoint.rstrip("/") + TRACES_PATH

    logger.debug(f"Exporting {count} spans to {url}")
    if client is not None:
        response = client.post(url, json=body)
    else:
        with httpx.Client(timeout=timeout) as http:
            response = http.post(url, json=body)
    response.raise_for_status()
    logger.info(f"Exported {count} spans for service '{service_name}'")
    return response
