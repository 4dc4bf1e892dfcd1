"""Telemetry values, validators and live-check reports."""

from fixtureops.telemetry.export import build_trace_request, export_spans, span_to_otlp
from fixtureops.telemetry.models import (
    Counter,
    Gauge,
    Histogram,
    MetricKind,
    MetricRecord,
    SpanEvent,
    SpanId,
    SpanRecord,
    SpanState,
    SpanStatus,
    TraceId,
)
from fixtureops.telemetry.report import AdviceLevel, LiveCheckAdvice, LiveCheckReport, LiveCheckStatistics
from fixtureops.telemetry.validators import (
    MetricValidator,
    SpanValidator,
    ValidationError,
    ValidationErrorKind,
)

__all__ = [
    # Values
    "TraceId",
    "SpanId",
    "SpanStatus",
    "SpanState",
    "SpanEvent",
    "SpanRecord",
    "MetricKind",
    "Counter",
    "Gauge",
    "Histogram",
    "MetricRecord",
    # Validation
    "SpanValidator",
    "MetricValidator",
    "ValidationError",
    "ValidationErrorKind",
    # Live-check reports
    "AdviceLevel",
    "LiveCheckAdvice",
    "LiveCheckStatistics",
    "LiveCheckReport",
    # Export
    "export_spans",
    "build_trace_request",
    "span_to_otlp",
]
