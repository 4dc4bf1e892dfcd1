"""Telemetry value model - identifiers, spans and metrics.

Identifiers are value objects over fixed-width unsigned integers. The
all-zero identifier can be represented (so invalid input can be modelled
and reported) but it is never valid for a completed or exported span.

``SpanRecord`` keeps one structural invariant in its constructor: the
end time is present exactly when the span is completed. The factories
(``SpanRecord.start`` / ``SpanRecord.completed``) and ``complete()``
additionally reject an end time before the start time. Records built
directly from external data may carry such an ordering error and
``SpanValidator`` reports it.
"""

from __future__ import annotations

import math
import secrets
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Union

from fixtureops.errors import SpanStateError

TRACE_ID_BITS = 128
SPAN_ID_BITS = 64

AttributeValue = Union[str, bool, int, float, Sequence[str], Sequence[bool], Sequence[int], Sequence[float]]
Attributes = dict[str, AttributeValue]


def _check_width(value: int, bits: int, kind: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{kind} must be an int, got {type(value).__name__}")
    if not 0 <= value < (1 << bits):
        raise ValueError(f"{kind} {value} does not fit in {bits} bits")


@dataclass(frozen=True, order=True)
class TraceId:
    """128-bit trace identifier."""

    value: int

    def __post_init__(self) -> None:
        _check_width(self.value, TRACE_ID_BITS, "TraceId")

    @property
    def is_valid(self) -> bool:
        return self.value != 0

    @property
    def hex(self) -> str:
        return f"{self.value:032x}"

    @classmethod
    def from_hex(cls, text: str) -> TraceId:
        return cls(int(text, 16))

    @classmethod
    def random(cls) -> TraceId:
        # randbits(128) is zero with negligible probability, but never hand one out
        value = 0
        while value == 0:
            value = secrets.randbits(TRACE_ID_BITS)
        return cls(value)

    def __str__(self) -> str:
        return self.hex


@dataclass(frozen=True, order=True)
class SpanId:
    """64-bit span identifier."""

    value: int

    def __post_init__(self) -> None:
        _check_width(self.value, SPAN_ID_BITS, "SpanId")

    @property
    def is_valid(self) -> bool:
        return self.value != 0

    @property
    def hex(self) -> str:
        return f"{self.value:016x}"

    @classmethod
    def from_hex(cls, text: str) -> SpanId:
        return cls(int(text, 16))

    @classmethod
    def random(cls) -> SpanId:
        value = 0
        while value == 0:
            value = secrets.randbits(SPAN_ID_BITS)
        return cls(value)

    def __str__(self) -> str:
        return self.hex


class SpanStatus(Enum):
    """Span status codes."""

    UNSET = "unset"
    OK = "ok"
    ERROR = "error"


class SpanState(Enum):
    """Span lifecycle state. Spans go ACTIVE -> COMPLETED once."""

    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass(frozen=True)
class SpanEvent:
    """A timestamped event recorded on a span."""

    name: str
    timestamp_ns: int
    attributes: Attributes = field(default_factory=dict)


@dataclass
class SpanRecord:
    """One timed operation, linked to a trace and optionally to a parent.

    Attributes:
        trace_id: Trace this span belongs to.
        span_id: Identifier of this span.
        name: Operation name.
        start_time_ns: Start timestamp, nanoseconds since the epoch.
        end_time_ns: End timestamp; set only when ``state`` is COMPLETED.
        parent_span_id: Parent span, or None for a root span.
        status: Span status. Raw strings from ingested data are kept as-is
            so the validator can report unknown values.
        attributes: Span attributes.
        events: Events recorded while the span was active.
        state: ACTIVE or COMPLETED.
    """

    trace_id: TraceId
    span_id: SpanId
    name: str
    start_time_ns: int
    end_time_ns: int | None = None
    parent_span_id: SpanId | None = None
    status: SpanStatus | str = SpanStatus.UNSET
    attributes: Attributes = field(default_factory=dict)
    events: list[SpanEvent] = field(default_factory=list)
    state: SpanState = SpanState.ACTIVE

    def __post_init__(self) -> None:
        if self.state is SpanState.COMPLETED and self.end_time_ns is None:
            raise SpanStateError(f"Completed span '{self.name}' must have an end time")
        if self.state is SpanState.ACTIVE and self.end_time_ns is not None:
            raise SpanStateError(f"Active span '{self.name}' cannot have an end time")

    @classmethod
    def start(
        cls,
        name: str,
        start_time_ns: int,
        *,
        trace_id: TraceId | None = None,
        span_id: SpanId | None = None,
        parent: SpanRecord | SpanId | None = None,
        attributes: Mapping[str, AttributeValue] | None = None,
    ) -> SpanRecord:
        """Create an ACTIVE span.

        A child span inherits the parent's trace id when ``parent`` is a
        SpanRecord and no ``trace_id`` is given.
        """
        parent_span_id: SpanId | None = None
        if isinstance(parent, SpanRecord):
            parent_span_id = parent.span_id
            trace_id = trace_id or parent.trace_id
        elif parent is not None:
            parent_span_id = parent
        return cls(
            trace_id=trace_id or TraceId.random(),
            span_id=span_id or SpanId.random(),
            name=name,
            start_time_ns=start_time_ns,
            parent_span_id=parent_span_id,
            attributes=dict(attributes or {}),
        )

    @classmethod
    def completed(
        cls,
        name: str,
        start_time_ns: int,
        end_time_ns: int,
        *,
        trace_id: TraceId | None = None,
        span_id: SpanId | None = None,
        parent: SpanRecord | SpanId | None = None,
        status: SpanStatus = SpanStatus.OK,
        attributes: Mapping[str, AttributeValue] | None = None,
    ) -> SpanRecord:
        """Create a COMPLETED span, rejecting an end time before the start."""
        span = cls.start(
            name,
            start_time_ns,
            trace_id=trace_id,
            span_id=span_id,
            parent=parent,
            attributes=attributes,
        )
        span.complete(end_time_ns, status=status)
        return span

    @property
    def is_root(self) -> bool:
        return self.parent_span_id is None

    @property
    def is_active(self) -> bool:
        return self.state is SpanState.ACTIVE

    @property
    def is_completed(self) -> bool:
        return self.state is SpanState.COMPLETED

    @property
    def duration_ns(self) -> int | None:
        if self.end_time_ns is None:
            return None
        return self.end_time_ns - self.start_time_ns

    @property
    def identity(self) -> str:
        """Short human-readable identity used in validation reports."""
        return f"span '{self.name}' [{self.trace_id.hex}/{self.span_id.hex}]"

    def set_attribute(self, key: str, value: AttributeValue) -> None:
        if not self.is_active:
            raise SpanStateError(f"Cannot modify completed span '{self.name}'")
        self.attributes[key] = value

    def add_event(self, name: str, timestamp_ns: int, attributes: Attributes | None = None) -> None:
        if not self.is_active:
            raise SpanStateError(f"Cannot add events to completed span '{self.name}'")
        self.events.append(SpanEvent(name=name, timestamp_ns=timestamp_ns, attributes=dict(attributes or {})))

    def complete(self, end_time_ns: int, status: SpanStatus | None = None) -> None:
        """Mark the span completed. A span completes exactly once.

        Raises:
            SpanStateError: If the span is already completed or the end
                time precedes the start time.
        """
        if self.state is SpanState.COMPLETED:
            raise SpanStateError(f"Span '{self.name}' is already completed")
        if end_time_ns < self.start_time_ns:
            raise SpanStateError(
                f"End time {end_time_ns} must be >= start time {self.start_time_ns}"
            )
        self.end_time_ns = end_time_ns
        if status is not None:
            self.status = status
        self.state = SpanState.COMPLETED


class MetricKind(Enum):
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


@dataclass(frozen=True)
class Counter:
    """Monotonic count."""

    count: int
    kind = MetricKind.COUNTER


@dataclass(frozen=True)
class Gauge:
    """Point-in-time reading."""

    value: float
    kind = MetricKind.GAUGE

    @property
    def is_finite(self) -> bool:
        return math.isfinite(self.value)


@dataclass(frozen=True)
class Histogram:
    """Bucket counts."""

    buckets: tuple[int, ...]
    kind = MetricKind.HISTOGRAM

    def __post_init__(self) -> None:
        object.__setattr__(self, "buckets", tuple(self.buckets))

    @property
    def total(self) -> int:
        return sum(self.buckets)


MetricValue = Union[Counter, Gauge, Histogram]


@dataclass(frozen=True)
class MetricRecord:
    """An immutable metric data point."""

    name: str
    value: MetricValue
    attributes: Mapping[str, AttributeValue] = field(default_factory=dict)
    timestamp_ns: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    @property
    def identity(self) -> str:
        return f"metric '{self.name}'"
