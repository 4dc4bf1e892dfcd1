"""Telemetry validators.

Validators are pure: they never raise for invalid telemetry. ``validate``
returns the first violated rule as a ``ValidationError`` value (or None),
and ``validate_all`` returns one entry per offending record so a test can
assert on exactly which rule each record broke.

Span checks run in this order:
    1. name non-empty
    2. trace/span identifiers non-zero (when enabled)
    3. required attributes present, attribute values well-typed
    4. end time >= start time (completed spans only)
    5. status is a defined value

Metric checks: name, attributes, value sanity.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fixtureops.telemetry.models import (
    Counter,
    Gauge,
    Histogram,
    MetricRecord,
    SpanRecord,
    SpanStatus,
)


class ValidationErrorKind(Enum):
    """The rule a telemetry record violated."""

    MISSING_ATTRIBUTE = "missing_attribute"
    INVALID_ATTRIBUTE_TYPE = "invalid_attribute_type"
    INVALID_TEMPORAL_ORDER = "invalid_temporal_order"
    INVALID_IDENTIFIER = "invalid_identifier"
    EMPTY_NAME = "empty_name"
    INVALID_STATUS = "invalid_status"
    INVALID_VALUE = "invalid_value"


@dataclass(frozen=True)
class ValidationError:
    """A single rule violation. This is a value, not an exception.

    Attributes:
        kind: Which rule was violated.
        record: Identity of the offending record.
        rule: Human-readable description of the violation.
        attribute: Attribute key involved, when the rule concerns one.
    """

    kind: ValidationErrorKind
    record: str
    rule: str
    attribute: str | None = None

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.record}: {self.rule}"


_SCALAR_TYPES = (str, bool, int, float)


def _is_valid_attribute_value(value: Any) -> bool:
    """True for OTLP-compatible values: scalars or homogeneous scalar lists."""
    if isinstance(value, _SCALAR_TYPES):
        return True
    if isinstance(value, (list, tuple)):
        if not value:
            return True
        first = type(value[0])
        return first in _SCALAR_TYPES and all(type(item) is first for item in value)
    return False


def _check_attributes(
    record: str,
    attributes: Mapping[str, Any],
    required: tuple[str, ...],
    expected_types: Mapping[str, type | tuple[type, ...]],
) -> ValidationError | None:
    for key in required:
        if key not in attributes:
            return ValidationError(
                kind=ValidationErrorKind.MISSING_ATTRIBUTE,
                record=record,
                rule=f"Required attribute '{key}' is missing",
                attribute=key,
            )

    for key, value in attributes.items():
        expected = expected_types.get(key)
        if expected is not None:
            # bool is an int subclass; an int attribute must not accept True
            if isinstance(value, bool) and bool not in _as_tuple(expected):
                ok = False
            else:
                ok = isinstance(value, expected)
            if not ok:
                return ValidationError(
                    kind=ValidationErrorKind.INVALID_ATTRIBUTE_TYPE,
                    record=record,
                    rule=(
                        f"Attribute '{key}' expected {_type_names(expected)}, "
                        f"got {type(value).__name__}"
                    ),
                    attribute=key,
                )
        elif not _is_valid_attribute_value(value):
            return ValidationError(
                kind=ValidationErrorKind.INVALID_ATTRIBUTE_TYPE,
                record=record,
                rule=f"Attribute '{key}' has unsupported type {type(value).__name__}",
                attribute=key,
            )
    return None


def _as_tuple(expected: type | tuple[type, ...]) -> tuple[type, ...]:
    return expected if isinstance(expected, tuple) else (expected,)


def _type_names(expected: type | tuple[type, ...]) -> str:
    return " | ".join(t.__name__ for t in _as_tuple(expected))


class SpanValidator:
    """Checks spans against correctness rules.

    Args:
        required_attributes: Keys every span must carry.
        validate_non_zero_ids: Reject zero trace/span identifiers.
        attribute_types: Optional expected Python type per attribute key.

    Example::

        validator = SpanValidator(required_attributes=["http.method"])
        error = validator.validate(span)
        assert error is None, str(error)
    """

    def __init__(
        self,
        required_attributes: Iterable[str] = (),
        validate_non_zero_ids: bool = True,
        attribute_types: Mapping[str, type | tuple[type, ...]] | None = None,
    ) -> None:
        self.required_attributes = tuple(required_attributes)
        self.validate_non_zero_ids = validate_non_zero_ids
        self.attribute_types = dict(attribute_types or {})

    def validate(self, span: SpanRecord) -> ValidationError | None:
        """Return the first rule the span violates, or None."""
        record = span.identity

        if not span.name:
            return ValidationError(
                kind=ValidationErrorKind.EMPTY_NAME,
                record=record,
                rule="Span name cannot be empty",
            )

        if self.validate_non_zero_ids:
            if not span.trace_id.is_valid:
                return ValidationError(
                    kind=ValidationErrorKind.INVALID_IDENTIFIER,
                    record=record,
                    rule="Trace ID cannot be zero",
                )
            if not span.span_id.is_valid:
                return ValidationError(
                    kind=ValidationErrorKind.INVALID_IDENTIFIER,
                    record=record,
                    rule="Span ID cannot be zero",
                )
            if span.parent_span_id is not None and not span.parent_span_id.is_valid:
                return ValidationError(
                    kind=ValidationErrorKind.INVALID_IDENTIFIER,
                    record=record,
                    rule="Parent span ID cannot be zero",
                )

        error = _check_attributes(record, span.attributes, self.required_attributes, self.attribute_types)
        if error is not None:
            return error

        # Ordering is undefined until the span completes
        if span.is_completed and span.end_time_ns is not None and span.end_time_ns < span.start_time_ns:
            return ValidationError(
                kind=ValidationErrorKind.INVALID_TEMPORAL_ORDER,
                record=record,
                rule=f"Span end time {span.end_time_ns} is before start time {span.start_time_ns}",
            )

        if not _is_valid_status(span.status):
            return ValidationError(
                kind=ValidationErrorKind.INVALID_STATUS,
                record=record,
                rule=f"Invalid span status {span.status!r} (expected one of ok, error, unset)",
            )

        return None

    def validate_all(self, spans: Iterable[SpanRecord]) -> list[ValidationError]:
        """Validate every span independently; one error per offending span."""
        errors = []
        for span in spans:
            error = self.validate(span)
            if error is not None:
                errors.append(error)
        return errors

    def is_valid(self, span: SpanRecord) -> bool:
        return self.validate(span) is None


def _is_valid_status(status: Any) -> bool:
    if isinstance(status, SpanStatus):
        return True
    if isinstance(status, str):
        return status.lower() in {s.value for s in SpanStatus}
    return False


class MetricValidator:
    """Checks metrics against correctness rules.

    Metrics carry no identifiers and no timing, so only the name, the
    attributes and the value itself are checked.
    """

    def __init__(
        self,
        required_attributes: Iterable[str] = (),
        attribute_types: Mapping[str, type | tuple[type, ...]] | None = None,
    ) -> None:
        self.required_attributes = tuple(required_attributes)
        self.attribute_types = dict(attribute_types or {})

    def validate(self, metric: MetricRecord) -> ValidationError | None:
        """Return the first rule the metric violates, or None."""
        record = metric.identity

        if not metric.name:
            return ValidationError(
                kind=ValidationErrorKind.EMPTY_NAME,
                record=record,
                rule="Metric name cannot be empty",
            )

        error = _check_attributes(record, metric.attributes, self.required_attributes, self.attribute_types)
        if error is not None:
            return error

        return self._check_value(metric)

    def _check_value(self, metric: MetricRecord) -> ValidationError | None:
        value = metric.value
        problem: str | None = None
        if isinstance(value, Counter):
            if value.count < 0:
                problem = f"Counter value {value.count} is negative"
        elif isinstance(value, Gauge):
            if not math.isfinite(value.value):
                problem = f"Gauge value {value.value} is not finite"
        elif isinstance(value, Histogram):
            if not value.buckets:
                problem = "Histogram has no buckets"
            elif any(count < 0 for count in value.buckets):
                problem = "Histogram has a negative bucket count"
        else:
            problem = f"Unsupported metric value type {type(value).__name__}"

        if problem is None:
            return None
        return ValidationError(kind=ValidationErrorKind.INVALID_VALUE, record=metric.identity, rule=problem)

    def validate_all(self, metrics: Iterable[MetricRecord]) -> list[ValidationError]:
        """Validate every metric independently; one error per offending metric."""
        errors = []
        for metric in metrics:
            error = self.validate(metric)
            if error is not None:
                errors.append(error)
        return errors

    def is_valid(self, metric: MetricRecord) -> bool:
        return self.validate(metric) is None
