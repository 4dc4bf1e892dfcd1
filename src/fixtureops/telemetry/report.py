"""Reader for live-check report output.

The live-check process writes newline-delimited JSON into
``<output_dir>/live_check.json``. Sample lines carry a
``live_check_result`` object with an ``all_advice`` list; one trailing
line carries the run statistics (recognised by ``advice_level_counts``).
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from fixtureops.errors import ReportError
from fixtureops.telemetry.validators import ValidationError, ValidationErrorKind

logger = logging.getLogger(__name__)

REPORT_FILENAME = "live_check.json"

# Advice types that correspond to a local validation rule
_ADVICE_KIND_MAP = {
    "missing_attribute": ValidationErrorKind.MISSING_ATTRIBUTE,
    "type_mismatch": ValidationErrorKind.INVALID_ATTRIBUTE_TYPE,
}


class AdviceLevel(str, Enum):
    """Severity of a live-check advice."""

    VIOLATION = "violation"
    IMPROVEMENT = "improvement"
    INFORMATION = "information"
    UNKNOWN = "unknown"


class LiveCheckAdvice(BaseModel):
    """One advice record emitted by the live-check process."""

    level: AdviceLevel = Field(default=AdviceLevel.UNKNOWN, alias="advice_level")
    advice_type: str = ""
    message: str = ""
    signal_type: str | None = None
    signal_name: str | None = None
    context: Any = Field(default=None, alias="advice_context")

    model_config = {"populate_by_name": True}

    @field_validator("level", mode="before")
    @classmethod
    def coerce_level(cls, v: Any) -> AdviceLevel:
        try:
            return AdviceLevel(str(v).lower())
        except ValueError:
            return AdviceLevel.UNKNOWN

    @property
    def is_violation(self) -> bool:
        return self.level is AdviceLevel.VIOLATION

    @property
    def signal_descriptor(self) -> str:
        if self.signal_type and self.signal_name:
            return f"{self.signal_type}:{self.signal_name}"
        return self.signal_type or self.signal_name or "<unknown>"

    def to_validation_error(self) -> ValidationError | None:
        """Map the advice onto a local validation rule, when one matches."""
        kind = _ADVICE_KIND_MAP.get(self.advice_type)
        if kind is None:
            return None
        attribute = None
        if isinstance(self.context, dict):
            attribute = self.context.get("attribute_name") or self.context.get("attribute")
        return ValidationError(
            kind=kind,
            record=self.signal_descriptor,
            rule=self.message or self.advice_type,
            attribute=attribute,
        )


class LiveCheckStatistics(BaseModel):
    """Aggregated statistics emitted once live-check completes."""

    advice_level_counts: dict[str, int] = Field(default_factory=dict)
    advice_type_counts: dict[str, int] = Field(default_factory=dict)
    highest_advice_level_counts: dict[str, int] = Field(default_factory=dict)
    no_advice_count: int | None = None
    total_advisories: int | None = None
    total_entities: int | None = None
    total_entities_by_type: dict[str, int] = Field(default_factory=dict)
    registry_coverage: float | None = None

    model_config = {"extra": "ignore"}


class LiveCheckReport(BaseModel):
    """Parsed live-check report."""

    advices: list[LiveCheckAdvice] = Field(default_factory=list)
    statistics: LiveCheckStatistics | None = None
    report_path: Path | None = None

    @classmethod
    def from_report_dir(cls, directory: str | Path) -> LiveCheckReport:
        """Load the report written into ``directory``.

        Raises:
            ReportError: If the report file is missing, unreadable, or a
                line is not valid JSON.
        """
        report_path = Path(directory) / REPORT_FILENAME
        if not report_path.exists():
            raise ReportError(f"Live-check report not found at {report_path}", report_path=str(report_path))

        try:
            text = report_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ReportError(f"Failed to read live-check report {report_path}: {e}", cause=e) from e

        return cls.from_lines(text.splitlines(), report_path=report_path)

    @classmethod
    def from_lines(cls, lines: list[str], report_path: Path | None = None) -> LiveCheckReport:
        advices: list[LiveCheckAdvice] = []
        statistics: LiveCheckStatistics | None = None

        for lineno, line in enumerate(lines, start=1):
            stripped = line.strip()
            if not stripped:
                continue
            try:
                value = json.loads(stripped)
            except json.JSONDecodeError as e:
                raise ReportError(
                    f"Failed to parse live-check output at line {lineno}: {e}",
                    cause=e,
                    line=lineno,
                ) from e
            if not isinstance(value, dict):
                continue

            if "live_check_result" in value:
                result = value.get("live_check_result") or {}
                for raw in result.get("all_advice", []):
                    try:
                        advices.append(LiveCheckAdvice.model_validate(raw))
                    except PydanticValidationError as e:
                        logger.warning(f"Skipping malformed advice at line {lineno}: {e}")
            elif "advice_level_counts" in value:
                try:
                    statistics = LiveCheckStatistics.model_validate(value)
                except PydanticValidationError as e:
                    logger.warning(f"Skipping malformed statistics at line {lineno}: {e}")

        logger.debug(f"Parsed {len(advices)} advices from live-check report")
        return cls(advices=advices, statistics=statistics, report_path=report_path)

    @property
    def has_violations(self) -> bool:
        return any(advice.is_violation for advice in self.advices)

    def violations(self) -> list[LiveCheckAdvice]:
        return [advice for advice in self.advices if advice.is_violation]

    def by_level(self, level: AdviceLevel) -> list[LiveCheckAdvice]:
        return [advice for advice in self.advices if advice.level is level]

    def violations_summary(self) -> str:
        """Human readable summary of every violation."""
        if not self.has_violations:
            return "No Weaver live-check violations detected."

        lines = ["Weaver live-check detected violations:"]
        for advice in self.violations():
            lines.append(f"- [{advice.signal_descriptor}] {advice.advice_type} :: {advice.message}")
        return "\n".join(lines)

    def validation_errors(self) -> list[ValidationError]:
        """Violations that map onto a local validation rule."""
        errors = []
        for advice in self.violations():
            error = advice.to_validation_error()
            if error is not None:
                errors.append(error)
        return errors
