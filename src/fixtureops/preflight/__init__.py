"""Pre-flight availability checks."""

from fixtureops.preflight.probe import (
    AvailabilityProbe,
    AvailabilityResult,
    AvailabilityStatus,
    SystemKind,
)

__all__ = [
    "AvailabilityProbe",
    "AvailabilityResult",
    "AvailabilityStatus",
    "SystemKind",
]
