"""fixtureops - external test-resource orchestration and telemetry validation.

Manage out-of-process dependencies of a test suite (a weaver live-check
process, disposable Docker containers) and validate spans and metrics
against typed correctness rules.

Quick Start:
    from fixtureops import ContainerOrchestrator, HttpWait

    with ContainerOrchestrator() as docker:
        web = docker.create("nginx", "1.27", ports=[80], wait_for=[HttpWait(port=80)])
        assert web.exec(["nginx", "-t"]).ok
"""

from __future__ import annotations

from fixtureops.config import FixtureOpsSettings, get_settings, load_settings
from fixtureops.errors import (
    BinaryNotFoundError,
    ContainerCreationFailedError,
    DaemonUnreachableError,
    DaemonUnresponsiveError,
    ErrorCode,
    FixtureOpsError,
    ProcessNotRunningError,
    ProcessStartFailedError,
    ProcessStopFailedError,
    RegistryNotFoundError,
    WaitConditionTimeoutError,
)
from fixtureops.infra import ContainerOrchestrator, DockerContainer, ExecResult, sweep_orphans
from fixtureops.live import LiveCheckConfig, LiveCheckProcess
from fixtureops.preflight import AvailabilityProbe, AvailabilityResult, AvailabilityStatus, SystemKind
from fixtureops.runtime import (
    HttpWait,
    LifecycleState,
    LogWait,
    ManagedResource,
    PortWait,
    acquired,
)
from fixtureops.telemetry import (
    Counter,
    Gauge,
    Histogram,
    LiveCheckReport,
    MetricRecord,
    MetricValidator,
    SpanId,
    SpanRecord,
    SpanStatus,
    SpanValidator,
    TraceId,
    ValidationError,
    ValidationErrorKind,
    export_spans,
)

__version__ = "0.1.0"

__all__ = [
    # Config
    "FixtureOpsSettings",
    "load_settings",
    "get_settings",
    # Errors
    "FixtureOpsError",
    "ErrorCode",
    "BinaryNotFoundError",
    "RegistryNotFoundError",
    "DaemonUnreachableError",
    "DaemonUnresponsiveError",
    "ProcessStartFailedError",
    "ProcessStopFailedError",
    "ProcessNotRunningError",
    "ContainerCreationFailedError",
    "WaitConditionTimeoutError",
    # Lifecycle
    "ManagedResource",
    "LifecycleState",
    "acquired",
    "HttpWait",
    "LogWait",
    "PortWait",
    # Preflight
    "AvailabilityProbe",
    "AvailabilityResult",
    "AvailabilityStatus",
    "SystemKind",
    # Containers
    "ContainerOrchestrator",
    "DockerContainer",
    "ExecResult",
    "sweep_orphans",
    # Live check
    "LiveCheckConfig",
    "LiveCheckProcess",
    "LiveCheckReport",
    # Telemetry
    "TraceId",
    "SpanId",
    "SpanStatus",
    "SpanRecord",
    "Counter",
    "Gauge",
    "Histogram",
    "MetricRecord",
    "SpanValidator",
    "MetricValidator",
    "ValidationError",
    "ValidationErrorKind",
    "export_spans",
    "__version__",
]
