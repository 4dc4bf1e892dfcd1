"""fixtureops error handling.

Exception hierarchy with error codes, resource context and recovery
suggestions. Telemetry validation failures are *not* exceptions; see
``fixtureops.telemetry.validators.ValidationError``.
"""

from fixtureops.errors.base import (
    BinaryNotFoundError,
    ConfigValidationError,
    ContainerCreationFailedError,
    ContainerOperationError,
    DaemonUnreachableError,
    DaemonUnresponsiveError,
    ErrorCode,
    ErrorContext,
    ExecTimeoutError,
    FixtureOpsError,
    InvalidConfigError,
    OperationCancelledError,
    ProcessNotRunningError,
    ProcessStartFailedError,
    ProcessStopFailedError,
    RegistryInvalidError,
    RegistryNotFoundError,
    ReportError,
    ResourceExitedError,
    ResourceTimeoutError,
    SpanStateError,
    StateConflictError,
    WaitConditionTimeoutError,
)

__all__ = [
    # Base exceptions
    "FixtureOpsError",
    "ErrorCode",
    "ErrorContext",
    # Availability errors
    "BinaryNotFoundError",
    "DaemonUnreachableError",
    "DaemonUnresponsiveError",
    "RegistryNotFoundError",
    "RegistryInvalidError",
    # Process errors
    "ProcessStartFailedError",
    "ResourceExitedError",
    "ProcessStopFailedError",
    "ProcessNotRunningError",
    "ReportError",
    # Container errors
    "ContainerCreationFailedError",
    "ContainerOperationError",
    # Timeout errors
    "ResourceTimeoutError",
    "WaitConditionTimeoutError",
    "ExecTimeoutError",
    "OperationCancelledError",
    # Config/state errors
    "InvalidConfigError",
    "ConfigValidationError",
    "StateConflictError",
    "SpanStateError",
]
