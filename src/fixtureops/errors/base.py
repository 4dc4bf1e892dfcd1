"""Custom exception hierarchy for fixtureops.

fixtureops provides an error hierarchy with:
- Structured error codes for programmatic handling
- Context describing the resource that failed
- Actionable suggestions for recovery

All fixtureops errors inherit from FixtureOpsError and include:
- error_code: A unique ErrorCode enum for categorization
- context: ErrorContext with resource/command details
- suggestions: List of actionable steps to resolve the issue

Availability failures (BinaryNotFoundError, DaemonUnreachableError,
DaemonUnresponsiveError) are raised before anything is spawned, so they
never masquerade as a generic creation failure.

Example:
    try:
        orchestrator.create("postgres", "16")
    except DaemonUnreachableError as e:
        print(f"Error: {e}")
        print(f"Suggestions: {e.suggestions}")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes for fixtureops.

    Error codes are organized by category:
    - E0xx: Availability errors (binary, daemon)
    - E1xx: Process lifecycle errors
    - E2xx: Container errors
    - E3xx: Timeout and cancellation errors
    - E4xx: Configuration and state errors
    - E9xx: Unknown/internal errors
    """

    # Availability errors (E0xx)
    BINARY_NOT_FOUND = "E001"
    DAEMON_UNREACHABLE = "E002"
    DAEMON_UNRESPONSIVE = "E003"
    REGISTRY_NOT_FOUND = "E004"
    REGISTRY_INVALID = "E005"

    # Process lifecycle errors (E1xx)
    PROCESS_START_FAILED = "E101"
    PROCESS_STOP_FAILED = "E102"
    PROCESS_NOT_RUNNING = "E103"
    REPORT_INVALID = "E104"

    # Container errors (E2xx)
    CONTAINER_CREATION_FAILED = "E201"
    CONTAINER_OPERATION_FAILED = "E202"

    # Timeout and cancellation errors (E3xx)
    WAIT_CONDITION_TIMEOUT = "E301"
    EXEC_TIMEOUT = "E302"
    OPERATION_CANCELLED = "E303"

    # Configuration and state errors (E4xx)
    INVALID_CONFIG = "E401"
    STATE_CONFLICT = "E402"
    SPAN_STATE = "E403"

    # Unknown/internal errors (E9xx)
    UNKNOWN = "E999"

    @property
    def category(self) -> str:
        """Get the error category name."""
        code_num = int(self.value[1:])
        if code_num < 100:
            return "availability"
        elif code_num < 200:
            return "process"
        elif code_num < 300:
            return "container"
        elif code_num < 400:
            return "timeout"
        elif code_num < 500:
            return "config"
        else:
            return "unknown"


@dataclass
class ErrorContext:
    """Structured context for error logging and debugging.

    Attributes:
        resource_id: Identity of the managed resource involved.
        resource_kind: Kind of resource ("container", "live-check", ...).
        state: Lifecycle state of the resource when the error occurred.
        command: External command that was being run, if any.
        stderr: Captured standard error of that command.
        extra: Additional context-specific information.
        timestamp: When the error occurred.
    """

    resource_id: str | None = None
    resource_kind: str | None = None
    state: str | None = None
    command: list[str] | None = None
    stderr: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for serialization."""
        result = {
            "resource_id": self.resource_id,
            "resource_kind": self.resource_kind,
            "state": self.state,
            "command": self.command,
            "stderr": self.stderr,
            "extra": self.extra,
            "timestamp": self.timestamp.isoformat(),
        }
        return {k: v for k, v in result.items() if v is not None}

    def format_location(self) -> str:
        """Format the error location as a readable string."""
        parts = []
        if self.resource_kind:
            parts.append(f"kind={self.resource_kind}")
        if self.resource_id:
            parts.append(f"resource={self.resource_id}")
        if self.state:
            parts.append(f"state={self.state}")
        return " > ".join(parts) if parts else "unknown location"


class FixtureOpsError(Exception):
    """Base exception for all fixtureops errors.

    Attributes:
        error_code: Unique ErrorCode for this error type
        message: Human-readable error description
        context: ErrorContext with resource details
        suggestions: List of actionable steps to resolve the issue
        cause: The underlying exception (if any)
    """

    error_code: ErrorCode = ErrorCode.UNKNOWN
    default_message: str = "An unexpected error occurred"
    default_suggestions: list[str] = []

    def __init__(
        self,
        message: str | None = None,
        error_code: ErrorCode | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
        suggestions: list[str] | None = None,
        **extra_context: Any,
    ) -> None:
        self.message = message or self.default_message
        self.error_code = error_code or self.error_code
        self.context = context or ErrorContext()
        self.cause = cause
        self._suggestions = suggestions

        if extra_context:
            self.context.extra.update(extra_context)

        super().__init__(self.message)

    @property
    def suggestions(self) -> list[str]:
        """Get actionable suggestions for resolving this error."""
        if self._suggestions is not None:
            return self._suggestions
        return self.default_suggestions.copy()

    def __str__(self) -> str:
        """Format error as a readable string with context."""
        parts = [f"[{self.error_code.value}] {self.message}"]

        location = self.context.format_location()
        if location != "unknown location":
            parts.append(f"at {location}")

        return " | ".join(parts)

    def format_verbose(self) -> str:
        """Format error with full details including suggestions."""
        lines = [
            f"Error [{self.error_code.value}]: {self.message}",
            "",
        ]

        location = self.context.format_location()
        if location != "unknown location":
            lines.append(f"Location: {location}")

        if self.context.command:
            lines.append(f"Command: {' '.join(self.context.command)}")
        if self.context.stderr:
            lines.append(f"Stderr: {self.context.stderr.strip()}")

        if self.suggestions:
            lines.append("")
            lines.append("Suggestions:")
            for suggestion in self.suggestions:
                lines.append(f"  - {suggestion}")

        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "error_code": self.error_code.value,
            "error_type": self.__class__.__name__,
            "message": self.message,
            "suggestions": self.suggestions,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }


class BinaryNotFoundError(FixtureOpsError):
    """A required executable could not be located.

    Carries every discovery attempt that was made so the caller can see
    where the binary was looked for.
    """

    error_code = ErrorCode.BINARY_NOT_FOUND
    default_message = "Required binary not found"
    default_suggestions = [
        "Install the binary or put it on PATH",
        "Point FIXTUREOPS_WEAVER_BINARY (or FIXTUREOPS_DOCKER_BINARY) at an explicit location",
        "Run 'fixtureops doctor' to see which checks fail",
    ]

    def __init__(
        self,
        message: str | None = None,
        binary: str | None = None,
        attempts: list[str] | None = None,
        **kwargs: Any,
    ) -> None:
        self.binary = binary
        self.attempts = list(attempts or [])
        if message is None and binary:
            message = f"Binary '{binary}' not found"
            if self.attempts:
                message += f" (tried: {', '.join(self.attempts)})"
        super().__init__(message=message, **kwargs)


class RegistryNotFoundError(FixtureOpsError):
    """The semantic-conventions registry path does not exist."""

    error_code = ErrorCode.REGISTRY_NOT_FOUND
    default_message = "Registry path does not exist"
    default_suggestions = [
        "Provide an existing semantic conventions registry directory",
        "Enable clone_registry to fetch the upstream registry automatically",
    ]

    def __init__(self, path: str, message: str | None = None, **kwargs: Any) -> None:
        self.path = path
        super().__init__(message=message or f"Registry path does not exist: {path}", **kwargs)


class RegistryInvalidError(FixtureOpsError):
    """The registry exists but fails the schema check."""

    error_code = ErrorCode.REGISTRY_INVALID
    default_message = "Registry failed schema validation"
    default_suggestions = [
        "Run 'weaver registry check -r <path>' to see the full diagnostics",
    ]


class DaemonUnreachableError(FixtureOpsError):
    """The runtime daemon answered with an error or not at all.

    Raised when the command ran but its output did not confirm that the
    daemon is serving requests.
    """

    error_code = ErrorCode.DAEMON_UNREACHABLE
    default_message = "Container runtime daemon is not reachable"
    default_suggestions = [
        "Start Docker Desktop or the Docker daemon",
        "Linux: sudo systemctl start docker",
        "Check DOCKER_HOST points at a running daemon",
    ]


class DaemonUnresponsiveError(FixtureOpsError):
    """The availability command did not return within the probe timeout."""

    error_code = ErrorCode.DAEMON_UNRESPONSIVE
    default_message = "Container runtime daemon did not respond in time"
    default_suggestions = [
        "The daemon may be starting or overloaded; retry in a moment",
        "Increase FIXTUREOPS_PROBE_TIMEOUT if the host is slow",
    ]

    def __init__(self, message: str | None = None, timeout: float | None = None, **kwargs: Any) -> None:
        self.timeout = timeout
        if message is None and timeout is not None:
            message = f"Daemon did not respond within {timeout:.1f}s"
        super().__init__(message=message, **kwargs)


class ProcessStartFailedError(FixtureOpsError):
    """An external process failed to start or never became healthy."""

    error_code = ErrorCode.PROCESS_START_FAILED
    default_message = "Failed to start process"
    default_suggestions = [
        "Check the binary runs by hand (e.g. 'weaver --version')",
        "Make sure the configured ports are free",
        "Inspect the process log file for startup errors",
    ]


class ResourceExitedError(ProcessStartFailedError):
    """The process or container exited before it became ready."""

    default_message = "Resource exited before becoming ready"


class ProcessStopFailedError(FixtureOpsError):
    """Stopping an external process or container failed."""

    error_code = ErrorCode.PROCESS_STOP_FAILED
    default_message = "Failed to stop process"
    default_suggestions = [
        "The process may still be running; stop it manually",
        "Check: ps aux | grep weaver, or docker ps",
    ]


class ReportError(FixtureOpsError):
    """A live-check report is missing or cannot be parsed."""

    error_code = ErrorCode.REPORT_INVALID
    default_message = "Live-check report could not be read"
    default_suggestions = [
        "Stop the live-check process before reading its report",
        "Check the output directory and output format (json) of the live-check process",
    ]


class ProcessNotRunningError(FixtureOpsError):
    """An operation required a running resource but it is not running."""

    error_code = ErrorCode.PROCESS_NOT_RUNNING
    default_message = "Process is not running"
    default_suggestions = [
        "Start the resource before using it",
        "Catch ProcessNotRunningError if best-effort cleanup is intended",
    ]


class ContainerCreationFailedError(FixtureOpsError):
    """The container runtime refused to create or start a container.

    The runtime's own message is preserved in ``runtime_message``.
    """

    error_code = ErrorCode.CONTAINER_CREATION_FAILED
    default_message = "Failed to create container"
    default_suggestions = [
        "Check the image name and tag exist (docker pull <image>:<tag>)",
        "Check the requested ports are not already allocated",
    ]

    def __init__(self, message: str | None = None, runtime_message: str = "", **kwargs: Any) -> None:
        self.runtime_message = runtime_message
        if message is None and runtime_message:
            message = f"Failed to create container: {runtime_message.strip()}"
        super().__init__(message=message, **kwargs)


class ContainerOperationError(FixtureOpsError):
    """A docker command against an existing container failed."""

    error_code = ErrorCode.CONTAINER_OPERATION_FAILED
    default_message = "Container operation failed"


class ResourceTimeoutError(FixtureOpsError):
    """Base class for bounded operations that ran out of time."""

    error_code = ErrorCode.WAIT_CONDITION_TIMEOUT
    default_message = "Operation timed out"

    def __init__(self, message: str | None = None, timeout: float | None = None, **kwargs: Any) -> None:
        self.timeout = timeout
        super().__init__(message=message, **kwargs)


class WaitConditionTimeoutError(ResourceTimeoutError):
    """A wait condition was not satisfied before its deadline."""

    error_code = ErrorCode.WAIT_CONDITION_TIMEOUT
    default_message = "Wait condition not satisfied before deadline"
    default_suggestions = [
        "Increase the wait condition timeout",
        "Check the container logs for startup errors",
    ]

    def __init__(
        self,
        message: str | None = None,
        condition: str | None = None,
        timeout: float | None = None,
        attempts: int = 0,
        **kwargs: Any,
    ) -> None:
        self.condition = condition
        self.attempts = attempts
        if message is None and condition:
            message = f"Timed out after {timeout}s waiting for {condition} ({attempts} polls)"
        super().__init__(message=message, timeout=timeout, **kwargs)


class ExecTimeoutError(ResourceTimeoutError):
    """A command executed inside a container did not finish in time."""

    error_code = ErrorCode.EXEC_TIMEOUT
    default_message = "Command execution timed out"


class OperationCancelledError(FixtureOpsError):
    """A blocking operation observed cancellation and gave up."""

    error_code = ErrorCode.OPERATION_CANCELLED
    default_message = "Operation cancelled"


class InvalidConfigError(FixtureOpsError):
    """Arguments passed to a resource are invalid."""

    error_code = ErrorCode.INVALID_CONFIG
    default_message = "Invalid configuration"

    def __init__(self, message: str | None = None, field: str | None = None, value: Any = None, **kwargs: Any) -> None:
        self.field = field
        self.value = value
        super().__init__(message=message, **kwargs)


class ConfigValidationError(InvalidConfigError):
    """A settings value failed validation."""

    default_message = "Configuration validation failed"
    default_suggestions = [
        "Check the fixtureops YAML file and FIXTUREOPS_* environment variables",
    ]


class StateConflictError(FixtureOpsError):
    """A lifecycle transition was requested from the wrong state."""

    error_code = ErrorCode.STATE_CONFLICT
    default_message = "Invalid lifecycle transition"
    default_suggestions = [
        "Create a new resource instead of acquiring the same one twice",
    ]


class SpanStateError(FixtureOpsError):
    """A span state transition was rejected (spans complete exactly once)."""

    error_code = ErrorCode.SPAN_STATE
    default_message = "Invalid span state transition"
