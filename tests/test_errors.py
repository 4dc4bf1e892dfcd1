"""Tests for the fixtureops error hierarchy."""

from __future__ import annotations

import pytest

from fixtureops.errors import (
    BinaryNotFoundError,
    ConfigValidationError,
    ContainerCreationFailedError,
    DaemonUnreachableError,
    DaemonUnresponsiveError,
    ErrorCode,
    ErrorContext,
    ExecTimeoutError,
    FixtureOpsError,
    InvalidConfigError,
    ProcessStartFailedError,
    RegistryNotFoundError,
    ResourceExitedError,
    ResourceTimeoutError,
    WaitConditionTimeoutError,
)


class TestErrorCode:
    """Tests for ErrorCode categories."""

    @pytest.mark.parametrize(
        "code, category",
        [
            (ErrorCode.BINARY_NOT_FOUND, "availability"),
            (ErrorCode.REGISTRY_NOT_FOUND, "availability"),
            (ErrorCode.PROCESS_NOT_RUNNING, "process"),
            (ErrorCode.CONTAINER_CREATION_FAILED, "container"),
            (ErrorCode.WAIT_CONDITION_TIMEOUT, "timeout"),
            (ErrorCode.STATE_CONFLICT, "config"),
            (ErrorCode.UNKNOWN, "unknown"),
        ],
    )
    def test_category(self, code, category):
        """Test each code maps to its category by number range."""
        assert code.category == category

    def test_codes_are_unique(self):
        """Test no two error codes share a value."""
        values = [code.value for code in ErrorCode]
        assert len(values) == len(set(values))


class TestFixtureOpsError:
    """Tests for the base exception."""

    def test_defaults(self):
        """Test the default message and code are used when none is given."""
        error = FixtureOpsError()
        assert error.message == "An unexpected error occurred"
        assert error.error_code is ErrorCode.UNKNOWN
        assert error.suggestions == []

    def test_extra_context_goes_into_context(self):
        """Test unknown keyword arguments land in context.extra."""
        error = FixtureOpsError("boom", report_path="/tmp/x")
        assert error.context.extra == {"report_path": "/tmp/x"}

    def test_str_includes_code_and_location(self):
        """Test __str__ carries the code and the resource location."""
        context = ErrorContext(resource_id="container-abc", resource_kind="container", state="starting")
        error = FixtureOpsError("boom", context=context)
        text = str(error)
        assert text.startswith("[E999] boom")
        assert "resource=container-abc" in text
        assert "state=starting" in text

    def test_str_without_location(self):
        """Test __str__ omits the location when there is none."""
        assert str(FixtureOpsError("boom")) == "[E999] boom"

    def test_format_verbose(self):
        """Test verbose output lists command, stderr and suggestions."""
        error = DaemonUnreachableError(
            "daemon down",
            context=ErrorContext(command=["docker", "info"], stderr="connection refused\n"),
        )
        text = error.format_verbose()
        assert "Error [E002]: daemon down" in text
        assert "Command: docker info" in text
        assert "Stderr: connection refused" in text
        assert "Suggestions:" in text

    def test_explicit_suggestions_override_defaults(self):
        """Test suggestions passed in replace the class defaults."""
        error = DaemonUnreachableError(suggestions=["do this"])
        assert error.suggestions == ["do this"]

    def test_default_suggestions_are_copied(self):
        """Test mutating suggestions does not leak into the class."""
        error = DaemonUnreachableError()
        error.suggestions.append("extra")
        assert "extra" not in DaemonUnreachableError().suggestions

    def test_to_dict(self):
        """Test serialisation includes type, code and cause."""
        cause = OSError("disk")
        error = ProcessStartFailedError("spawn failed", cause=cause)
        data = error.to_dict()
        assert data["error_code"] == "E101"
        assert data["error_type"] == "ProcessStartFailedError"
        assert data["cause"] == "disk"
        assert "timestamp" in data["context"]


class TestAvailabilityErrors:
    """Tests for errors raised before anything is spawned."""

    def test_binary_not_found_lists_attempts(self):
        """Test the message names every location that was tried."""
        error = BinaryNotFoundError(binary="weaver", attempts=["PATH", "/opt/weaver"])
        assert error.attempts == ["PATH", "/opt/weaver"]
        assert "weaver" in error.message
        assert "PATH, /opt/weaver" in error.message

    def test_registry_not_found_keeps_path(self):
        """Test the path is carried exactly as given."""
        error = RegistryNotFoundError("./missing-registry")
        assert error.path == "./missing-registry"
        assert error.error_code is ErrorCode.REGISTRY_NOT_FOUND
        assert "./missing-registry" in error.message

    def test_unresponsive_message_from_timeout(self):
        """Test the timeout is reported when no message is given."""
        error = DaemonUnresponsiveError(timeout=2.0)
        assert error.timeout == 2.0
        assert "2.0s" in error.message

    def test_availability_errors_are_distinct(self):
        """Test the three availability errors do not inherit from each other."""
        assert not issubclass(DaemonUnreachableError, DaemonUnresponsiveError)
        assert not issubclass(DaemonUnresponsiveError, DaemonUnreachableError)
        assert not issubclass(BinaryNotFoundError, DaemonUnreachableError)


class TestResourceErrors:
    """Tests for start, container and timeout errors."""

    def test_resource_exited_is_a_start_failure(self):
        """Test callers catching start failures also catch early exits."""
        assert issubclass(ResourceExitedError, ProcessStartFailedError)

    def test_container_creation_keeps_runtime_message(self):
        """Test the docker message is preserved verbatim."""
        error = ContainerCreationFailedError(runtime_message="pull access denied for nope\n")
        assert error.runtime_message == "pull access denied for nope\n"
        assert error.message == "Failed to create container: pull access denied for nope"

    def test_wait_timeout_message(self):
        """Test the timeout message names the condition and poll count."""
        error = WaitConditionTimeoutError(condition="TCP port 80", timeout=3.0, attempts=7)
        assert isinstance(error, ResourceTimeoutError)
        assert error.timeout == 3.0
        assert error.attempts == 7
        assert error.message == "Timed out after 3.0s waiting for TCP port 80 (7 polls)"

    def test_exec_timeout_code(self):
        """Test exec timeouts have their own code."""
        assert ExecTimeoutError().error_code is ErrorCode.EXEC_TIMEOUT


class TestConfigErrors:
    """Tests for configuration errors."""

    def test_invalid_config_fields(self):
        """Test the offending field and value are kept."""
        error = InvalidConfigError("bad", field="image", value="")
        assert error.field == "image"
        assert error.value == ""

    def test_config_validation_is_invalid_config(self):
        """Test settings failures can be caught as InvalidConfigError."""
        assert issubclass(ConfigValidationError, InvalidConfigError)
