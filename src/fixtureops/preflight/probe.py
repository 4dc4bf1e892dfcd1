"""Availability probes for external systems.

A probe distinguishes "the command could not be found" from "the command
ran but the daemon did not answer correctly" from "the command hung".
Executing ``docker info`` successfully is not enough: the output must
show that a server actually responded.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from fixtureops.errors import (
    BinaryNotFoundError,
    DaemonUnreachableError,
    DaemonUnresponsiveError,
    ErrorContext,
)

logger = logging.getLogger(__name__)

# Lines that only appear in `docker info` when the server section was returned
DOCKER_SERVER_MARKERS = ("Server Version", "Docker Root Dir")


class SystemKind(Enum):
    """External system a probe can check."""

    CONTAINER_RUNTIME = "container_runtime"
    VALIDATION_BINARY = "validation_binary"


class AvailabilityStatus(Enum):
    """Outcome of an availability probe."""

    AVAILABLE = "available"
    BINARY_NOT_FOUND = "binary_not_found"
    DAEMON_UNREACHABLE = "daemon_unreachable"
    DAEMON_UNRESPONSIVE = "daemon_unresponsive"


@dataclass
class AvailabilityResult:
    """Result of a single availability probe."""

    status: AvailabilityStatus
    system: SystemKind
    message: str
    timeout: float | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def available(self) -> bool:
        return self.status is AvailabilityStatus.AVAILABLE

    def raise_for_status(self) -> None:
        """Raise the error matching a non-available result.

        Raises:
            BinaryNotFoundError: The executable is missing.
            DaemonUnreachableError: The command ran but did not confirm a
                working daemon.
            DaemonUnresponsiveError: The command did not finish in time.
        """
        if self.available:
            return

        context = ErrorContext(
            resource_kind=self.system.value,
            command=self.details.get("command"),
            stderr=self.details.get("stderr"),
        )
        if self.status is AvailabilityStatus.BINARY_NOT_FOUND:
            raise BinaryNotFoundError(
                message=self.message,
                binary=self.details.get("binary"),
                context=context,
            )
        if self.status is AvailabilityStatus.DAEMON_UNRESPONSIVE:
            raise DaemonUnresponsiveError(message=self.message, timeout=self.timeout, context=context)
        raise DaemonUnreachableError(message=self.message, context=context)


class AvailabilityProbe:
    """Pre-flight checks for the container runtime and the validation binary.

    Usage:
        probe = AvailabilityProbe(timeout=2.0)
        result = probe.check(SystemKind.CONTAINER_RUNTIME)
        if not result.available:
            print(result.message)
    """

    def __init__(self, timeout: float = 2.0, docker_binary: str = "docker") -> None:
        self.timeout = timeout
        self.docker_binary = docker_binary

    def check(self, kind: SystemKind, binary: str | None = None) -> AvailabilityResult:
        """Probe one external system. Never returns an undetermined result."""
        if kind is SystemKind.CONTAINER_RUNTIME:
            return self._check_container_runtime(binary or self.docker_binary)
        if binary is None:
            raise ValueError("binary is required to probe the validation binary")
        return self._check_validation_binary(binary)

    def _resolve(self, binary: str) -> str | None:
        if os.sep in binary:
            return binary if os.path.isfile(binary) else None
        return shutil.which(binary)

    def _check_container_runtime(self, binary: str) -> AvailabilityResult:
        system = SystemKind.CONTAINER_RUNTIME
        command = [binary, "info"]

        result = self._run(system, binary, command)
        if isinstance(result, AvailabilityResult):
            return result

        if result.returncode != 0:
            return self._unreachable(
                system,
                f"'{' '.join(command)}' exited with status {result.returncode}",
                command,
                result,
            )

        if not any(marker in result.stdout for marker in DOCKER_SERVER_MARKERS):
            return self._unreachable(
                system,
                "Docker CLI ran but the daemon did not report server information",
                command,
                result,
            )

        logger.debug("Container runtime is available")
        return AvailabilityResult(
            status=AvailabilityStatus.AVAILABLE,
            system=system,
            message="Docker daemon is running",
            details={"command": command},
        )

    def _check_validation_binary(self, binary: str) -> AvailabilityResult:
        system = SystemKind.VALIDATION_BINARY
        command = [binary, "--version"]

        result = self._run(system, binary, command)
        if isinstance(result, AvailabilityResult):
            return result

        version = (result.stdout or "").strip()
        if result.returncode != 0 or not version:
            return self._unreachable(
                system,
                f"'{' '.join(command)}' did not report a version",
                command,
                result,
            )

        logger.debug(f"Validation binary available: {version}")
        return AvailabilityResult(
            status=AvailabilityStatus.AVAILABLE,
            system=system,
            message=version,
            details={"command": command, "version": version},
        )

    def _run(
        self,
        system: SystemKind,
        binary: str,
        command: list[str],
    ) -> subprocess.CompletedProcess[str] | AvailabilityResult:
        if self._resolve(binary) is None:
            return self._not_found(system, binary, command)

        try:
            return subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            return self._not_found(system, binary, command)
        except subprocess.TimeoutExpired:
            logger.debug(f"Probe timed out after {self.timeout}s: {command}")
            return AvailabilityResult(
                status=AvailabilityStatus.DAEMON_UNRESPONSIVE,
                system=system,
                message=f"'{' '.join(command)}' did not respond within {self.timeout}s",
                timeout=self.timeout,
                details={"command": command, "binary": binary},
            )
        except PermissionError as e:
            return AvailabilityResult(
                status=AvailabilityStatus.DAEMON_UNREACHABLE,
                system=system,
                message=f"Permission denied running '{binary}': {e}",
                details={"command": command, "binary": binary},
            )

    def _not_found(self, system: SystemKind, binary: str, command: list[str]) -> AvailabilityResult:
        logger.debug(f"Binary not found: {binary}")
        return AvailabilityResult(
            status=AvailabilityStatus.BINARY_NOT_FOUND,
            system=system,
            message=f"'{binary}' not found",
            details={"command": command, "binary": binary},
        )

    def _unreachable(
        self,
        system: SystemKind,
        message: str,
        command: list[str],
        result: subprocess.CompletedProcess[str],
    ) -> AvailabilityResult:
        stderr = (result.stderr or "").strip()
        if stderr:
            message = f"{message}: {stderr}"
        return AvailabilityResult(
            status=AvailabilityStatus.DAEMON_UNREACHABLE,
            system=system,
            message=message,
            details={"command": command, "stderr": stderr, "exit_code": result.returncode},
        )
