"""Weaver live-check process management.

``LiveCheckProcess`` starts ``weaver registry live-check`` as a local
child process, waits for its admin health endpoint, and stops it through
the admin shutdown endpoint. Telemetry is sent to ``ingest_endpoint()``
while it runs; the report is read back with ``report()`` after it stops.

Example:
    >>> config = LiveCheckConfig(registry_path="./registry")
    >>> with LiveCheckProcess(config) as weaver:
    ...     export_spans(weaver.ingest_endpoint(), spans, service_name="checkout")
    >>> assert not weaver.report().has_violations
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import IO

import httpx

from fixtureops.config import FixtureOpsSettings, get_settings
from fixtureops.errors import (
    ErrorContext,
    OperationCancelledError,
    ProcessNotRunningError,
    ProcessStartFailedError,
    ProcessStopFailedError,
    RegistryInvalidError,
    ResourceExitedError,
)
from fixtureops.live.binary import ensure_registry, locate_binary
from fixtureops.preflight import AvailabilityProbe, AvailabilityResult, SystemKind
from fixtureops.runtime.lifecycle import LifecycleState, ManagedResource
from fixtureops.runtime.registry import ResourceRegistry
from fixtureops.telemetry.report import LiveCheckReport

logger = logging.getLogger(__name__)

LOCALHOST = "127.0.0.1"
LOG_FILENAME = "live-check.log"


@dataclass
class LiveCheckConfig:
    """Configuration of one live-check process.

    Attributes:
        registry_path: Semantic conventions registry, kept exactly as given.
        ingest_port: OTLP ingest port.
        admin_port: Admin port serving health and shutdown.
        inactivity_timeout: Seconds without telemetry before weaver exits.
        output_format: Report format (json or ansi).
        output_dir: Directory weaver writes its report into.
        address: Address weaver listens on.
        binary: Explicit weaver executable.
        download: Download the pinned release if weaver is not found.
        version: Release downloaded when ``download`` is set.
        clone_registry: Clone the upstream registry when the path is missing.
        health_path: Admin path polled for readiness.
        shutdown_path: Admin path that asks weaver to stop.
    """

    registry_path: str
    ingest_port: int = 4317
    admin_port: int = 4320
    inactivity_timeout: int = 300
    output_format: str = "json"
    output_dir: str = "./weaver-reports"
    address: str = LOCALHOST
    binary: str | None = None
    download: bool = False
    version: str = "0.19.0"
    clone_registry: bool = False
    health_path: str = "/health"
    shutdown_path: str = "/stop"

    @classmethod
    def from_settings(cls, registry_path: str, settings: FixtureOpsSettings, **overrides: object) -> LiveCheckConfig:
        """Build a config from the weaver_* settings fields."""
        values: dict[str, object] = {
            "registry_path": registry_path,
            "ingest_port": settings.weaver_ingest_port,
            "admin_port": settings.weaver_admin_port,
            "inactivity_timeout": settings.weaver_inactivity_timeout,
            "output_format": settings.weaver_output_format,
            "output_dir": settings.weaver_output_dir,
            "binary": settings.weaver_binary,
            "download": settings.weaver_download,
            "version": settings.weaver_version,
        }
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]

    def command(self, binary: str | Path) -> list[str]:
        return [
            str(binary),
            "registry",
            "live-check",
            "--registry",
            self.registry_path,
            "--otlp-grpc-address",
            self.address,
            "--otlp-grpc-port",
            str(self.ingest_port),
            "--admin-port",
            str(self.admin_port),
            "--inactivity-timeout",
            str(self.inactivity_timeout),
            "--format",
            self.output_format,
            "--output",
            self.output_dir,
        ]


class LiveCheckProcess(ManagedResource):
    """A weaver live-check child process."""

    resource_kind = "live-check"

    def __init__(
        self,
        config: LiveCheckConfig,
        settings: FixtureOpsSettings | None = None,
        probe: AvailabilityProbe | None = None,
        registry: ResourceRegistry | None = None,
    ) -> None:
        super().__init__(registry=registry)
        self.config = config
        self.settings = settings or get_settings()
        self.probe = probe or AvailabilityProbe(timeout=self.settings.probe_timeout)
        self.binary: Path | None = None
        self.log_path = Path(config.output_dir) / LOG_FILENAME
        self._process: subprocess.Popen[bytes] | None = None
        self._log_file: IO[bytes] | None = None

    @property
    def registry_path(self) -> str:
        return self.config.registry_path

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    def admin_url(self, path: str) -> str:
        return f"http://{self.config.address}:{self.config.admin_port}{path}"

    # ManagedResource hooks

    def _preflight(self) -> AvailabilityResult:
        self.binary = locate_binary(
            override=self.config.binary,
            allow_download=self.config.download,
            version=self.config.version,
        )
        ensure_registry(self.config.registry_path, clone=self.config.clone_registry)
        return self.probe.check(SystemKind.VALIDATION_BINARY, binary=str(self.binary))

    def _start(self) -> None:
        assert self.binary is not None
        command = self.config.command(self.binary)
        Path(self.config.output_dir).mkdir(parents=True, exist_ok=True)
        self._log_file = open(self.log_path, "ab")

        logger.info(
            f"Starting weaver live-check (ingest {self.config.ingest_port}, admin {self.config.admin_port})"
        )
        try:
            self._process = subprocess.Popen(
                command,
                stdout=self._log_file,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
            )
        except OSError as e:
            raise ProcessStartFailedError(
                f"Failed to spawn weaver: {e}",
                context=self._error_context(),
                cause=e,
            ) from e

    def _await_ready(self) -> None:
        attempts = self.settings.health_check_attempts
        interval = self.settings.health_check_interval
        url = self.admin_url(self.config.health_path)

        with httpx.Client(timeout=max(interval, 0.5)) as client:
            for attempt in range(1, attempts + 1):
                if self._process is not None and self._process.poll() is not None:
                    raise ResourceExitedError(
                        f"weaver exited with status {self._process.returncode} before becoming healthy"
                        f"{self._log_tail()}",
                        context=self._error_context(log=str(self.log_path)),
                    )
                try:
                    response = client.get(url)
                    if response.is_success:
                        logger.debug(f"weaver healthy after {attempt} checks")
                        return
                    logger.debug(f"Health check {attempt}/{attempts}: HTTP {response.status_code}")
                except httpx.HTTPError as e:
                    logger.debug(f"Health check {attempt}/{attempts} failed: {e}")

                if self._cancel_event.wait(interval):
                    raise OperationCancelledError(
                        f"{self.resource_id} was cancelled during health checks",
                        context=self._error_context(),
                    )

        raise ProcessStartFailedError(
            f"weaver did not become healthy after {attempts} checks at {url}{self._log_tail()}",
            context=self._error_context(log=str(self.log_path)),
        )

    def _teardown(self) -> None:
        try:
            if self._process is not None and self._process.poll() is None:
                # A failed start is killed outright; a ready process is asked to stop first
                if self._state is not LifecycleState.FAILED:
                    self._request_shutdown()
                self._wait_or_kill()
        finally:
            self._process = None
            if self._log_file is not None:
                self._log_file.close()
                self._log_file = None

    def _request_shutdown(self) -> None:
        url = self.admin_url(self.config.shutdown_path)
        try:
            response = httpx.post(url, timeout=5.0)
            logger.debug(f"POST {url} -> {response.status_code}")
        except httpx.HTTPError as e:
            logger.warning(f"Shutdown request to {url} failed, killing weaver: {e}")

    def _wait_or_kill(self) -> None:
        assert self._process is not None
        grace = self.settings.stop_grace_period if self._state is not LifecycleState.FAILED else 0
        try:
            self._process.wait(timeout=grace)
            return
        except subprocess.TimeoutExpired:
            if grace:
                logger.warning(f"weaver did not exit within {grace}s, killing it")

        try:
            self._process.kill()
            self._process.wait(timeout=5)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ProcessStopFailedError(
                f"Failed to kill weaver (pid {self._process.pid}): {e}",
                context=self._error_context(),
                cause=e,
            ) from e

    def _log_tail(self, lines: int = 20) -> str:
        try:
            text = self.log_path.read_text(errors="replace")
        except OSError:
            return ""
        tail = "\n".join(text.splitlines()[-lines:])
        return f"\n--- weaver log ---\n{tail}" if tail else ""

    # Public operations

    def start(self) -> LiveCheckProcess:
        """Start weaver and wait until its health endpoint answers.

        Raises:
            BinaryNotFoundError: weaver was not found anywhere.
            RegistryNotFoundError: The registry path does not exist.
            ProcessStartFailedError: weaver exited early or never became healthy.
        """
        return self.acquire()

    def ingest_endpoint(self) -> str:
        """OTLP ingest URL. Only available while READY."""
        self.require_ready("get the ingest endpoint")
        return f"http://{LOCALHOST}:{self.config.ingest_port}"

    def is_running(self) -> bool:
        """Whether weaver is READY and alive. Performs no network I/O.

        A process that exited on its own (for example after its inactivity
        timeout) is moved to FAILED.
        """
        if self._state is not LifecycleState.READY or self._process is None:
            return False
        if self._process.poll() is not None:
            self.mark_failed(f"weaver exited with status {self._process.returncode}")
            return False
        return True

    def is_alive(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def stop(self) -> None:
        """Stop weaver.

        Unlike ``release()``, stopping something that is not running is an
        error.

        Raises:
            ProcessNotRunningError: Never started, already stopped, or died.
            ProcessStopFailedError: weaver could not be killed.
        """
        if not self.is_running():
            state = self._state
            # Close leftover handles of a process that died on its own
            self.release()
            raise ProcessNotRunningError(
                f"weaver live-check is not running (state: {state.value})",
                context=self._error_context(),
            )
        self.release()

    def report(self) -> LiveCheckReport:
        """Parse the live-check report from the output directory."""
        return LiveCheckReport.from_report_dir(self.config.output_dir)

    def validate_schema(self, timeout: float = 120.0) -> str:
        """Run ``weaver registry check`` against the registry.

        Returns:
            The command output.

        Raises:
            RegistryNotFoundError: The registry path does not exist.
            RegistryInvalidError: The registry failed the check.
        """
        ensure_registry(self.config.registry_path, clone=self.config.clone_registry)
        binary = self.binary or locate_binary(
            override=self.config.binary,
            allow_download=self.config.download,
            version=self.config.version,
        )
        command = [str(binary), "registry", "check", "-r", self.config.registry_path]
        logger.debug(f"Running {' '.join(command)}")
        try:
            result = subprocess.run(command, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise RegistryInvalidError(
                f"Registry check timed out after {timeout}s",
                context=ErrorContext(command=command),
                cause=e,
            ) from e
        if result.returncode != 0:
            raise RegistryInvalidError(
                f"Registry check failed for {self.config.registry_path}",
                context=ErrorContext(command=command, stderr=result.stderr or result.stdout),
            )
        return result.stdout

    def __repr__(self) -> str:
        return (
            f"<LiveCheckProcess {self.resource_id} {self._state.value} "
            f"ingest={self.config.ingest_port} admin={self.config.admin_port}>"
        )
