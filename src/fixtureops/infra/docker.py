"""Disposable Docker containers for tests.

Containers are created through the docker CLI. Each one carries a
``fixtureops.managed`` label plus the id of the creating session, so
containers leaked by a killed test run can be found and removed later
with ``sweep_orphans``.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
import threading
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from urllib.parse import urlparse

from fixtureops.config import FixtureOpsSettings, get_settings
from fixtureops.errors import (
    ContainerCreationFailedError,
    ContainerOperationError,
    DaemonUnreachableError,
    ErrorContext,
    ExecTimeoutError,
    FixtureOpsError,
    InvalidConfigError,
    ProcessStopFailedError,
)
from fixtureops.preflight import AvailabilityProbe, AvailabilityResult, SystemKind
from fixtureops.runtime.lifecycle import ManagedResource
from fixtureops.runtime.registry import ResourceRegistry
from fixtureops.runtime.wait import WaitCondition, wait_for

logger = logging.getLogger(__name__)

LABEL_MANAGED = "fixtureops.managed"
LABEL_SESSION = "fixtureops.session"
SESSION_ID = str(os.getpid())

# Client-side messages showing the connection to the daemon itself failed
DAEMON_CONNECTION_ERROR_PATTERNS = (
    re.compile(r"cannot connect to the docker daemon", re.IGNORECASE),
    re.compile(r"error during connect", re.IGNORECASE),
    re.compile(r"dial unix \S*docker\.sock", re.IGNORECASE),
)
# Prefix of errors the daemon answered with
DAEMON_RESPONSE_MARKER = "error response from daemon"


def is_daemon_connection_error(message: str) -> bool:
    """Whether ``message`` shows the daemon could not be reached.

    Errors the daemon reported itself (a refused registry pull, say) are
    never connection errors, whatever they mention.
    """
    if DAEMON_RESPONSE_MARKER in message.lower():
        return False
    return any(pattern.search(message) for pattern in DAEMON_CONNECTION_ERROR_PATTERNS)


@dataclass
class ExecResult:
    """Result of a command executed inside a container."""

    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class DockerCli:
    """Thin wrapper around the docker command line."""

    def __init__(self, binary: str = "docker") -> None:
        self.binary = binary

    def run(
        self,
        *args: str,
        check: bool = True,
        timeout: float | None = None,
        timeout_error: type[FixtureOpsError] = ContainerOperationError,
    ) -> subprocess.CompletedProcess[str]:
        """Run a docker command.

        Args:
            *args: Command arguments.
            check: Whether to raise on non-zero exit code.
            timeout: Command timeout in seconds.
            timeout_error: Error raised when the timeout expires.

        Raises:
            ContainerOperationError: If the command fails and check=True.
        """
        cmd = [self.binary, *args]
        logger.debug(f"Running docker command: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise timeout_error(
                f"Docker command timed out after {timeout}s: {' '.join(args)}",
                context=ErrorContext(command=cmd),
                cause=e,
            ) from e

        if check and result.returncode != 0:
            raise ContainerOperationError(
                f"Docker command failed: {' '.join(args)}: {result.stderr.strip()}",
                context=ErrorContext(command=cmd, stderr=result.stderr),
            )
        return result


def _docker_host() -> str:
    """Host on which published container ports are reachable."""
    docker_host = os.environ.get("DOCKER_HOST", "")
    if docker_host.startswith(("tcp://", "ssh://", "http://", "https://")):
        hostname = urlparse(docker_host).hostname
        if hostname:
            return hostname
    return "127.0.0.1"


class DockerContainer(ManagedResource):
    """A single container with an acquire/release lifecycle.

    Prefer ``ContainerOrchestrator.create`` over constructing this
    directly.
    """

    resource_kind = "container"

    def __init__(
        self,
        image: str,
        tag: str = "latest",
        ports: Iterable[int] = (),
        env: Mapping[str, str] | None = None,
        command: Sequence[str] | None = None,
        wait_for: Iterable[WaitCondition] = (),
        name: str | None = None,
        labels: Mapping[str, str] | None = None,
        settings: FixtureOpsSettings | None = None,
        probe: AvailabilityProbe | None = None,
        registry: ResourceRegistry | None = None,
        session: str = SESSION_ID,
    ) -> None:
        if not image or not image.strip():
            raise InvalidConfigError("Container image cannot be empty", field="image", value=image)
        if not tag or not tag.strip():
            raise InvalidConfigError("Container tag cannot be empty", field="tag", value=tag)

        super().__init__(wait_conditions=wait_for, registry=registry)
        self.settings = settings or get_settings()
        self.image = image
        self.tag = tag
        self.ports = list(ports)
        self.env = dict(env or {})
        self.command = list(command or [])
        self.name = name
        self.labels = dict(labels or {})
        self.session = session
        self.default_wait_timeout = self.settings.wait_timeout
        self.default_poll_interval = self.settings.poll_interval
        self.probe = probe or AvailabilityProbe(
            timeout=self.settings.probe_timeout,
            docker_binary=self.settings.docker_binary,
        )
        self.cli = DockerCli(self.settings.docker_binary)

        self.container_id: str | None = None
        self._host_ports: dict[int, int] = {}
        self._log_lines: list[str] = []
        self._log_lock = threading.Lock()
        self._log_process: subprocess.Popen[str] | None = None
        self._log_thread: threading.Thread | None = None

    @property
    def image_ref(self) -> str:
        return f"{self.image}:{self.tag}"

    @property
    def host(self) -> str:
        return _docker_host()

    def _run_args(self) -> list[str]:
        args = ["run", "-d", "--label", f"{LABEL_MANAGED}=true", "--label", f"{LABEL_SESSION}={self.session}"]
        for key, value in self.labels.items():
            args.extend(["--label", f"{key}={value}"])
        if self.name:
            args.extend(["--name", self.name])
        # Local daemons publish on loopback only, on a random host port
        local = self.host == "127.0.0.1"
        for port in self.ports:
            args.extend(["-p", f"127.0.0.1::{port}" if local else str(port)])
        for key, value in self.env.items():
            args.extend(["-e", f"{key}={value}"])
        args.append(self.image_ref)
        args.extend(self.command)
        return args

    # ManagedResource hooks

    def _preflight(self) -> AvailabilityResult:
        return self.probe.check(SystemKind.CONTAINER_RUNTIME)

    def _start(self) -> None:
        args = self._run_args()
        logger.info(f"Creating container from {self.image_ref}")
        result = self.cli.run(*args, check=False)

        if result.returncode != 0:
            stderr = result.stderr.strip()
            context = ErrorContext(
                resource_id=self.resource_id,
                resource_kind=self.resource_kind,
                command=[self.cli.binary, *args],
                stderr=stderr,
            )
            if is_daemon_connection_error(stderr):
                raise DaemonUnreachableError(
                    f"Docker daemon connection failed during container start: {stderr}",
                    context=context,
                )
            raise ContainerCreationFailedError(runtime_message=stderr, context=context)

        self.container_id = result.stdout.strip().splitlines()[-1]
        logger.debug(f"{self.resource_id} is container {self.container_id[:12]}")
        self._follow_logs()

    def _teardown(self) -> None:
        self._stop_log_follower()
        if self.container_id is None:
            return

        # rm -f below kills the container whatever happens to the graceful stop
        grace = int(self.settings.stop_grace_period)
        try:
            stop = self.cli.run("stop", "-t", str(grace), self.container_id, check=False, timeout=grace + 30)
        except ContainerOperationError as e:
            logger.warning(f"docker stop {self.container_id[:12]} failed: {e.message}")
        else:
            if stop.returncode != 0 and "No such container" not in stop.stderr:
                logger.warning(f"docker stop {self.container_id[:12]} failed: {stop.stderr.strip()}")

        rm = self.cli.run("rm", "-f", "-v", self.container_id, check=False, timeout=60)
        if rm.returncode != 0 and "No such container" not in rm.stderr:
            raise ContainerOperationError(
                f"Failed to remove container {self.container_id[:12]}: {rm.stderr.strip()}",
                context=self._error_context(container_id=self.container_id),
            )
        logger.debug(f"Removed container {self.container_id[:12]}")
        self.container_id = None
        self._host_ports.clear()

    # Log following

    def _follow_logs(self) -> None:
        self._log_process = subprocess.Popen(
            [self.cli.binary, "logs", "-f", self.container_id or ""],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
        self._log_thread = threading.Thread(
            target=self._pump_logs,
            args=(self._log_process,),
            name=f"{self.resource_id}-logs",
            daemon=True,
        )
        self._log_thread.start()

    def _pump_logs(self, process: subprocess.Popen[str]) -> None:
        assert process.stdout is not None
        for line in process.stdout:
            with self._log_lock:
                self._log_lines.append(line.rstrip("\n"))

    def _stop_log_follower(self) -> None:
        if self._log_process is not None:
            if self._log_process.poll() is None:
                self._log_process.terminate()
                try:
                    self._log_process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    self._log_process.kill()
                    self._log_process.wait()
            self._log_process = None
        if self._log_thread is not None:
            self._log_thread.join(timeout=5)
            self._log_thread = None

    # Wait target

    def endpoint(self, port: int) -> tuple[str, int]:
        return self.host, self.host_port(port)

    def read_logs(self, offset: int) -> list[str]:
        with self._log_lock:
            return self._log_lines[offset:]

    def is_alive(self) -> bool:
        """Whether the container process is running. Makes no state change."""
        if self.container_id is None:
            return False
        result = self.cli.run(
            "inspect", "-f", "{{.State.Running}}", self.container_id,
            check=False,
            timeout=self.settings.probe_timeout * 5,
        )
        return result.returncode == 0 and result.stdout.strip() == "true"

    # Public operations

    def host_port(self, container_port: int) -> int:
        """Host-side port published for ``container_port``."""
        if container_port in self._host_ports:
            return self._host_ports[container_port]
        if self.container_id is None:
            raise ContainerOperationError(
                f"{self.resource_id} has no running container",
                context=self._error_context(),
            )

        result = self.cli.run("port", self.container_id, f"{container_port}/tcp", timeout=30)
        for line in result.stdout.splitlines():
            _, _, port = line.strip().rpartition(":")
            if port.isdigit():
                self._host_ports[container_port] = int(port)
                return int(port)
        raise ContainerOperationError(
            f"Port {container_port} is not published by {self.resource_id}",
            context=self._error_context(container_port=container_port),
        )

    def url(self, container_port: int, path: str = "/", scheme: str = "http") -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{scheme}://{self.host}:{self.host_port(container_port)}{path}"

    def logs(self) -> str:
        """Everything the container has logged so far."""
        with self._log_lock:
            return "\n".join(self._log_lines)

    def wait_for(self, condition: WaitCondition, timeout: float | None = None) -> int:
        """Block until ``condition`` holds. Returns the number of polls.

        Raises:
            ProcessNotRunningError: The container is not READY.
            WaitConditionTimeoutError: The deadline passed.
        """
        self.require_ready("wait for a condition")
        if timeout is None:
            timeout = condition.timeout if condition.timeout is not None else self.default_wait_timeout
        return wait_for(
            condition, self, self._cancel_event, timeout=timeout, poll_interval=self.default_poll_interval
        )

    def exec(self, command: Sequence[str], timeout: float | None = None) -> ExecResult:
        """Run ``command`` inside the container.

        Raises:
            ProcessNotRunningError: The container is not READY.
            ExecTimeoutError: The command did not finish in time.
        """
        self.require_ready("exec")
        if not command:
            raise InvalidConfigError("exec command cannot be empty", field="command", value=command)
        timeout = timeout if timeout is not None else self.settings.exec_timeout

        assert self.container_id is not None
        result = self.cli.run(
            "exec", self.container_id, *command,
            check=False,
            timeout=timeout,
            timeout_error=ExecTimeoutError,
        )
        return ExecResult(exit_code=result.returncode, stdout=result.stdout, stderr=result.stderr)

    def __repr__(self) -> str:
        return f"<DockerContainer {self.image_ref} {self.resource_id} {self.state.value}>"


class ContainerOrchestrator:
    """Creates containers and releases them together.

    Usage:
        with ContainerOrchestrator() as docker:
            pg = docker.create(
                "postgres", "16",
                ports=[5432],
                env={"POSTGRES_PASSWORD": "test"},
                wait_for=[LogWait("ready to accept connections", occurrences=2)],
            )
            pg.exec(["psql", "-U", "postgres", "-c", "select 1"])
    """

    def __init__(
        self,
        settings: FixtureOpsSettings | None = None,
        probe: AvailabilityProbe | None = None,
        registry: ResourceRegistry | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.probe = probe or AvailabilityProbe(
            timeout=self.settings.probe_timeout,
            docker_binary=self.settings.docker_binary,
        )
        self.registry = registry
        self._containers: list[DockerContainer] = []

    @property
    def containers(self) -> list[DockerContainer]:
        return list(self._containers)

    def container(
        self,
        image: str,
        tag: str = "latest",
        ports: Iterable[int] = (),
        env: Mapping[str, str] | None = None,
        command: Sequence[str] | None = None,
        wait_for: Iterable[WaitCondition] = (),
        name: str | None = None,
        labels: Mapping[str, str] | None = None,
    ) -> DockerContainer:
        """Describe a container without starting it."""
        return DockerContainer(
            image,
            tag,
            ports=ports,
            env=env,
            command=command,
            wait_for=wait_for,
            name=name,
            labels=labels,
            settings=self.settings,
            probe=self.probe,
            registry=self.registry,
        )

    def create(
        self,
        image: str,
        tag: str = "latest",
        ports: Iterable[int] = (),
        env: Mapping[str, str] | None = None,
        command: Sequence[str] | None = None,
        wait_for: Iterable[WaitCondition] = (),
        name: str | None = None,
        labels: Mapping[str, str] | None = None,
    ) -> DockerContainer:
        """Create a container and wait until it is READY.

        Raises:
            InvalidConfigError: Empty image or tag.
            BinaryNotFoundError, DaemonUnreachableError, DaemonUnresponsiveError:
                Docker is not usable; nothing was created.
            ContainerCreationFailedError: Docker refused to create it.
            WaitConditionTimeoutError: Readiness was not reached; the
                container has been removed.
        """
        container = self.container(
            image, tag, ports=ports, env=env, command=command,
            wait_for=wait_for, name=name, labels=labels,
        )
        container.acquire()
        self._containers.append(container)
        return container

    def release_all(self) -> None:
        """Release every container created here, newest first.

        Raises:
            ProcessStopFailedError: The first release failure, after every
                container has been attempted.
        """
        errors: list[ProcessStopFailedError] = []
        while self._containers:
            container = self._containers.pop()
            try:
                container.release()
            except ProcessStopFailedError as e:
                logger.warning(f"Failed to release {container.resource_id}: {e}")
                errors.append(e)
        if errors:
            raise errors[0]

    def __enter__(self) -> ContainerOrchestrator:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release_all()


def _session_alive(session: str) -> bool:
    try:
        pid = int(session)
    except ValueError:
        return False
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def sweep_orphans(
    all_sessions: bool = False,
    docker_binary: str = "docker",
    current_session: str = SESSION_ID,
) -> list[str]:
    """Remove managed containers left behind by dead test sessions.

    Args:
        all_sessions: Remove every managed container, including those of
            live sessions.
        docker_binary: Docker executable.
        current_session: Session whose containers are never swept unless
            ``all_sessions`` is set.

    Returns:
        Ids of the removed containers.
    """
    cli = DockerCli(docker_binary)
    result = cli.run(
        "ps", "-a",
        "--filter", f"label={LABEL_MANAGED}=true",
        "--format", f'{{{{.ID}}}} {{{{.Label "{LABEL_SESSION}"}}}}',
        timeout=30,
    )

    orphans: list[str] = []
    for line in result.stdout.splitlines():
        parts = line.split()
        if not parts:
            continue
        container_id = parts[0]
        session = parts[1] if len(parts) > 1 else ""
        if all_sessions:
            orphans.append(container_id)
        elif session != current_session and not _session_alive(session):
            orphans.append(container_id)

    if orphans:
        cli.run("rm", "-f", "-v", *orphans, timeout=120)
        logger.info(f"Removed {len(orphans)} orphaned containers")
    else:
        logger.debug("No orphaned containers found")
    return orphans


__all__ = [
    "ContainerOrchestrator",
    "DockerContainer",
    "DockerCli",
    "ExecResult",
    "sweep_orphans",
    "is_daemon_connection_error",
    "LABEL_MANAGED",
    "LABEL_SESSION",
    "SESSION_ID",
]
