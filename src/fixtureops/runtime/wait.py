"""Readiness wait conditions.

A wait condition is a stateless description of "what ready looks like".
``start()`` binds it to a target and returns a poller that holds any
per-wait state (an HTTP client, a log cursor). ``wait_for`` drives the
poller at the condition's interval until it succeeds or the deadline
passes.

Example:
    >>> container = orchestrator.create(
    ...     "nginx", "1.27", ports=[80],
    ...     wait_for=[HttpWait(port=80, path="/", timeout=30)],
    ... )
"""

from __future__ import annotations

import logging
import re
import socket
import threading
import time
from abc import ABC, abstractmethod
from typing import Protocol

import httpx

from fixtureops.config import DEFAULT_POLL_INTERVAL
from fixtureops.errors import (
    InvalidConfigError,
    OperationCancelledError,
    ResourceExitedError,
    WaitConditionTimeoutError,
)

logger = logging.getLogger(__name__)

DEFAULT_WAIT_TIMEOUT = 60.0


class WaitTarget(Protocol):
    """What a wait condition needs from the resource it polls."""

    def endpoint(self, port: int) -> tuple[str, int]:
        """Host and host-side port that reach ``port`` on the resource."""
        ...

    def read_logs(self, offset: int) -> list[str]:
        """Log lines from ``offset`` (a line index) to the current end."""
        ...

    def is_alive(self) -> bool:
        ...


class Poller(Protocol):
    def __call__(self, remaining: float | None = None) -> bool:
        """Poll once. ``remaining`` caps the time a single poll may block."""
        ...

    def close(self) -> None: ...


class WaitCondition(ABC):
    """Base class for readiness predicates.

    Args:
        timeout: Overall deadline in seconds; None defers to the owning
            resource (or DEFAULT_WAIT_TIMEOUT).
        poll_interval: Delay between polls in seconds; None defers to the
            owning resource's ``poll_interval`` setting.
    """

    def __init__(self, timeout: float | None = None, poll_interval: float | None = None) -> None:
        if timeout is not None and timeout <= 0:
            raise InvalidConfigError(f"Wait timeout must be positive, got {timeout}", field="timeout", value=timeout)
        if poll_interval is not None and poll_interval <= 0:
            raise InvalidConfigError(
                f"Poll interval must be positive, got {poll_interval}",
                field="poll_interval",
                value=poll_interval,
            )
        self.timeout = timeout
        self.poll_interval = poll_interval

    @abstractmethod
    def start(self, target: WaitTarget) -> Poller:
        """Bind the condition to ``target`` and return a fresh poller."""

    @abstractmethod
    def describe(self) -> str:
        """Short description used in timeout messages."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.describe()} timeout={self.timeout}s>"


class HttpWait(WaitCondition):
    """Ready when an HTTP GET returns a 2xx or 3xx status."""

    def __init__(
        self,
        port: int,
        path: str = "/",
        scheme: str = "http",
        request_timeout: float = 1.0,
        timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> None:
        super().__init__(timeout=timeout, poll_interval=poll_interval)
        self.port = port
        self.path = path if path.startswith("/") else f"/{path}"
        self.scheme = scheme
        self.request_timeout = request_timeout

    def start(self, target: WaitTarget) -> Poller:
        return _HttpPoller(self, target)

    def describe(self) -> str:
        return f"HTTP {self.scheme}://<host>:{self.port}{self.path}"


class _HttpPoller:
    def __init__(self, condition: HttpWait, target: WaitTarget) -> None:
        self._condition = condition
        self._target = target
        # No redirects: a 3xx already counts as ready
        self._client = httpx.Client(timeout=condition.request_timeout, follow_redirects=False)

    def __call__(self, remaining: float | None = None) -> bool:
        try:
            host, port = self._target.endpoint(self._condition.port)
        except Exception as e:
            logger.debug(f"Endpoint for port {self._condition.port} not available yet: {e}")
            return False
        url = f"{self._condition.scheme}://{host}:{port}{self._condition.path}"
        try:
            response = self._client.get(url, timeout=_cap(self._condition.request_timeout, remaining))
        except httpx.HTTPError as e:
            logger.debug(f"GET {url} failed: {e}")
            return False
        logger.debug(f"GET {url} -> {response.status_code}")
        return 200 <= response.status_code < 400

    def close(self) -> None:
        self._client.close()


class LogWait(WaitCondition):
    """Ready when the log stream contains a match.

    Only lines appended since the previous poll are scanned.

    Args:
        pattern: Substring, or regular expression when ``regex`` is True.
        occurrences: Number of matching lines required.
    """

    def __init__(
        self,
        pattern: str,
        regex: bool = False,
        occurrences: int = 1,
        timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> None:
        super().__init__(timeout=timeout, poll_interval=poll_interval)
        if not pattern:
            raise InvalidConfigError("Log pattern cannot be empty", field="pattern", value=pattern)
        if occurrences < 1:
            raise InvalidConfigError(
                f"occurrences must be at least 1, got {occurrences}",
                field="occurrences",
                value=occurrences,
            )
        self.pattern = pattern
        self.regex = regex
        self.occurrences = occurrences
        self._compiled = re.compile(pattern) if regex else None

    def matches(self, line: str) -> bool:
        if self._compiled is not None:
            return self._compiled.search(line) is not None
        return self.pattern in line

    def start(self, target: WaitTarget) -> Poller:
        return _LogPoller(self, target)

    def describe(self) -> str:
        kind = "regex" if self.regex else "text"
        return f"log {kind} {self.pattern!r} x{self.occurrences}"


class _LogPoller:
    def __init__(self, condition: LogWait, target: WaitTarget) -> None:
        self._condition = condition
        self._target = target
        self.cursor = 0
        self.matched = 0

    def __call__(self, remaining: float | None = None) -> bool:
        lines = self._target.read_logs(self.cursor)
        self.cursor += len(lines)
        for line in lines:
            if self._condition.matches(line):
                self.matched += 1
        return self.matched >= self._condition.occurrences

    def close(self) -> None:
        pass


class PortWait(WaitCondition):
    """Ready when a TCP connection to the port succeeds."""

    def __init__(
        self,
        port: int,
        connect_timeout: float = 1.0,
        timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> None:
        super().__init__(timeout=timeout, poll_interval=poll_interval)
        self.port = port
        self.connect_timeout = connect_timeout

    def start(self, target: WaitTarget) -> Poller:
        return _PortPoller(self, target)

    def describe(self) -> str:
        return f"TCP port {self.port}"


class _PortPoller:
    def __init__(self, condition: PortWait, target: WaitTarget) -> None:
        self._condition = condition
        self._target = target

    def __call__(self, remaining: float | None = None) -> bool:
        try:
            host, port = self._target.endpoint(self._condition.port)
        except Exception as e:
            logger.debug(f"Endpoint for port {self._condition.port} not available yet: {e}")
            return False
        try:
            with socket.create_connection((host, port), timeout=_cap(self._condition.connect_timeout, remaining)):
                return True
        except OSError:
            return False

    def close(self) -> None:
        pass


def _cap(limit: float, remaining: float | None) -> float:
    """Per-poll I/O timeout that never runs past the wait deadline."""
    if remaining is None:
        return limit
    return max(min(limit, remaining), 0.001)


def wait_for(
    condition: WaitCondition,
    target: WaitTarget,
    cancel_event: threading.Event | None = None,
    timeout: float | None = None,
    poll_interval: float | None = None,
) -> int:
    """Poll ``condition`` against ``target`` until it holds.

    Returns within the deadline plus one poll interval. Each poll's network
    timeout is capped at the time left before the deadline.

    Args:
        condition: The readiness predicate.
        target: Resource to poll.
        cancel_event: Set it to abort the wait.
        timeout: Overrides ``condition.timeout``.
        poll_interval: Used when the condition sets no interval of its own.

    Returns:
        The number of polls it took.

    Raises:
        WaitConditionTimeoutError: The deadline passed.
        OperationCancelledError: ``cancel_event`` was set.
        ResourceExitedError: The target died while being polled.
    """
    cancel_event = cancel_event or threading.Event()
    if timeout is None:
        timeout = condition.timeout if condition.timeout is not None else DEFAULT_WAIT_TIMEOUT
    interval = condition.poll_interval or poll_interval or DEFAULT_POLL_INTERVAL
    started = time.monotonic()
    deadline = started + timeout
    attempts = 0

    poller = condition.start(target)
    try:
        while True:
            if cancel_event.is_set():
                raise OperationCancelledError(f"Cancelled while waiting for {condition.describe()}")

            attempts += 1
            if poller(deadline - time.monotonic()):
                logger.debug(
                    f"{condition.describe()} satisfied after {attempts} polls "
                    f"({time.monotonic() - started:.2f}s)"
                )
                return attempts

            if not target.is_alive():
                raise ResourceExitedError(
                    f"Resource exited while waiting for {condition.describe()}",
                    attempts=attempts,
                )

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise WaitConditionTimeoutError(
                    condition=condition.describe(),
                    timeout=timeout,
                    attempts=attempts,
                )
            if cancel_event.wait(min(interval, remaining)):
                raise OperationCancelledError(f"Cancelled while waiting for {condition.describe()}")
    finally:
        poller.close()
