"""Resource lifecycle contract.

Every managed resource moves through:

    UNINITIALIZED -> STARTING -> READY -> STOPPING -> STOPPED
                         |         |         |
                         +------> FAILED <---+

``acquire()`` runs the pre-flight probe before anything is spawned, then
starts the resource and waits for readiness. A start that fails for any
reason (deadline, early exit, cancellation, runtime error) tears down
whatever was created before the error reaches the caller.

``release()`` is idempotent. Use the resource as a context manager, or
``acquired()``, so that release runs on every exit path.
"""

from __future__ import annotations

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, TypeVar

from fixtureops.errors import (
    ErrorContext,
    OperationCancelledError,
    ProcessNotRunningError,
    ProcessStopFailedError,
    StateConflictError,
)
from fixtureops.runtime.registry import REGISTRY, ResourceRegistry
from fixtureops.runtime.wait import WaitCondition, wait_for

if TYPE_CHECKING:
    from types import TracebackType

    from fixtureops.preflight import AvailabilityResult

logger = logging.getLogger(__name__)

R = TypeVar("R", bound="ManagedResource")


class LifecycleState(Enum):
    """Lifecycle state of a managed resource."""

    UNINITIALIZED = "uninitialized"
    STARTING = "starting"
    READY = "ready"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


_TRANSITIONS: dict[LifecycleState, frozenset[LifecycleState]] = {
    LifecycleState.UNINITIALIZED: frozenset({LifecycleState.STARTING}),
    LifecycleState.STARTING: frozenset({LifecycleState.READY, LifecycleState.FAILED}),
    LifecycleState.READY: frozenset({LifecycleState.STOPPING, LifecycleState.FAILED}),
    LifecycleState.STOPPING: frozenset({LifecycleState.STOPPED, LifecycleState.FAILED}),
    # A failed resource still holding handles is torn down through STOPPING
    LifecycleState.FAILED: frozenset({LifecycleState.STOPPING}),
    LifecycleState.STOPPED: frozenset(),
}


class ManagedResource(ABC):
    """Base class for resources with an acquire/release lifecycle.

    Subclasses implement ``_start`` and ``_teardown``, and may override
    ``_preflight`` and ``_await_ready``. A resource is single-owner: only
    ``cancel()`` may be called from another thread.
    """

    resource_kind = "resource"
    # Deadline and interval for wait conditions that do not set their own
    default_wait_timeout: float | None = None
    default_poll_interval: float | None = None

    def __init__(
        self,
        wait_conditions: Iterable[WaitCondition] = (),
        resource_id: str | None = None,
        registry: ResourceRegistry | None = None,
    ) -> None:
        self.resource_id = resource_id or f"{self.resource_kind}-{uuid.uuid4().hex[:12]}"
        self.wait_conditions = list(wait_conditions)
        self._state = LifecycleState.UNINITIALIZED
        self._cancel_event = threading.Event()
        self._registry = registry if registry is not None else REGISTRY
        self._teardown_pending = False

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is LifecycleState.READY

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Ask any in-flight blocking operation to give up.

        Polling loops observe the request within one poll interval and
        raise ``OperationCancelledError``.
        """
        self._cancel_event.set()

    def _transition(self, new_state: LifecycleState) -> None:
        if new_state not in _TRANSITIONS[self._state]:
            raise StateConflictError(
                f"Cannot move {self.resource_id} from {self._state.value} to {new_state.value}",
                context=self._error_context(),
            )
        logger.debug(f"{self.resource_id}: {self._state.value} -> {new_state.value}")
        self._state = new_state

    def _error_context(self, **extra: object) -> ErrorContext:
        return ErrorContext(
            resource_id=self.resource_id,
            resource_kind=self.resource_kind,
            state=self._state.value,
            extra=dict(extra),
        )

    def _check_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise OperationCancelledError(f"{self.resource_id} was cancelled", context=self._error_context())

    def require_ready(self, operation: str) -> None:
        """Raise ProcessNotRunningError unless the resource is READY."""
        if self._state is not LifecycleState.READY:
            raise ProcessNotRunningError(
                f"Cannot {operation}: {self.resource_id} is {self._state.value}",
                context=self._error_context(),
            )

    def mark_failed(self, reason: str) -> None:
        """Record an unrecoverable error. Handles stay held for ``release()``."""
        if self._state in (LifecycleState.FAILED, LifecycleState.STOPPED, LifecycleState.UNINITIALIZED):
            return
        logger.warning(f"{self.resource_id} failed: {reason}")
        self._transition(LifecycleState.FAILED)

    # Subclass hooks

    def _preflight(self) -> AvailabilityResult | None:
        """Availability check run before anything is created."""
        return None

    @abstractmethod
    def _start(self) -> None:
        """Create the underlying process or container."""

    def _await_ready(self) -> None:
        """Block until every wait condition holds."""
        for condition in self.wait_conditions:
            timeout = condition.timeout if condition.timeout is not None else self.default_wait_timeout
            wait_for(  # type: ignore[arg-type]
                condition, self, self._cancel_event, timeout=timeout, poll_interval=self.default_poll_interval
            )

    @abstractmethod
    def _teardown(self) -> None:
        """Destroy whatever ``_start`` created. Must tolerate partial starts."""

    # Lifecycle

    def acquire(self: R) -> R:
        """Start the resource and wait until it is READY.

        Raises:
            StateConflictError: The resource was already acquired.
            BinaryNotFoundError, DaemonUnreachableError, DaemonUnresponsiveError:
                The pre-flight probe failed; nothing was created.
            WaitConditionTimeoutError, ResourceExitedError, OperationCancelledError:
                Readiness was not reached; the resource was torn down.
        """
        if self._state is not LifecycleState.UNINITIALIZED:
            raise StateConflictError(
                f"{self.resource_id} was already acquired (state: {self._state.value})",
                context=self._error_context(),
            )

        availability = self._preflight()
        if availability is not None:
            availability.raise_for_status()

        self._transition(LifecycleState.STARTING)
        self._registry.register(self)
        self._teardown_pending = True
        try:
            self._check_cancelled()
            self._start()
            self._check_cancelled()
            self._await_ready()
            self._transition(LifecycleState.READY)
        except BaseException as e:
            self._abort_start(e)
            raise

        logger.info(f"{self.resource_id} is ready")
        return self

    def _abort_start(self, error: BaseException) -> None:
        if self._state is not LifecycleState.FAILED:
            self._transition(LifecycleState.FAILED)
        logger.warning(f"{self.resource_id} failed to start: {error}")
        try:
            self._teardown()
        except Exception as e:
            logger.warning(f"Cleanup of {self.resource_id} after failed start also failed: {e}")
        finally:
            self._teardown_pending = False
            self._registry.unregister(self)

    def release(self) -> None:
        """Tear the resource down. Safe to call more than once.

        Raises:
            ProcessStopFailedError: Teardown failed; the resource is FAILED.
        """
        if self._state in (LifecycleState.UNINITIALIZED, LifecycleState.STOPPED, LifecycleState.STOPPING):
            return
        if self._state is LifecycleState.FAILED and not self._teardown_pending:
            return
        if self._state is LifecycleState.STARTING:
            # acquire() is still running elsewhere; it cleans up once it sees the cancel
            self.cancel()
            return

        self._transition(LifecycleState.STOPPING)
        try:
            self._teardown()
        except Exception as e:
            self._transition(LifecycleState.FAILED)
            raise ProcessStopFailedError(
                f"Failed to release {self.resource_id}: {e}",
                context=self._error_context(),
                cause=e,
            ) from e
        finally:
            self._teardown_pending = False
            self._registry.unregister(self)

        self._transition(LifecycleState.STOPPED)
        logger.info(f"{self.resource_id} released")

    def __enter__(self: R) -> R:
        return self.acquire()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            self.release()
        except ProcessStopFailedError as e:
            if exc is None:
                raise
            # Keep the body's exception as the one the caller sees
            logger.warning(f"Release after error failed: {e}")

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.resource_id} {self._state.value}>"


@contextmanager
def acquired(resource: R) -> Iterator[R]:
    """Acquire ``resource`` for the duration of a ``with`` block.

    Example:
        >>> with acquired(orchestrator.container("redis", "7")) as redis:
        ...     redis.exec(["redis-cli", "ping"])
    """
    resource.acquire()
    try:
        yield resource
    finally:
        resource.release()
