"""Resource lifecycle, readiness waits and the live resource registry."""

from fixtureops.runtime.lifecycle import LifecycleState, ManagedResource, acquired
from fixtureops.runtime.registry import REGISTRY, ResourceRegistry
from fixtureops.runtime.wait import (
    DEFAULT_WAIT_TIMEOUT,
    HttpWait,
    LogWait,
    PortWait,
    WaitCondition,
    WaitTarget,
    wait_for,
)

__all__ = [
    "LifecycleState",
    "ManagedResource",
    "acquired",
    "REGISTRY",
    "ResourceRegistry",
    "WaitCondition",
    "WaitTarget",
    "HttpWait",
    "LogWait",
    "PortWait",
    "wait_for",
    "DEFAULT_WAIT_TIMEOUT",
]
