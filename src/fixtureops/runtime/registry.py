"""Process-wide registry of live resources.

Every resource that leaves UNINITIALIZED is registered here until it is
released. The registry is the only state shared between resources; it is
used to cancel everything on interrupt and to release whatever a crashing
test process leaked.
"""

from __future__ import annotations

import atexit
import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fixtureops.runtime.lifecycle import ManagedResource

logger = logging.getLogger(__name__)


class ResourceRegistry:
    """Lock-protected set of resources that have not been released."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._resources: dict[str, ManagedResource] = {}

    def register(self, resource: ManagedResource) -> None:
        with self._lock:
            self._resources[resource.resource_id] = resource

    def unregister(self, resource: ManagedResource) -> None:
        with self._lock:
            self._resources.pop(resource.resource_id, None)

    def live(self) -> list[ManagedResource]:
        with self._lock:
            return list(self._resources.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._resources)

    def __contains__(self, resource: object) -> bool:
        resource_id = getattr(resource, "resource_id", None)
        with self._lock:
            return resource_id in self._resources

    def cancel_all(self) -> int:
        """Signal cancellation to every live resource. Returns the count."""
        resources = self.live()
        for resource in resources:
            resource.cancel()
        if resources:
            logger.info(f"Cancelled {len(resources)} live resources")
        return len(resources)

    def sweep(self) -> int:
        """Release every live resource, newest first. Returns the count.

        Release failures are logged and do not stop the sweep.
        """
        resources = list(reversed(self.live()))
        released = 0
        for resource in resources:
            try:
                resource.release()
                released += 1
            except Exception as e:
                logger.warning(f"Failed to release {resource.resource_id} during sweep: {e}")
            finally:
                self.unregister(resource)
        if resources:
            logger.info(f"Swept {released}/{len(resources)} leaked resources")
        return released


REGISTRY = ResourceRegistry()


@atexit.register
def _sweep_at_exit() -> None:
    REGISTRY.sweep()
