"""Registry of durable resources created by tests and their deletion."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Literal

from suite_harness.errors import CleanupError

log = logging.getLogger(__name__)

type Deleter = Callable[[str], Awaitable[None]]


@dataclass(frozen=True, kw_only=True)
class TrackedResource:
    """A durable resource that must be deleted during cleanup."""

    kind: str
    id: str
    owner: str | None = None


@dataclass(frozen=True, kw_only=True)
class CleanupResult:
    """Outcome of one deletion attempt."""

    resource: TrackedResource
    status: Literal["deleted", "failed"]
    message: str | None = None


@dataclass(kw_only=True)
class CleanupRegistry:
    """Tracks created resources and deletes them on demand.

    Each tracked resource gets at most one deletion attempt: it leaves the
    registry before its deleter runs, whether the deletion succeeds or not.
    """

    deleters: dict[str, Deleter] = field(default_factory=dict)
    _tracked: dict[tuple[str, str], TrackedResource] = field(
        default_factory=dict, init=False, repr=False
    )

    def register_deleter(self, kind: str, deleter: Deleter) -> None:
        """Register the deletion operation for a resource kind."""
        self.deleters[kind] = deleter

    def track(self, kind: str, resource_id: str, owner: str | None = None) -> None:
        """Record a resource for later deletion.

        Call right after the resource is created, before any assertion on it.
        Tracking the same kind and identifier again is a no-op.
        """
        key = (kind, resource_id)
        if key in self._tracked:
            log.debug("Resource already tracked: %s/%s", kind, resource_id)
            return
        self._tracked[key] = TrackedResource(kind=kind, id=resource_id, owner=owner)
        log.debug("Tracking resource %s/%s (owner=%s)", kind, resource_id, owner)

    @property
    def pending(self) -> Sequence[TrackedResource]:
        """Resources still waiting for a deletion attempt."""
        return tuple(self._tracked.values())

    def __len__(self) -> int:
        return len(self._tracked)

    async def drain_all(self, owner: str | None = None) -> Sequence[CleanupResult]:
        """Attempt deletion of every tracked resource.

        Args:
            owner: Only drain resources tracked by this test case. All
                resources are drained when omitted.

        Returns:
            One result per attempted deletion

        """
        resources = [
            resource
            for resource in self._tracked.values()
            if owner is None or resource.owner == owner
        ]
        if not resources:
            return []

        for resource in resources:
            del self._tracked[(resource.kind, resource.id)]

        log.info("Cleaning up %d resource(s)...", len(resources))
        results = await asyncio.gather(
            *(self._delete(resource) for resource in resources)
        )

        failures = sum(1 for result in results if result.status == "failed")
        if failures:
            log.warning("Cleanup finished with %d failure(s)", failures)
        else:
            log.info("Cleanup finished")
        return results

    async def _delete(self, resource: TrackedResource) -> CleanupResult:
        try:
            deleter = self.deleters.get(resource.kind)
            if deleter is None:
                raise CleanupError(f"No deleter registered for kind '{resource.kind}'")
            await deleter(resource.id)
        except Exception as exc:
            log.warning(
                "Failed to delete %s/%s: %s",
                resource.kind,
                resource.id,
                exc,
                exc_info=exc,
            )
            return CleanupResult(resource=resource, status="failed", message=str(exc))

        log.debug("Deleted %s/%s", resource.kind, resource.id)
        return CleanupResult(resource=resource, status="deleted")
