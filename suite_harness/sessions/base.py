"""Abstract base class for execution context lifecycle managers."""

import logging
import re
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from suite_harness.cleanup import Deleter
from suite_harness.errors import HarnessError, ProvisioningError

log = logging.getLogger(__name__)

_UNSAFE_LABEL_CHARS = re.compile(r"[^\w.-]+")


@dataclass(frozen=True, kw_only=True)
class ExecutionContext[T]:
    """Handle to the resource one test case interacts with.

    Generic type T is the capability handle - a browser page wrapper, an
    authenticated HTTP client, or whatever the manager provisions.
    """

    context_id: str
    label: str
    created_at: datetime
    handle: T = field(repr=False)


@dataclass(frozen=True, kw_only=True)
class Snapshot:
    """Diagnostic content produced from a handle."""

    content: bytes
    extension: str


def artifact_name(label: str, extension: str, now: datetime) -> str:
    """Build the deterministic file name of a diagnostic artifact."""
    slug = _UNSAFE_LABEL_CHARS.sub("_", label).strip("_") or "context"
    return f"{slug}_{now:%Y%m%d_%H%M%S}.{extension}"


@dataclass(kw_only=True)
class SessionManager[T](ABC):
    """Provides each test case an isolated execution context and releases it.

    Subclasses open and close the underlying handle; this class keeps track
    of live contexts so that release is idempotent and never raises.
    """

    artifacts_dir: Path = Path("artifacts")
    _active: dict[str, ExecutionContext[T]] = field(
        default_factory=dict, init=False, repr=False
    )

    @abstractmethod
    async def open_handle(self, label: str) -> T:
        """Create a ready-to-use handle.

        Args:
            label: Name of the test case the handle is for

        Raises:
            ProvisioningError: If the handle cannot be created

        """

    @abstractmethod
    async def close_handle(self, handle: T) -> None:
        """Tear down a handle in reverse order of creation."""

    @abstractmethod
    async def snapshot(self, handle: T) -> Snapshot | None:
        """Produce diagnostic content, or None if nothing can be captured."""

    def deleters(self) -> Mapping[str, Deleter]:
        """Deletion operations for resource kinds this manager can clean up."""
        return {}

    @property
    def active_count(self) -> int:
        return len(self._active)

    async def acquire(self, label: str = "context") -> ExecutionContext[T]:
        """Provision an execution context for one test case.

        Raises:
            ProvisioningError: If the underlying resource cannot be started
            AuthenticationError: If the context requires a token that
                cannot be obtained

        """
        try:
            handle = await self.open_handle(label)
        except HarnessError:
            raise
        except Exception as exc:
            raise ProvisioningError(
                f"Failed to provision execution context: {exc}"
            ) from exc

        context = ExecutionContext(
            context_id=uuid.uuid4().hex,
            label=label,
            created_at=datetime.now(timezone.utc),
            handle=handle,
        )
        self._active[context.context_id] = context
        log.debug("Acquired context %s for %s", context.context_id, label)
        return context

    async def release(self, context: ExecutionContext[T] | None) -> None:
        """Tear down a context. Safe to call twice or with None."""
        if context is None:
            return

        if self._active.pop(context.context_id, None) is None:
            log.debug("Context %s already released", context.context_id)
            return

        try:
            await self.close_handle(context.handle)
        except Exception as exc:
            log.warning(
                "Failed to release context %s for %s: %s",
                context.context_id,
                context.label,
                exc,
                exc_info=exc,
            )
            return

        log.debug("Released context %s for %s", context.context_id, context.label)

    async def capture_diagnostic(
        self, context: ExecutionContext[T], label: str | None = None
    ) -> Path | None:
        """Write a diagnostic snapshot of the context to the artifacts directory.

        Returns:
            Path of the written artifact, or None if nothing was captured

        """
        label = label or context.label
        try:
            snapshot = await self.snapshot(context.handle)
            if snapshot is None:
                log.info("No diagnostic available for %s", label)
                return None

            path = self.artifacts_dir / artifact_name(
                label, snapshot.extension, datetime.now()
            )
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(snapshot.content)
        except Exception as exc:
            log.warning(
                "Failed to capture diagnostic for %s: %s", label, exc, exc_info=exc
            )
            return None

        log.info("Diagnostic saved: %s", path)
        return path

    @asynccontextmanager
    async def session(self, label: str = "context") -> AsyncGenerator[
        ExecutionContext[T], None
    ]:
        """Acquire a context for the duration of a block."""
        context = await self.acquire(label)
        try:
            yield context
        finally:
            await self.release(context)
