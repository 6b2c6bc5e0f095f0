"""Loading of session kinds from entry points."""

import logging
from importlib.metadata import entry_points
from typing import Any

from suite_harness.sessions.manifest import SessionManifest

log = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "suite_harness.sessions"


class SessionKindNotFoundError(Exception):
    """Raised when no session kind is registered under a key."""


def available_kinds() -> list[str]:
    """Names of every registered session kind, sorted."""
    return sorted({entry.name for entry in entry_points(group=ENTRY_POINT_GROUP)})


def load_session_manifest(kind: str) -> SessionManifest[Any]:
    """Load the manifest of a session kind.

    The entry point name selects the plugin; the loaded manifest must
    declare the same kind.

    Args:
        kind: The session kind a suite declares (e.g., "browser", "api")

    Raises:
        SessionKindNotFoundError: If no session kind with the given key exists
        TypeError: If the entry point does not resolve to a matching manifest

    """
    matches = entry_points(group=ENTRY_POINT_GROUP, name=kind)
    if not matches:
        raise SessionKindNotFoundError(
            f"Session kind '{kind}' not found. Available kinds: {available_kinds()}"
        )

    entry = next(iter(matches))
    manifest = entry.load()
    if not isinstance(manifest, SessionManifest):
        raise TypeError(f"Entry point {entry.value} is not a SessionManifest")
    if manifest.kind != kind:
        raise TypeError(
            f"Entry point '{kind}' provides session kind '{manifest.kind}'"
        )

    log.debug("Loaded session kind %s from %s", kind, entry.value)
    return manifest
