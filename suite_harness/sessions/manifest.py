"""Session kind manifest definition for the plugin system."""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from suite_harness.config import HarnessSettings

if TYPE_CHECKING:
    from suite_harness.sessions.base import SessionManager


@dataclass(frozen=True, kw_only=True)
class SessionManifest[HandleT]:
    """Manifest describing a session kind plugin.

    The factory builds a session manager from the run settings and owns
    the lifetime of whatever heavy resource the manager relies on.
    """

    kind: str
    session_factory: Callable[
        [HarnessSettings],
        AbstractAsyncContextManager["SessionManager[HandleT]"],
    ]
