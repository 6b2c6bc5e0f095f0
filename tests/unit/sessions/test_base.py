"""Tests for SessionManager base class."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import pytest

from suite_harness.errors import AuthenticationError, ProvisioningError
from suite_harness.sessions.base import SessionManager, Snapshot, artifact_name


@dataclass(kw_only=True)
class FakeSessionManager(SessionManager[str]):
    """Session manager recording what it opens and closes."""

    open_error: Exception | None = None
    close_error: Exception | None = None
    snapshot_error: Exception | None = None
    snapshot_content: bytes | None = b"png-bytes"
    opened: list[str] = field(default_factory=list)
    closed: list[str] = field(default_factory=list)

    async def open_handle(self, label: str) -> str:
        if self.open_error is not None:
            raise self.open_error
        handle = f"handle-{len(self.opened)}"
        self.opened.append(handle)
        return handle

    async def close_handle(self, handle: str) -> None:
        self.closed.append(handle)
        if self.close_error is not None:
            raise self.close_error

    async def snapshot(self, handle: str) -> Snapshot | None:
        if self.snapshot_error is not None:
            raise self.snapshot_error
        if self.snapshot_content is None:
            return None
        return Snapshot(content=self.snapshot_content, extension="png")


@pytest.fixture
def manager(tmp_path: Path) -> FakeSessionManager:
    """Create a fake manager writing artifacts to a temp directory."""
    return FakeSessionManager(artifacts_dir=tmp_path / "artifacts")


class TestAcquire:
    """Tests for acquire."""

    async def test_returns_context_with_handle(
        self, manager: FakeSessionManager
    ) -> None:
        """Acquired context wraps the opened handle."""
        context = await manager.acquire("login")

        assert context.handle == "handle-0"
        assert context.label == "login"
        assert context.context_id
        assert manager.active_count == 1

    async def test_each_acquire_is_isolated(self, manager: FakeSessionManager) -> None:
        """Every acquire opens a new handle with its own id."""
        first = await manager.acquire("a")
        second = await manager.acquire("b")

        assert first.handle != second.handle
        assert first.context_id != second.context_id

    async def test_wraps_unexpected_errors(self, manager: FakeSessionManager) -> None:
        """Engine failures surface as ProvisioningError."""
        manager.open_error = OSError("executable not found")

        with pytest.raises(ProvisioningError, match="executable not found"):
            await manager.acquire("a")

        assert manager.active_count == 0

    async def test_keeps_harness_errors(self, manager: FakeSessionManager) -> None:
        """Authentication failures are not rewrapped."""
        manager.open_error = AuthenticationError("bad secret")

        with pytest.raises(AuthenticationError, match="bad secret"):
            await manager.acquire("a")


class TestRelease:
    """Tests for release."""

    async def test_closes_handle(self, manager: FakeSessionManager) -> None:
        """Release closes the handle once."""
        context = await manager.acquire("a")

        await manager.release(context)

        assert manager.closed == ["handle-0"]
        assert manager.active_count == 0

    async def test_is_idempotent(self, manager: FakeSessionManager) -> None:
        """Releasing twice closes once and does not raise."""
        context = await manager.acquire("a")

        await manager.release(context)
        await manager.release(context)

        assert manager.closed == ["handle-0"]

    async def test_accepts_none(self, manager: FakeSessionManager) -> None:
        """Releasing a context that was never acquired is a no-op."""
        await manager.release(None)

        assert manager.closed == []

    async def test_logs_close_failures(
        self, manager: FakeSessionManager, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Teardown failures are logged, never raised."""
        manager.close_error = RuntimeError("browser crashed")
        context = await manager.acquire("a")

        with caplog.at_level(logging.WARNING):
            await manager.release(context)

        assert "Failed to release context" in caplog.text
        assert manager.active_count == 0

        await manager.release(context)
        assert manager.closed == ["handle-0"]


class TestCaptureDiagnostic:
    """Tests for capture_diagnostic."""

    async def test_writes_artifact(
        self, manager: FakeSessionManager, tmp_path: Path
    ) -> None:
        """Snapshot is written under the label with a timestamp."""
        context = await manager.acquire("Search results")

        path = await manager.capture_diagnostic(context, "FAILED_Search results")

        assert path is not None
        assert path.parent == tmp_path / "artifacts"
        assert path.name.startswith("FAILED_Search_results_")
        assert path.suffix == ".png"
        assert path.read_bytes() == b"png-bytes"

    async def test_returns_none_when_nothing_to_capture(
        self, manager: FakeSessionManager
    ) -> None:
        """Handles without a snapshot produce no artifact."""
        manager.snapshot_content = None
        context = await manager.acquire("a")

        assert await manager.capture_diagnostic(context) is None

    async def test_swallows_capture_errors(
        self, manager: FakeSessionManager, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Failing to capture is logged and returns None."""
        manager.snapshot_error = RuntimeError("page closed")
        context = await manager.acquire("a")

        with caplog.at_level(logging.WARNING):
            path = await manager.capture_diagnostic(context)

        assert path is None
        assert "Failed to capture diagnostic" in caplog.text


async def test_session_releases_on_error(manager: FakeSessionManager) -> None:
    """The session block releases its context even when the body raises."""
    with pytest.raises(ValueError, match="body failed"):
        async with manager.session("a"):
            raise ValueError("body failed")

    assert manager.closed == ["handle-0"]
    assert manager.active_count == 0


@pytest.mark.parametrize(
    ("label", "expected"),
    [
        ("Search results", "Search_results_20990102_030405.png"),
        ("FAILED_a/b\\c", "FAILED_a_b_c_20990102_030405.png"),
        ("   ", "context_20990102_030405.png"),
    ],
)
def test_artifact_name(label: str, expected: str) -> None:
    """Artifact names are deterministic and filesystem-safe."""
    assert artifact_name(label, "png", datetime(2099, 1, 2, 3, 4, 5)) == expected
