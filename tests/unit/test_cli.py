"""Tests for CLI module."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from unittest.mock import AsyncMock, Mock, patch

import pytest
from pydantic import ValidationError

from suite_harness.cli import (
    apply_overrides,
    exit_code,
    format_output,
    load_suite,
    log_run_summary,
    run_suite,
)
from suite_harness.config import HarnessSettings, ReportConfig
from suite_harness.errors import ProvisioningError
from suite_harness.models.outcome import RunSummary, TestOutcome, TestStatus
from suite_harness.orchestrator import CaseScope
from suite_harness.sessions.base import SessionManager, Snapshot
from suite_harness.sessions.manifest import SessionManifest
from suite_harness.suite import Suite


@dataclass(kw_only=True)
class StaticSessionManager(SessionManager[str]):
    """Session manager handing out the case label as handle."""

    async def open_handle(self, label: str) -> str:
        return label

    async def close_handle(self, handle: str) -> None:
        return None

    async def snapshot(self, handle: str) -> Snapshot | None:
        return None


@asynccontextmanager
async def static_sessions(
    settings: HarnessSettings,
) -> AsyncGenerator[StaticSessionManager, None]:
    """Yield a static session manager for the run."""
    yield StaticSessionManager(artifacts_dir=settings.run.artifacts_dir)


@pytest.fixture
def settings(tmp_path: Path) -> HarnessSettings:
    """Settings with reporting disabled and artifacts in a temp directory."""
    return HarnessSettings.model_validate(
        {
            "report": {"enabled": False},
            "run": {"artifacts_dir": str(tmp_path / "artifacts")},
        }
    )


@pytest.fixture
def suite() -> Suite:
    """Suite with one passing and one failing case."""
    suite = Suite(name="Smoke", kind="static")

    @suite.case("passes")
    async def passes(scope: CaseScope[str]) -> None:
        assert scope.handle == "passes"

    @suite.case("fails")
    async def fails(scope: CaseScope[str]) -> None:
        raise AssertionError("Expected 200 but got 500")

    return suite


def test_log_run_summary(caplog: pytest.LogCaptureFixture) -> None:
    """Logs one line per outcome plus totals."""
    summary = RunSummary.from_outcomes(
        [
            TestOutcome(name="Get books", status="passed", duration_ms=12),
            TestOutcome(
                name="Create book",
                status="failed",
                duration_ms=30,
                error="Expected 201 but got 400",
                artifact=Path("artifacts/FAILED_Create_book.json"),
            ),
            TestOutcome(
                name="Delete book",
                status="skipped",
                duration_ms=0,
                error="Not supported",
            ),
        ]
    )

    with caplog.at_level(logging.INFO):
        log_run_summary(logging.getLogger(), summary)

    assert "Test Results Summary:" in caplog.text
    assert "✓ Get books: passed (12ms)" in caplog.text
    assert "✗ Create book: failed (30ms)" in caplog.text
    assert "Message: Expected 201 but got 400" in caplog.text
    assert "Diagnostic: artifacts/FAILED_Create_book.json" in caplog.text
    assert "⚠ Delete book: skipped (0ms)" in caplog.text
    assert "Total: 3, Passed: 1, Failed: 1, Skipped: 1, Inconclusive: 0" in (
        caplog.text
    )


def test_format_output_empty() -> None:
    """Returns empty totals when no outcomes."""
    output = format_output(RunSummary.from_outcomes([]))

    assert output == {
        "total": 0,
        "passed": 0,
        "failed": 0,
        "skipped": 0,
        "inconclusive": 0,
        "duration_ms": 0,
        "results": [],
    }


def test_format_output_outcome_fields() -> None:
    """Formats each outcome with its error details."""
    summary = RunSummary.from_outcomes(
        [
            TestOutcome(
                name="Search",
                status="failed",
                duration_ms=1500,
                category="UI",
                error="Timed out",
                error_type="InteractionTimeout",
                artifact=Path("artifacts/FAILED_Search.png"),
            )
        ]
    )

    output = format_output(summary)

    assert output["failed"] == 1
    assert output["duration_ms"] == 1500
    assert output["results"][0] == {
        "name": "Search",
        "status": "failed",
        "duration_ms": 1500,
        "category": "UI",
        "error": "Timed out",
        "error_type": "InteractionTimeout",
        "artifact": str(Path("artifacts/FAILED_Search.png")),
    }


@pytest.mark.parametrize(
    ("status", "expected"),
    [("passed", 0), ("skipped", 0), ("inconclusive", 0), ("failed", 1)],
)
def test_exit_code(status: TestStatus, expected: int) -> None:
    """Only failed outcomes make the run fail."""
    outcome = TestOutcome(name="case", status=status, duration_ms=1)
    summary = RunSummary.from_outcomes([outcome])

    assert exit_code(summary) == expected


class TestLoadSuite:
    """Tests for load_suite."""

    def test_imports_suite_attribute(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Resolves a module:attribute reference to a Suite."""
        (tmp_path / "smoke_suite_module.py").write_text(
            "from suite_harness.suite import Suite\n"
            "suite = Suite(name='Smoke', kind='api')\n"
        )
        monkeypatch.syspath_prepend(str(tmp_path))

        suite = load_suite("smoke_suite_module:suite")

        assert suite.name == "Smoke"

    def test_rejects_reference_without_attribute(self) -> None:
        """References must name an attribute."""
        with pytest.raises(ValueError, match="module:attribute"):
            load_suite("suite_harness.suite")

    def test_rejects_non_suite(self) -> None:
        """The referenced attribute must be a Suite."""
        with pytest.raises(TypeError, match="is not a Suite"):
            load_suite("suite_harness.cli:STATUS_SYMBOLS")


class TestApplyOverrides:
    """Tests for apply_overrides."""

    def test_returns_same_settings_without_overrides(self) -> None:
        """No overrides leaves settings untouched."""
        settings = HarnessSettings()

        assert apply_overrides(settings, None, None) is settings

    def test_overrides_run_settings(self) -> None:
        """Workers and cleanup mode come from the command line."""
        settings = apply_overrides(HarnessSettings(), 4, "per-test")

        assert settings.run.max_workers == 4
        assert settings.run.cleanup_mode == "per-test"

    def test_validates_overrides(self) -> None:
        """Invalid overrides are rejected."""
        with pytest.raises(ValidationError):
            apply_overrides(HarnessSettings(), 0, None)


class TestRunSuite:
    """Tests for run_suite."""

    async def test_runs_cases_with_loaded_session_kind(
        self, suite: Suite, settings: HarnessSettings
    ) -> None:
        """Cases run against the manager built by the manifest factory."""
        manifest = SessionManifest(kind="static", session_factory=static_sessions)

        with patch(
            "suite_harness.cli.load_session_manifest", return_value=manifest
        ) as mock_load:
            summary = await run_suite(suite, settings)

        mock_load.assert_called_once_with("static")
        assert summary.total == 2
        assert summary.passed == 1
        assert summary.failed == 1
        assert exit_code(summary) == 1

    async def test_fails_every_case_when_engine_cannot_start(
        self, suite: Suite, settings: HarnessSettings
    ) -> None:
        """A provisioning failure for the whole run fails each case."""
        cm = AsyncMock()
        cm.__aenter__.side_effect = ProvisioningError("Executable doesn't exist")
        mock_manifest = Mock()
        mock_manifest.session_factory = Mock(return_value=cm)

        with patch(
            "suite_harness.cli.load_session_manifest", return_value=mock_manifest
        ):
            summary = await run_suite(suite, settings)

        assert summary.total == 2
        assert summary.failed == 2
        assert {outcome.error_type for outcome in summary.outcomes} == {
            "ProvisioningError"
        }
        assert summary.outcomes[0].error == "Executable doesn't exist"

    async def test_writes_html_report(
        self, suite: Suite, settings: HarnessSettings, tmp_path: Path
    ) -> None:
        """The HTML report is written when reporting is enabled."""
        report_dir = tmp_path / "TestResults"
        settings = settings.model_copy(
            update={"report": ReportConfig(enabled=True, directory=report_dir)}
        )
        manifest = SessionManifest(kind="static", session_factory=static_sessions)

        with patch("suite_harness.cli.load_session_manifest", return_value=manifest):
            await run_suite(suite, settings)

        reports = list(report_dir.glob("TestReport_*.html"))
        assert len(reports) == 1
        assert "Expected 200 but got 500" in reports[0].read_text(encoding="utf-8")
