"""Collection of per-test outcomes into a run summary."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Literal, Protocol

from suite_harness.models.outcome import (
    DEFAULT_CATEGORY,
    RunSummary,
    TestOutcome,
    TestStatus,
)

log = logging.getLogger(__name__)

type EntryLevel = Literal["info", "pass", "fail", "warning", "skip"]

STATUS_LEVELS: dict[TestStatus, EntryLevel] = {
    "passed": "pass",
    "failed": "fail",
    "skipped": "skip",
    "inconclusive": "skip",
}


class ReportSink(Protocol):
    """Write-only destination for report entries, grouped by test name."""

    def start_test(self, name: str, category: str, description: str) -> None:
        """Open a named test group."""

    def log(self, name: str, level: EntryLevel, message: str) -> None:
        """Append an entry to a test group."""

    def flush(self, summary: RunSummary) -> Path | None:
        """Persist the report and return its location."""


@dataclass(frozen=True, kw_only=True)
class _PendingCase:
    category: str
    started: float


def _now() -> datetime:
    return datetime.now().astimezone()


@dataclass(kw_only=True)
class ResultAggregator:
    """Records exactly one outcome per test case and builds the run summary.

    Reporting to the sink is best-effort: sink failures are logged and never
    reach the caller.
    """

    sink: ReportSink | None = None
    clock: Callable[[], float] = time.monotonic
    wall_clock: Callable[[], datetime] = _now
    report_path: Path | None = field(default=None, init=False)
    _pending: dict[str, _PendingCase] = field(default_factory=dict, init=False)
    _recorded: dict[str, TestOutcome] = field(default_factory=dict, init=False)
    _outcomes: list[TestOutcome] = field(default_factory=list, init=False)
    _started_at: datetime | None = field(default=None, init=False)
    _summary: RunSummary | None = field(default=None, init=False)

    @property
    def outcomes(self) -> tuple[TestOutcome, ...]:
        return tuple(self._outcomes)

    def record_start(
        self, name: str, category: str = DEFAULT_CATEGORY, description: str = ""
    ) -> None:
        """Mark the start of a test case."""
        if self._started_at is None:
            self._started_at = self.wall_clock()

        self._pending[name] = _PendingCase(category=category, started=self.clock())
        started = self.wall_clock()
        self._notify("start_test", name, category, description)
        self.log(name, f"Test started at: {started:%H:%M:%S}")

    def record_outcome(
        self,
        name: str,
        status: TestStatus,
        duration_ms: int | None = None,
        error: str | None = None,
        artifact: Path | None = None,
        error_type: str | None = None,
    ) -> TestOutcome:
        """Record the terminal state of a test case.

        The duration defaults to the time elapsed since record_start, or zero
        when the case never reached it. A second outcome for the same case is
        ignored and the first one returned.
        """
        pending = self._pending.pop(name, None)
        if pending is None and name in self._recorded:
            log.warning("Outcome for %s already recorded; ignoring %s", name, status)
            return self._recorded[name]

        if duration_ms is None:
            duration_ms = (
                0 if pending is None else round((self.clock() - pending.started) * 1000)
            )

        outcome = TestOutcome(
            name=name,
            status=status,
            duration_ms=max(0, duration_ms),
            category=pending.category if pending else DEFAULT_CATEGORY,
            error=error,
            error_type=error_type,
            artifact=artifact,
        )

        if self._summary is not None:
            log.warning("Outcome for %s recorded after the run summary was built", name)
            return outcome

        self._recorded[name] = outcome
        self._outcomes.append(outcome)

        log.info(
            "Test completed: name=%s status=%s duration=%dms",
            name,
            status,
            outcome.duration_ms,
        )
        self._report_outcome(outcome)
        return outcome

    def log(self, name: str, message: str, level: EntryLevel = "info") -> None:
        """Add a step entry for a test case to the report."""
        self._notify("log", name, level, message)

    def summarize(self) -> RunSummary:
        """Build the run summary and flush the report.

        Raises:
            RuntimeError: If the summary was already built

        """
        if self._summary is not None:
            raise RuntimeError("Run summary has already been built")

        if self._pending:
            log.warning(
                "%d test case(s) started without an outcome: %s",
                len(self._pending),
                ", ".join(self._pending),
            )

        summary = RunSummary.from_outcomes(
            self._outcomes,
            started_at=self._started_at,
            finished_at=self.wall_clock(),
        )
        self._summary = summary

        if self.sink is not None:
            try:
                self.report_path = self.sink.flush(summary)
            except Exception as exc:
                log.error("Failed to write report: %s", exc, exc_info=exc)
            else:
                if self.report_path is not None:
                    log.info("Report location: %s", self.report_path)

        return summary

    def _report_outcome(self, outcome: TestOutcome) -> None:
        label = outcome.status.upper()
        message = f"Test {label} in {outcome.duration_ms}ms"
        if outcome.error:
            message = f"{message}: {outcome.error}"
        self.log(outcome.name, message, STATUS_LEVELS[outcome.status])
        if outcome.artifact is not None:
            self.log(outcome.name, f"Diagnostic: {outcome.artifact}", "info")

    def _notify(self, method: str, *args: str) -> None:
        if self.sink is None:
            return
        try:
            getattr(self.sink, method)(*args)
        except Exception as exc:
            log.warning("Report sink %s failed: %s", method, exc, exc_info=exc)
