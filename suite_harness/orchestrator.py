"""Test orchestrator for running test cases on a single session kind."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from suite_harness.cleanup import CleanupRegistry, CleanupResult
from suite_harness.errors import TestInconclusive, TestSkipped
from suite_harness.models.outcome import RunSummary, TestOutcome, TestStatus
from suite_harness.results import EntryLevel, ResultAggregator
from suite_harness.sessions.base import ExecutionContext, SessionManager
from suite_harness.suite import TestCase

log = logging.getLogger(__name__)

CLEANUP_REPORT_NAME = "Cleanup"


@dataclass(frozen=True, kw_only=True)
class CaseScope[T]:
    """What a test body gets to work with while it runs."""

    name: str
    context: ExecutionContext[T]
    registry: CleanupRegistry = field(repr=False)
    results: ResultAggregator = field(repr=False)

    @property
    def handle(self) -> T:
        return self.context.handle

    def track(self, kind: str, resource_id: str) -> None:
        """Register a created resource for cleanup, owned by this case."""
        self.registry.track(kind, resource_id, owner=self.name)

    def log(self, message: str, level: EntryLevel = "info") -> None:
        """Add a step entry to the report."""
        self.results.log(self.name, message, level)


@dataclass(frozen=True, kw_only=True)
class TestOrchestrator[T]:
    """Runs test cases, each inside its own execution context.

    Every case goes through the same wrapper: record start, acquire,
    run the body, capture a diagnostic on failure, release, record outcome.
    """

    __test__ = False

    sessions: SessionManager[T]
    results: ResultAggregator
    cleanup: CleanupRegistry
    max_workers: int = 1
    cleanup_mode: Literal["per-run", "per-test"] = "per-run"

    async def run(self, cases: Sequence[TestCase]) -> RunSummary:
        """Run all cases, drain tracked resources, and summarize.

        Args:
            cases: Test cases in submission order

        Returns:
            Summary with one outcome per case, in completion order

        Raises:
            ValueError: If two cases share a name

        """
        names = [case.name for case in cases]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate test case names: {', '.join(duplicates)}")

        if not cases:
            log.info("No test cases provided")
        else:
            log.info(
                "Running %d test case(s) with %d worker(s)...",
                len(cases),
                self.max_workers,
            )
            semaphore = asyncio.Semaphore(self.max_workers)
            tasks = [self._run_bounded(semaphore, case) for case in cases]

            results = await asyncio.gather(*tasks, return_exceptions=True)
            log.info("Test execution completed")
            self._process_results(cases, results)

        await self._drain()
        return self.results.summarize()

    def _process_results(
        self,
        cases: Sequence[TestCase],
        results: Sequence[TestOutcome | BaseException],
    ) -> None:
        for case, result in zip(cases, results, strict=True):
            if isinstance(result, BaseException):
                log.error(
                    "Test case %s was interrupted: %s",
                    case.name,
                    result,
                    exc_info=result,
                )

    async def _run_bounded(
        self, semaphore: asyncio.Semaphore, case: TestCase
    ) -> TestOutcome:
        async with semaphore:
            return await self._execute(case)

    async def _execute(self, case: TestCase) -> TestOutcome:
        """Run one case and record exactly one outcome for it."""
        self.results.record_start(case.name, case.category, case.description)

        status: TestStatus = "failed"
        error: str | None = "Test case did not complete"
        error_type: str | None = None
        artifact = None
        context: ExecutionContext[T] | None = None
        try:
            context = await self.sessions.acquire(case.name)
            scope = CaseScope(
                name=case.name,
                context=context,
                registry=self.cleanup,
                results=self.results,
            )
            await case.body(scope)
            status, error = "passed", None
        except TestSkipped as exc:
            status, error = "skipped", str(exc) or "No reason provided"
        except TestInconclusive as exc:
            status, error = "inconclusive", str(exc) or "No reason provided"
        except Exception as exc:
            status, error = "failed", str(exc) or repr(exc)
            error_type = type(exc).__name__
            log.error(
                "Test case %s failed: %s: %s",
                case.name,
                error_type,
                error,
                exc_info=not isinstance(exc, AssertionError),
            )
            if context is not None:
                artifact = await self.sessions.capture_diagnostic(
                    context, f"FAILED_{case.name}"
                )
        finally:
            try:
                await self.sessions.release(context)
                if self.cleanup_mode == "per-test":
                    await self._drain(owner=case.name)
            finally:
                outcome = self.results.record_outcome(
                    case.name,
                    status,
                    error=error,
                    artifact=artifact,
                    error_type=error_type,
                )

        return outcome

    async def _drain(self, owner: str | None = None) -> Sequence[CleanupResult]:
        cleanup_results = await self.cleanup.drain_all(owner=owner)
        for result in cleanup_results:
            resource = result.resource
            if result.status == "failed":
                self.results.log(
                    owner or CLEANUP_REPORT_NAME,
                    f"Cleanup of {resource.kind}/{resource.id} failed: "
                    f"{result.message}",
                    "warning",
                )
        return cleanup_results
