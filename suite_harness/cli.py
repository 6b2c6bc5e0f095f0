"""CLI entry point for running a test suite."""

import argparse
import asyncio
import importlib
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from suite_harness.cleanup import CleanupRegistry
from suite_harness.config import HarnessSettings, load_settings
from suite_harness.errors import ProvisioningError
from suite_harness.models.outcome import RunSummary
from suite_harness.orchestrator import TestOrchestrator
from suite_harness.report import HtmlReportSink
from suite_harness.results import ResultAggregator
from suite_harness.sessions.loading import load_session_manifest
from suite_harness.suite import Suite, TestCase

STATUS_SYMBOLS = {
    "passed": "✓",
    "failed": "✗",
    "skipped": "⚠",
    "inconclusive": "?",
}


def log_run_summary(log: logging.Logger, summary: RunSummary) -> None:
    """Log a formatted summary of test outcomes."""
    log.info("=" * 80)
    log.info("Test Results Summary:")
    log.info("=" * 80)

    for outcome in summary.outcomes:
        symbol = STATUS_SYMBOLS.get(outcome.status, "?")
        log.info(
            "%s %s: %s (%dms)",
            symbol,
            outcome.name,
            outcome.status,
            outcome.duration_ms,
        )
        if outcome.error:
            log.info("  Message: %s", outcome.error)
        if outcome.artifact:
            log.info("  Diagnostic: %s", outcome.artifact)

    log.info(
        "Total: %d, Passed: %d, Failed: %d, Skipped: %d, Inconclusive: %d (%dms)",
        summary.total,
        summary.passed,
        summary.failed,
        summary.skipped,
        summary.inconclusive,
        summary.total_duration_ms,
    )


def format_output(summary: RunSummary) -> dict[str, Any]:
    """Format a run summary for JSON output."""
    return {
        "total": summary.total,
        "passed": summary.passed,
        "failed": summary.failed,
        "skipped": summary.skipped,
        "inconclusive": summary.inconclusive,
        "duration_ms": summary.total_duration_ms,
        "results": [
            {
                "name": outcome.name,
                "status": outcome.status,
                "duration_ms": outcome.duration_ms,
                "category": outcome.category,
                "error": outcome.error,
                "error_type": outcome.error_type,
                "artifact": str(outcome.artifact) if outcome.artifact else None,
            }
            for outcome in summary.outcomes
        ],
    }


def exit_code(summary: RunSummary) -> int:
    """Return the process exit status for a run."""
    return 1 if summary.has_failures else 0


def load_suite(reference: str) -> Suite:
    """Import a suite from a "package.module:attribute" reference."""
    module_name, _, attribute = reference.partition(":")
    if not module_name or not attribute:
        raise ValueError(
            f"Suite reference must be 'module:attribute', got '{reference}'"
        )

    suite = getattr(importlib.import_module(module_name), attribute)
    if not isinstance(suite, Suite):
        raise TypeError(f"{reference} is not a Suite")
    return suite


async def run_suite(suite: Suite, settings: HarnessSettings) -> RunSummary:
    """Run every case of a suite with the session kind it declares."""
    log = logging.getLogger("suite_harness")

    log.info("Loading session kind: %s", suite.kind)
    manifest = load_session_manifest(suite.kind)

    sink = HtmlReportSink(config=settings.report) if settings.report.enabled else None
    results = ResultAggregator(sink=sink)

    try:
        async with manifest.session_factory(settings) as sessions:
            orchestrator = TestOrchestrator(
                sessions=sessions,
                results=results,
                cleanup=CleanupRegistry(deleters=dict(sessions.deleters())),
                max_workers=settings.run.max_workers,
                cleanup_mode=settings.run.cleanup_mode,
            )
            log.info("Running suite %s", suite.name)
            return await orchestrator.run(suite.cases)
    except ProvisioningError as exc:
        log.error("Failed to provision %s sessions: %s", suite.kind, exc)
        return fail_all(results, suite.cases, exc)


def fail_all(
    results: ResultAggregator, cases: Sequence[TestCase], error: Exception
) -> RunSummary:
    """Record every case as failed when no session could be provided at all."""
    for case in cases:
        results.record_start(case.name, case.category, case.description)
        results.record_outcome(
            case.name,
            "failed",
            duration_ms=0,
            error=str(error),
            error_type=type(error).__name__,
        )
    return results.summarize()


def apply_overrides(
    settings: HarnessSettings, workers: int | None, cleanup_mode: str | None
) -> HarnessSettings:
    """Apply command line overrides to the run settings."""
    update: dict[str, Any] = {}
    if workers is not None:
        update["max_workers"] = workers
    if cleanup_mode is not None:
        update["cleanup_mode"] = cleanup_mode
    if not update:
        return settings

    run = settings.run.model_validate({**settings.run.model_dump(), **update})
    return settings.model_copy(update={"run": run})


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Run a browser or API test suite")
    parser.add_argument(
        "--settings",
        type=Path,
        required=True,
        help="Path to the JSON settings file",
    )
    parser.add_argument(
        "--suite",
        required=True,
        help="Suite to run, as 'package.module:attribute'",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of test cases to run in parallel",
    )
    parser.add_argument(
        "--cleanup",
        choices=["per-run", "per-test"],
        default=None,
        help="When to delete resources created by tests",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    log = logging.getLogger("suite_harness")

    settings = apply_overrides(load_settings(args.settings), args.workers, args.cleanup)
    suite = load_suite(args.suite)

    summary = asyncio.run(run_suite(suite, settings))

    log_run_summary(log, summary)
    print(json.dumps(format_output(summary), indent=2))
    sys.exit(exit_code(summary))


if __name__ == "__main__":  # pragma: no cover
    main()
