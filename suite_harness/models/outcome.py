"""Models for test case outcomes and run summaries."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Literal, get_args

type TestStatus = Literal["passed", "failed", "skipped", "inconclusive"]

STATUSES: tuple[TestStatus, ...] = get_args(TestStatus.__value__)

DEFAULT_CATEGORY = "Uncategorized"


@dataclass(frozen=True, kw_only=True)
class TestOutcome:
    """Outcome of a single test case execution."""

    __test__ = False

    name: str
    status: TestStatus
    duration_ms: int
    category: str = DEFAULT_CATEGORY
    error: str | None = None
    error_type: str | None = None
    artifact: Path | None = None


@dataclass(frozen=True, kw_only=True)
class RunSummary:
    """Aggregate of every outcome recorded during one run.

    Outcomes keep the order in which cases completed.
    """

    total: int
    counts: Mapping[TestStatus, int]
    total_duration_ms: int
    outcomes: Sequence[TestOutcome] = field(default_factory=tuple)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @classmethod
    def from_outcomes(
        cls,
        outcomes: Sequence[TestOutcome],
        started_at: datetime | None = None,
        finished_at: datetime | None = None,
    ) -> "RunSummary":
        """Build a summary from the complete, ordered outcome list."""
        counts: dict[TestStatus, int] = dict.fromkeys(STATUSES, 0)
        for outcome in outcomes:
            counts[outcome.status] += 1

        return cls(
            total=len(outcomes),
            counts=counts,
            total_duration_ms=sum(outcome.duration_ms for outcome in outcomes),
            outcomes=tuple(outcomes),
            started_at=started_at,
            finished_at=finished_at,
        )

    @property
    def passed(self) -> int:
        return self.counts["passed"]

    @property
    def failed(self) -> int:
        return self.counts["failed"]

    @property
    def skipped(self) -> int:
        return self.counts["skipped"]

    @property
    def inconclusive(self) -> int:
        return self.counts["inconclusive"]

    @property
    def has_failures(self) -> bool:
        """Whether the run should be reported as failed."""
        return self.failed > 0
