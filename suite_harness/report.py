"""HTML report of a run.

Entries are collected per test while the run is in progress; the report is
rendered and written once, when the run summary is flushed.
"""

import logging
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from html import escape
from pathlib import Path

from suite_harness.config import ReportConfig
from suite_harness.models.outcome import DEFAULT_CATEGORY, RunSummary, TestOutcome
from suite_harness.results import EntryLevel

log = logging.getLogger(__name__)

STATUS_ICONS = {
    "passed": "✓",
    "failed": "✗",
    "skipped": "⚠",
    "inconclusive": "?",
}

_STYLE_SHEET = """
body {
    margin: 0;
    padding: 0 12pt;
    font-family: vera, arial, sans-serif;
}
h1, h2 {
    border-bottom: 1px solid #808080;
}
table {
    border-collapse: collapse;
    margin: 6pt 0 12pt 0;
}
th, td {
    padding: 4pt 8pt;
    text-align: left;
    border: 1px solid #ddd;
}
thead tr {
    background-color: #4CAF50;
    color: white;
}
.passed, .pass { color: green; }
.failed, .fail { color: red; }
.skipped, .skip, .warning { color: orange; }
.inconclusive, .info { color: gray; }
"""


@dataclass(frozen=True, kw_only=True)
class _Entry:
    timestamp: datetime
    level: EntryLevel
    message: str


@dataclass(kw_only=True)
class _TestSection:
    name: str
    category: str = DEFAULT_CATEGORY
    description: str = ""
    entries: list[_Entry] = field(default_factory=list)


def _now() -> datetime:
    return datetime.now().astimezone()


@dataclass(kw_only=True)
class HtmlReportSink:
    """Report sink writing a single HTML file per run."""

    config: ReportConfig
    clock: Callable[[], datetime] = _now
    created_at: datetime = field(init=False)
    _sections: dict[str, _TestSection] = field(default_factory=dict, init=False)

    def __post_init__(self) -> None:
        self.created_at = self.clock()

    @property
    def path(self) -> Path:
        name = f"TestReport_{self.created_at:%Y%m%d_%H%M%S}.html"
        return self.config.directory / name

    def start_test(self, name: str, category: str, description: str) -> None:
        self._sections[name] = _TestSection(
            name=name, category=category, description=description
        )

    def log(self, name: str, level: EntryLevel, message: str) -> None:
        section = self._sections.setdefault(name, _TestSection(name=name))
        section.entries.append(
            _Entry(timestamp=self.clock(), level=level, message=message)
        )

    def flush(self, summary: RunSummary) -> Path:
        """Write the report without replacing one from an earlier run."""
        path = self._free_path()
        log.debug("Writing %d test section(s) to %s", len(self._sections), path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render(summary), encoding="utf-8")
        return path

    def _free_path(self) -> Path:
        path = self.path
        index = 1
        while path.exists():
            index += 1
            path = path.with_name(f"{self.path.stem}_{index}{self.path.suffix}")
        return path

    def render(self, summary: RunSummary) -> str:
        """Render the complete report document."""
        title = escape(self.config.document_title)
        return "\n".join(
            [
                "<!DOCTYPE html>",
                "<html>",
                f"<head><meta charset='utf-8'><title>{title}</title>",
                f"<style>{_STYLE_SHEET}</style></head>",
                "<body>",
                f"<h1>{escape(self.config.report_name)}</h1>",
                *self._render_system_info(),
                *self._render_totals(summary),
                *self._render_outcome_table(summary.outcomes),
                *self._render_sections(),
                "</body>",
                "</html>",
            ]
        )

    def _render_system_info(self) -> Iterator[str]:
        info = {
            **self.config.system_info,
            "Execution Date": f"{self.created_at:%Y-%m-%d}",
        }
        yield "<h2>System Information</h2>"
        yield "<table>"
        for key, value in info.items():
            yield f"<tr><th>{escape(key)}</th><td>{escape(value)}</td></tr>"
        yield "</table>"

    def _render_totals(self, summary: RunSummary) -> Iterator[str]:
        rows = [("Total Tests", str(summary.total))]
        rows += [
            (status.capitalize(), str(count))
            for status, count in summary.counts.items()
        ]
        rows.append(("Total Test Execution Time", f"{summary.total_duration_ms}ms"))
        if summary.started_at is not None:
            rows.append(
                ("Suite Start Time", f"{summary.started_at:%Y-%m-%d %H:%M:%S}")
            )
        if summary.finished_at is not None:
            rows.append(("Suite End Time", f"{summary.finished_at:%Y-%m-%d %H:%M:%S}"))

        yield "<h2>Test Suite Summary</h2>"
        yield "<table>"
        for key, value in rows:
            yield f"<tr><th>{escape(key)}</th><td>{escape(value)}</td></tr>"
        yield "</table>"

    def _render_outcome_table(self, outcomes: Sequence[TestOutcome]) -> Iterator[str]:
        yield "<table>"
        yield (
            "<thead><tr><th>Test Name</th><th>Status</th>"
            "<th>Duration</th><th>Category</th></tr></thead>"
        )
        yield "<tbody>"
        for outcome in outcomes:
            icon = STATUS_ICONS[outcome.status]
            yield (
                f"<tr><td>{escape(outcome.name)}</td>"
                f"<td class='{outcome.status}'>{icon} {outcome.status}</td>"
                f"<td>{outcome.duration_ms}ms</td>"
                f"<td>{escape(outcome.category)}</td></tr>"
            )
        yield "</tbody>"
        yield "</table>"

    def _render_sections(self) -> Iterator[str]:
        for section in self._sections.values():
            yield f"<h2>{escape(section.name)}</h2>"
            if section.description:
                yield f"<p>{escape(section.description)}</p>"
            yield f"<p>Category: {escape(section.category)}</p>"
            yield "<table>"
            for entry in section.entries:
                yield (
                    f"<tr><td>{entry.timestamp:%H:%M:%S}</td>"
                    f"<td class='{entry.level}'>{entry.level}</td>"
                    f"<td>{escape(entry.message)}</td></tr>"
                )
            yield "</table>"
