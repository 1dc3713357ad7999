# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Deterministic markdown reports for aggregate results and diffs.

Rendering is a pure function of its input: every collection is sorted before
it is written and run timings are left out, so two reports of the same
findings compare equal byte for byte.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from enum import Enum
from typing import Final

from rich.cells import cell_len

from ..core.models import AggregateResult, Diagnostic, InvocationStatus, PackageOutcome, ResultDiff

Cell = str | int

MISSING_CELL: Final[str] = "-"
STATUS_LABELS: Final[dict[InvocationStatus, str]] = {
    InvocationStatus.SUCCESS: "success",
    InvocationStatus.LINT_FINDINGS: "lint findings",
    InvocationStatus.COMPILE_ERROR: "compile error",
    InvocationStatus.TIMEOUT: "timeout",
    InvocationStatus.CRASHED: "crashed",
}


class Alignment(str, Enum):
    """Column alignment in a markdown table."""

    LEFT = "left"
    RIGHT = "right"


def _pad(text: str, width: int, alignment: Alignment) -> str:
    gap = " " * max(0, width - cell_len(text))
    return f"{gap}{text}" if alignment is Alignment.RIGHT else f"{text}{gap}"


def _column_alignment(rows: Sequence[Sequence[Cell]], index: int) -> Alignment:
    """Right-align columns that hold only numbers."""

    if rows and all(isinstance(row[index], int) for row in rows):
        return Alignment.RIGHT
    return Alignment.LEFT


def markdown_table(headers: Sequence[str], rows: Sequence[Sequence[Cell]]) -> list[str]:
    """Render a padded markdown table.

    Numeric columns are right-aligned, everything else is left-aligned::

         A   |   B
        :----|----:
         a   |   1
         bb  |  22

    Args:
        headers: Column titles.
        rows: Table body; every row must have one cell per header.

    Returns:
        list[str]: Table lines without trailing newlines.
    """

    alignments = [_column_alignment(rows, index) for index in range(len(headers))]
    widths = [
        max([cell_len(header), *(cell_len(str(row[index])) for row in rows)])
        for index, header in enumerate(headers)
    ]

    def _line(cells: Sequence[Cell]) -> str:
        return "|".join(
            f" {_pad(str(cell), width, alignment)} "
            for cell, width, alignment in zip(cells, widths, alignments, strict=True)
        )

    rule = "|".join(
        f"{'-' * (width + 1)}:" if alignment is Alignment.RIGHT else f":{'-' * (width + 1)}"
        for width, alignment in zip(widths, alignments, strict=True)
    )
    return [_line(headers), rule, *(_line(row) for row in rows)]


def _fence(text: str) -> str:
    """Return a backtick fence longer than any backtick run inside ``text``."""

    fence = "```"
    while fence in text:
        fence += "`"
    return fence


def _format_diagnostic(diag: Diagnostic, *, with_package: bool = False) -> str:
    prefix = f"`{diag.package}` " if with_package else ""
    return f"- {prefix}`{diag.location}` [{diag.rule}] {diag.severity.value}: {diag.message}"


def _summary_section(result: AggregateResult) -> list[str]:
    summary = result.summary()
    lint = f"`{result.target_lint}`" if result.target_lint else "all lints"
    rows: list[Sequence[Cell]] = [
        ("Attempted", summary.attempted),
        ("Succeeded", summary.succeeded),
        ("Had findings", summary.had_findings),
        ("Failed to build", summary.failed_to_build),
        ("Crashed", summary.crashed),
        ("Timed out", summary.timed_out),
        ("Diagnostics", summary.diagnostics),
    ]
    return ["# Summary", "", f"Lint: {lint}", "", *markdown_table(("Outcome", "Count"), rows)]


def _status_cell(outcome: PackageOutcome) -> str:
    label = STATUS_LABELS[outcome.status]
    return label if outcome.evaluated else f"{label} (not evaluated)"


def _packages_section(result: AggregateResult, names: Sequence[str]) -> list[str]:
    lines = ["## Packages", ""]
    if not names:
        return [*lines, "No packages were found."]
    rows: list[Sequence[Cell]] = []
    for name in names:
        outcome = result.outcomes[name]
        rows.append(
            (
                name,
                _status_cell(outcome),
                MISSING_CELL if outcome.returncode is None else str(outcome.returncode),
                outcome.diagnostics,
                outcome.filtered_out,
            ),
        )
    return [*lines, *markdown_table(("Crate", "Status", "Exit", "Diagnostics", "Filtered"), rows)]


def _warnings_section(result: AggregateResult) -> list[str]:
    lines = ["## Warnings", "", f"Total: {result.summary().diagnostics}"]
    for rule in sorted(result.diagnostics):
        counts: dict[str, int] = {}
        for diag in result.diagnostics[rule]:
            counts[diag.package] = counts.get(diag.package, 0) + 1
        rows = [(name, counts[name]) for name in sorted(counts)]
        lines.extend(["", f"### `{rule}`", "", *markdown_table(("Crate", "Count"), rows)])
    return lines


def _diagnostics_section(result: AggregateResult, names: Sequence[str]) -> list[str]:
    lines = ["## Diagnostics"]
    for name in names:
        diagnostics = result.diagnostics_for(name)
        if not diagnostics:
            continue
        lines.extend(["", f"### {name}", ""])
        for diag in diagnostics:
            lines.append(_format_diagnostic(diag))
            if diag.suggestion is not None:
                lines.append(f"  - suggestion: `{diag.suggestion}`")
    return lines


def _failures_section(result: AggregateResult, names: Sequence[str]) -> list[str]:
    failed = [name for name in names if result.outcomes[name].status.broke_build]
    lines = ["## Build failures", "", f"Total: {len(failed)}"]
    for name in failed:
        outcome = result.outcomes[name]
        exit_label = MISSING_CELL if outcome.returncode is None else str(outcome.returncode)
        lines.extend(["", f"### {name} - {STATUS_LABELS[outcome.status]} (exit {exit_label})"])
        if outcome.tail:
            fence = _fence(outcome.tail)
            lines.extend(["", f"{fence}text", outcome.tail, fence])
    return lines


def _unparsed_section(result: AggregateResult, names: Sequence[str]) -> list[str]:
    flagged = [name for name in names if result.outcomes[name].parse_issues]
    lines = ["## Unparsed output", "", f"Total: {len(flagged)}"]
    if flagged:
        lines.append("")
    for name in flagged:
        outcome = result.outcomes[name]
        extent = "nothing decoded" if outcome.unparsed_output else "partially decoded"
        lines.append(f"- {name}: {outcome.parse_issues} skipped fragment(s), {extent}")
    return lines


def _allows_section(result: AggregateResult, names: Sequence[str]) -> list[str]:
    counts = {
        name: result.outcomes[name].allow_count
        for name in names
        if result.outcomes[name].allow_count is not None
    }
    total = sum(count for count in counts.values() if count is not None)
    lines = ["## Allows", "", f"Total: {total}"]
    rows = [(name, count) for name, count in counts.items() if count]
    if rows:
        lines.extend(["", *markdown_table(("Crate", "Count"), rows)])
    return lines


def _join(sections: Iterable[list[str]]) -> str:
    return "\n\n".join("\n".join(section) for section in sections) + "\n"


def render(result: AggregateResult) -> str:
    """Render ``result`` as a markdown report.

    Args:
        result: Aggregate result of a run.

    Returns:
        str: Report text; identical input always yields identical output.
    """

    names = sorted(result.outcomes)
    sections = [
        _summary_section(result),
        _packages_section(result, names),
        _warnings_section(result),
        _diagnostics_section(result, names),
        _failures_section(result, names),
        _unparsed_section(result, names),
    ]
    if any(outcome.allow_count is not None for outcome in result.outcomes.values()):
        sections.append(_allows_section(result, names))
    return _join(sections)


def render_diff(diff: ResultDiff) -> str:
    """Render a cross-run diff as markdown.

    Args:
        diff: Introduced and resolved findings.

    Returns:
        str: Report text listing both sides in sorted order.
    """

    sections = [
        ["# Diff", "", f"Introduced: {len(diff.introduced)}", f"Resolved: {len(diff.resolved)}"],
    ]
    for title, entries in (("Introduced", diff.introduced), ("Resolved", diff.resolved)):
        if entries:
            sections.append([f"## {title}", "", *(_format_diagnostic(diag, with_package=True) for diag in entries)])
    return _join(sections)


__all__ = ["Alignment", "markdown_table", "render", "render_diff"]
