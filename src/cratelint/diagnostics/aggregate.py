# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Merge per-package runs into one corpus-wide result."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ..core.logging import warn
from ..core.models import (
    AggregateResult,
    Diagnostic,
    DiagnosticKey,
    Invocation,
    InvocationStatus,
    Package,
    PackageOutcome,
    ParseResult,
)


@dataclass(frozen=True, slots=True)
class PackageRun:
    """Everything produced for one package during a run."""

    package: Package
    invocation: Invocation
    parsed: ParseResult
    allow_count: int | None = None


def _settle_status(
    status: InvocationStatus,
    returncode: int | None,
    kept: Sequence[Diagnostic],
) -> InvocationStatus:
    """Return the outcome status once the target-lint filter has been applied.

    Build failures are final. A run that exited 0 with all of its findings
    filtered away counts as a clean run for the rule under test; a nonzero
    exit left with nothing to report is a failed build.
    """

    if status.broke_build:
        return status
    if kept:
        return InvocationStatus.LINT_FINDINGS
    return InvocationStatus.SUCCESS if returncode == 0 else InvocationStatus.COMPILE_ERROR


def _default_root(runs: Sequence[PackageRun]) -> Path:
    if not runs:
        return Path.cwd()
    return runs[0].package.path.parent


def aggregate(
    runs: Sequence[PackageRun],
    target_lint: str | None = None,
    *,
    root: Path | None = None,
    use_emoji: bool = True,
    use_color: bool | None = None,
) -> AggregateResult:
    """Combine package runs into an :class:`AggregateResult`.

    Diagnostics are deduplicated on their identity tuple. When
    ``target_lint`` is given, only diagnostics whose rule matches it exactly
    (case-sensitive) are kept; the rest are counted as ``filtered_out`` on the
    package outcome. Hard compiler errors are never reported as findings.

    Args:
        runs: Package runs in catalog order.
        target_lint: Rule under test, without the tool prefix.
        root: Corpus root; defaults to the parent of the first package.
        use_emoji: Emoji flag forwarded to console warnings.
        use_color: Colour flag forwarded to console warnings.

    Returns:
        AggregateResult: Corpus-wide outcomes and diagnostics.

    Raises:
        ValueError: If two runs share a package name.
    """

    packages: list[str] = []
    outcomes: dict[str, PackageOutcome] = {}
    by_rule: dict[str, list[Diagnostic]] = {}
    seen: set[DiagnosticKey] = set()

    for run in runs:
        name = run.package.name
        if name in outcomes:
            raise ValueError(f"package {name!r} was run more than once")
        kept: list[Diagnostic] = []
        filtered_out = 0
        for diag in run.parsed.lint_diagnostics():
            if diag.package != name:
                warn(
                    f"{name} - discarding diagnostic attributed to {diag.package!r}: {diag.message}",
                    use_emoji=use_emoji,
                    use_color=use_color,
                )
                continue
            if diag.key in seen:
                continue
            seen.add(diag.key)
            if target_lint is not None and diag.rule != target_lint:
                filtered_out += 1
                continue
            kept.append(diag)

        status = _settle_status(run.invocation.status, run.invocation.returncode, kept)
        needs_tail = status.broke_build or run.parsed.partially_unparsed
        packages.append(name)
        outcomes[name] = PackageOutcome(
            name=name,
            status=status,
            returncode=run.invocation.returncode,
            diagnostics=len(kept),
            filtered_out=filtered_out,
            unparsed_output=run.parsed.unparsed,
            parse_issues=len(run.parsed.issues),
            duration_s=run.invocation.duration,
            allow_count=run.allow_count,
            tail=run.invocation.tail() if needs_tail else "",
        )
        for diag in kept:
            by_rule.setdefault(diag.rule, []).append(diag)

    return AggregateResult(
        root=root if root is not None else _default_root(runs),
        target_lint=target_lint,
        packages=packages,
        outcomes=outcomes,
        diagnostics=by_rule,
    )


__all__ = ["PackageRun", "aggregate"]
