# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Compare the findings of two corpus runs."""

from __future__ import annotations

from collections.abc import Iterable

from ..core.models import AggregateResult, Diagnostic, DiagnosticKey, ResultDiff


def _diff_order(diag: Diagnostic) -> tuple[str, str, tuple[str, int, int, str, str]]:
    return (diag.package, diag.rule, diag.sort_key())


def _index(diagnostics: Iterable[Diagnostic]) -> dict[DiagnosticKey, Diagnostic]:
    return {diag.key: diag for diag in diagnostics}


def diff_results(baseline: AggregateResult, current: AggregateResult) -> ResultDiff:
    """Return findings introduced and resolved between ``baseline`` and ``current``.

    Findings are matched on their identity tuple, so a diagnostic whose line
    moved counts as one resolved and one introduced finding.

    Args:
        baseline: Result of the earlier run.
        current: Result of the later run.

    Returns:
        ResultDiff: Both lists sorted by package, rule, location and message.
    """

    before = _index(baseline.iter_diagnostics())
    after = _index(current.iter_diagnostics())
    introduced = sorted((after[key] for key in after.keys() - before.keys()), key=_diff_order)
    resolved = sorted((before[key] for key in before.keys() - after.keys()), key=_diff_order)
    return ResultDiff(introduced=tuple(introduced), resolved=tuple(resolved))


__all__ = ["diff_results"]
