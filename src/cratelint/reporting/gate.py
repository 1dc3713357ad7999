# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Turn an aggregate result into a pass/fail signal."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..config import PolicyConfig
from ..core.models import AggregateResult, InvocationStatus


class Signal(str, Enum):
    """Overall verdict of a run."""

    OK = "ok"
    FAIL = "fail"

    @property
    def exit_code(self) -> int:
        """Return the process exit status for this verdict."""

        return 0 if self is Signal.OK else 1


@dataclass(frozen=True, slots=True)
class GateDecision:
    """Verdict plus the reasons that produced it."""

    signal: Signal
    reasons: tuple[str, ...] = ()
    unknown_expected: tuple[str, ...] = ()


def evaluate_gate(result: AggregateResult, policy: PolicyConfig) -> GateDecision:
    """Apply ``policy`` to ``result``.

    The run fails when a package crashed or timed out, when a package failed
    to compile and ``policy.compile_errors_fail`` is set, or when a target
    lint is set and a package expected to be clean reports it.

    Args:
        result: Aggregate result of a run.
        policy: Gate policy.

    Returns:
        GateDecision: Signal, sorted reasons and expected-clean names that
        were not part of the run.
    """

    reasons: list[str] = []
    for name in sorted(result.outcomes):
        status = result.outcomes[name].status
        if status in (InvocationStatus.CRASHED, InvocationStatus.TIMEOUT):
            reasons.append(f"{name}: {status.value}")
        elif status is InvocationStatus.COMPILE_ERROR and policy.compile_errors_fail:
            reasons.append(f"{name}: {status.value}")

    if result.target_lint is not None:
        flagged = {diag.package for diag in result.diagnostics.get(result.target_lint, [])}
        for name in sorted(flagged & policy.expected_clean):
            reasons.append(f"{name}: expected clean but reports {result.target_lint}")

    unknown = tuple(sorted(policy.expected_clean - set(result.packages)))
    return GateDecision(
        signal=Signal.FAIL if reasons else Signal.OK,
        reasons=tuple(reasons),
        unknown_expected=unknown,
    )


def exit_signal(result: AggregateResult, policy: PolicyConfig) -> Signal:
    """Return ``OK`` or ``FAIL`` for ``result`` under ``policy``."""

    return evaluate_gate(result, policy).signal


__all__ = ["GateDecision", "Signal", "evaluate_gate", "exit_signal"]
