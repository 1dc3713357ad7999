# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for the pass/fail gate."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from cratelint.config import PolicyConfig
from cratelint.core.models import AggregateResult, Invocation, InvocationStatus, Package
from cratelint.diagnostics.aggregate import PackageRun, aggregate
from cratelint.orchestration.invoker import classify
from cratelint.parsers.stream import parse_bytes
from cratelint.reporting.gate import Signal, evaluate_gate, exit_signal

ROOT = Path("/corpus")


def _run(name: str, status: InvocationStatus, returncode: int | None, stdout: str = "") -> PackageRun:
    now = datetime(2025, 1, 1, tzinfo=UTC)
    data = stdout.encode()
    return PackageRun(
        package=Package(name=name, path=ROOT / name),
        invocation=Invocation(
            package=name,
            command=("cargo", "clippy"),
            started_at=now,
            finished_at=now,
            returncode=returncode,
            status=status,
            stdout=data,
        ),
        parsed=parse_bytes(data, name),
    )


@pytest.fixture
def corpus_runs(cargo_record) -> list[PackageRun]:
    """Packages A (clean), B (one needless_clone) and C (does not compile)."""

    finding = cargo_record("clippy::needless_clone", "redundant clone", line=10, column=5) + "\n"
    return [
        _run("A", InvocationStatus.SUCCESS, 0),
        _run("B", InvocationStatus.LINT_FINDINGS, 0, finding),
        _run("C", InvocationStatus.COMPILE_ERROR, 101),
    ]


def _statuses(result: AggregateResult) -> dict[str, InvocationStatus]:
    return {name: outcome.status for name, outcome in result.outcomes.items()}


@pytest.mark.parametrize("target", [None, "needless_clone"])
def test_compile_errors_follow_policy(corpus_runs: list[PackageRun], target: str | None) -> None:
    result = aggregate(corpus_runs, target)

    assert _statuses(result) == {
        "A": InvocationStatus.SUCCESS,
        "B": InvocationStatus.LINT_FINDINGS,
        "C": InvocationStatus.COMPILE_ERROR,
    }
    assert [(d.package, d.location) for d in result.iter_diagnostics()] == [("B", "src/lib.rs:10:5")]

    lenient = evaluate_gate(result, PolicyConfig())
    strict = evaluate_gate(result, PolicyConfig(compile_errors_fail=True))

    assert lenient.signal is Signal.OK
    assert lenient.reasons == ()
    assert strict.signal is Signal.FAIL
    assert strict.reasons == ("C: compile_error",)


def test_failed_build_with_warnings_fails_strict_gate(cargo_record) -> None:
    stdout = (
        cargo_record("unused_variables", "unused variable: `y`", line=3)
        + "\n"
        + cargo_record("E0425", "cannot find value `x`", level="error")
        + "\n"
    )
    status = classify(returncode=101, timed_out=False, stderr=b"", parsed=parse_bytes(stdout.encode(), "C"))
    runs = [_run("C", status, 101, stdout)]

    for target in (None, "needless_clone"):
        result = aggregate(runs, target)

        assert result.outcomes["C"].status is InvocationStatus.COMPILE_ERROR
        assert evaluate_gate(result, PolicyConfig(compile_errors_fail=True)).signal is Signal.FAIL


def test_expected_clean_package_reporting_lint_fails(corpus_runs: list[PackageRun]) -> None:
    result = aggregate(corpus_runs, "needless_clone")

    decision = evaluate_gate(result, PolicyConfig(expected_clean=frozenset({"A", "B"})))

    assert decision.signal is Signal.FAIL
    assert decision.reasons == ("B: expected clean but reports needless_clone",)
    assert exit_signal(result, PolicyConfig(expected_clean=frozenset({"A"}))) is Signal.OK


def test_expected_clean_is_ignored_without_target_lint(corpus_runs: list[PackageRun]) -> None:
    result = aggregate(corpus_runs)

    assert exit_signal(result, PolicyConfig(expected_clean=frozenset({"B"}))) is Signal.OK


def test_unknown_expected_clean_names_are_reported(corpus_runs: list[PackageRun]) -> None:
    decision = evaluate_gate(aggregate(corpus_runs, "needless_clone"), PolicyConfig(expected_clean={"Z", "A"}))

    assert decision.signal is Signal.OK
    assert decision.unknown_expected == ("Z",)


def test_crashes_and_timeouts_always_fail() -> None:
    result = aggregate(
        [
            _run("slow", InvocationStatus.TIMEOUT, None),
            _run("ice", InvocationStatus.CRASHED, 101),
            _run("fine", InvocationStatus.SUCCESS, 0),
        ],
    )

    decision = evaluate_gate(result, PolicyConfig())

    assert decision.signal is Signal.FAIL
    assert decision.reasons == ("ice: crashed", "slow: timeout")
    assert decision.signal.exit_code == 1
    assert Signal.OK.exit_code == 0
