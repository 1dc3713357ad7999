# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""End-to-end tests for corpus runs against the scripted linter."""

from __future__ import annotations

import os
import sys
import threading
import time
from pathlib import Path

import pytest

from cratelint.config import Config, ConfigError, OutputConfig, RunConfig
from cratelint.core.models import InvocationStatus, Package
from cratelint.core.runtime.process import run_isolated
from cratelint.diagnostics.aggregate import PackageRun
from cratelint.discovery import packages as packages_module
from cratelint.discovery.packages import CatalogError
from cratelint.orchestration.context import RunContext
from cratelint.orchestration.orchestrator import RunHooks, run_corpus


def _config(**run: object) -> Config:
    return Config(run=RunConfig(jobs=2, timeout_s=30, **run))


@pytest.fixture
def three_crates(make_package, cargo_record) -> None:
    make_package(
        "alpha",
        behaviour={
            "stdout": "\n".join(
                [
                    cargo_record("clippy::needless_clone", "redundant clone", line=10, column=5),
                    cargo_record("clippy::len_zero", "length comparison", line=2),
                ],
            )
            + "\n",
            "allow_stdout": "\n".join(
                [
                    cargo_record("E0453", "allow(clippy::needless_clone) incompatible", level="error", line=1),
                    cargo_record("E0453", "allow(clippy::needless_clone) incompatible", level="error", line=7),
                ],
            )
            + "\n",
            "allow_exit": 101,
        },
    )
    make_package("beta")
    make_package(
        "gamma",
        behaviour={
            "stdout": "\n".join(
                [
                    cargo_record("unused_variables", "unused variable: `y`", line=3),
                    cargo_record("E0425", "cannot find value `x`", level="error"),
                ],
            )
            + "\n",
            "stderr": "error: could not compile `gamma`\n",
            "exit": 101,
        },
    )


@pytest.mark.usefixtures("three_crates")
def test_run_corpus_collects_every_package(fake_linter, corpus: Path) -> None:
    (corpus / "notes").mkdir()

    result = run_corpus(corpus, fake_linter, _config())

    assert result.root == corpus.absolute()
    assert result.packages == ["alpha", "beta", "gamma"]
    statuses = {name: outcome.status for name, outcome in result.outcomes.items()}
    assert statuses == {
        "alpha": InvocationStatus.LINT_FINDINGS,
        "beta": InvocationStatus.SUCCESS,
        "gamma": InvocationStatus.COMPILE_ERROR,
    }
    assert sorted(result.diagnostics) == ["len_zero", "needless_clone", "unused_variables"]
    assert "could not compile" in result.outcomes["gamma"].tail
    assert all(outcome.allow_count is None for outcome in result.outcomes.values())


@pytest.mark.usefixtures("three_crates")
def test_run_corpus_filters_target_lint(fake_linter, corpus: Path) -> None:
    result = run_corpus(corpus, fake_linter, _config(target_lint="needless_clone"))

    assert list(result.diagnostics) == ["needless_clone"]
    (diag,) = result.diagnostics["needless_clone"]
    assert (diag.package, diag.location) == ("alpha", "src/lib.rs:10:5")
    assert result.outcomes["alpha"].filtered_out == 1
    assert result.outcomes["gamma"].status is InvocationStatus.COMPILE_ERROR
    assert result.outcomes["gamma"].filtered_out == 1
    assert result.outcomes["gamma"].evaluated


@pytest.mark.usefixtures("three_crates")
def test_run_corpus_counts_allow_overrides(fake_linter, corpus: Path) -> None:
    result = run_corpus(corpus, fake_linter, _config(target_lint="needless_clone", check_allows=True))

    assert result.outcomes["alpha"].allow_count == 2
    assert result.outcomes["beta"].allow_count == 0
    assert result.outcomes["gamma"].allow_count is None


def test_check_allows_requires_target_lint(fake_linter, corpus: Path) -> None:
    with pytest.raises(ConfigError, match="requires a target lint"):
        run_corpus(corpus, fake_linter, _config(check_allows=True))


def test_missing_root_is_a_catalog_error(fake_linter, tmp_path: Path) -> None:
    with pytest.raises(CatalogError):
        run_corpus(tmp_path / "missing", fake_linter, _config())


def test_empty_corpus(fake_linter, corpus: Path) -> None:
    result = run_corpus(corpus, fake_linter, _config())

    assert result.packages == []
    assert result.summary().attempted == 0


def test_timeouts_do_not_stop_other_packages(fake_linter, corpus: Path, make_package) -> None:
    make_package("slow", behaviour={"sleep": 60})
    make_package("quick")

    started = time.monotonic()
    result = run_corpus(corpus, fake_linter, Config(run=RunConfig(jobs=2, timeout_s=1.5)))

    assert time.monotonic() - started < 30
    assert result.outcomes["slow"].status is InvocationStatus.TIMEOUT
    assert result.outcomes["slow"].returncode is None
    assert result.outcomes["quick"].status is InvocationStatus.SUCCESS


@pytest.mark.usefixtures("three_crates")
def test_hooks_fire_for_every_package(fake_linter, corpus: Path) -> None:
    lock = threading.Lock()
    started: list[str] = []
    done: list[str] = []
    catalog: list[list[str]] = []

    def _on_start(packages: list[Package]) -> None:
        catalog.append([package.name for package in packages])

    def _on_package_start(package: Package) -> None:
        with lock:
            started.append(package.name)

    def _on_done(run: PackageRun) -> None:
        with lock:
            done.append(run.package.name)

    run_corpus(
        corpus,
        fake_linter,
        _config(),
        hooks=RunHooks(on_start=_on_start, on_package_start=_on_package_start, on_package_done=_on_done),
    )

    assert catalog == [["alpha", "beta", "gamma"]]
    assert sorted(started) == sorted(done) == ["alpha", "beta", "gamma"]


def test_run_context_requires_entry() -> None:
    context = RunContext(1)

    with pytest.raises(RuntimeError, match="must be entered"):
        context.submit(print)


def test_run_context_rejects_zero_jobs() -> None:
    with pytest.raises(ValueError):
        RunContext(0)


def test_run_context_kills_children_on_error(tmp_path: Path, alive) -> None:
    pid_file = tmp_path / "sleeper.pid"
    code = f"import os, time; open({str(pid_file)!r}, 'w').write(str(os.getpid())); time.sleep(120)"

    with pytest.raises(RuntimeError, match="interrupted"), RunContext(1, grace=0.5) as context:
        future = context.submit(
            run_isolated,
            [sys.executable, "-c", code],
            cwd=tmp_path,
            env=dict(os.environ),
            timeout=None,
            table=context.table,
        )
        deadline = time.monotonic() + 10
        while not pid_file.exists() and time.monotonic() < deadline:
            time.sleep(0.02)
        raise RuntimeError("interrupted")

    assert context.table.closed
    assert len(context.table) == 0
    assert future.done()
    assert not alive(int(pid_file.read_text()))


def test_output_flags_reach_catalog_warnings(fake_linter, corpus: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, object]] = []
    monkeypatch.setattr(packages_module, "warn", lambda message, **kwargs: calls.append(kwargs))
    (corpus / "notes").mkdir()
    config = Config(run=RunConfig(jobs=1, timeout_s=30), output=OutputConfig(emoji=False, color=False))

    result = run_corpus(corpus, fake_linter, config)

    assert result.packages == []
    assert calls == [{"use_emoji": False, "use_color": False}]
