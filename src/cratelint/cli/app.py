# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""CLI application entry point wiring the ``run`` and ``diff`` commands."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any

import typer

from ..config import (
    DEFAULT_CONFIG_NAME,
    AggregationPolicyError,
    Config,
    ConfigError,
    load_config,
    load_expected_clean_set,
)
from ..core.models import AggregateResult
from ..diagnostics.diff import diff_results
from ..discovery.packages import CatalogError
from ..orchestration.orchestrator import run_corpus
from ..reporting.emitters import ReportLoadError, load_json_report, write_json_report
from ..reporting.gate import Signal, evaluate_gate
from ..reporting.markdown import render, render_diff
from ..workspace import WorkspaceError, prepare_workspace
from ._run_progress import RunProgressController
from .shared import EXIT_FATAL, CLIError, CLILogger, build_cli_logger

app = typer.Typer(
    name="cratelint",
    help="Lint a corpus of Rust packages with a linter checkout and report the findings.",
    no_args_is_help=True,
    add_completion=False,
)


@dataclass(frozen=True, slots=True)
class RunCLIOptions:
    """Options collected from the ``run`` command line."""

    workspace: Path
    crates_root: Path
    lint: str | None = None
    jobs: int | None = None
    timeout: float | None = None
    expected_clean: Path | None = None
    fail_on_compile_error: bool = False
    check_allows: bool = False
    json_out: Path | None = None
    report_out: Path | None = None
    config_path: Path | None = None
    skip_build: bool = False
    emoji: bool = True
    color: bool = True
    progress: bool = True

    def overrides(self) -> dict[str, dict[str, Any]]:
        """Return config values set explicitly on the command line.

        Flags only override the file when they are switched on, so a file
        setting is never reset by an absent flag.
        """

        run: dict[str, Any] = {}
        policy: dict[str, Any] = {}
        output: dict[str, Any] = {}
        if self.lint is not None:
            run["target_lint"] = self.lint
        if self.jobs is not None:
            run["jobs"] = self.jobs
        if self.timeout is not None:
            run["timeout_s"] = self.timeout
        if self.check_allows:
            run["check_allows"] = True
        if self.skip_build:
            run["skip_build"] = True
        if self.fail_on_compile_error:
            policy["compile_errors_fail"] = True
        if self.json_out is not None:
            output["json_out"] = self.json_out
        if self.report_out is not None:
            output["report_out"] = self.report_out
        if not self.emoji:
            output["emoji"] = False
        if not self.color:
            output["color"] = False
        if not self.progress:
            output["progress"] = False
        return {"run": run, "policy": policy, "output": output}


def _resolve_config_path(explicit: Path | None) -> Path | None:
    if explicit is not None:
        return explicit
    candidate = Path.cwd() / DEFAULT_CONFIG_NAME
    return candidate if candidate.is_file() else None


def _build_config(options: RunCLIOptions) -> Config:
    """Load the configuration file, apply CLI overrides and merge the expected-clean set.

    Raises:
        CLIError: If the configuration or the expected-clean set is invalid.
    """

    try:
        config = load_config(_resolve_config_path(options.config_path), overrides=options.overrides())
    except ConfigError as exc:
        raise CLIError(str(exc)) from exc
    if options.expected_clean is not None:
        try:
            extra = load_expected_clean_set(options.expected_clean)
        except AggregationPolicyError as exc:
            raise CLIError(str(exc)) from exc
        config.policy.expected_clean = config.policy.expected_clean | extra
    return config


def _emit_outputs(result: AggregateResult, config: Config, logger: CLILogger) -> None:
    report = render(result)
    report_out = config.output.report_out
    if report_out is not None:
        report_out.parent.mkdir(parents=True, exist_ok=True)
        report_out.write_text(report, encoding="utf-8")
        logger.ok(f"Report written to {report_out}")
    else:
        logger.echo(report)
    if config.output.json_out is not None:
        write_json_report(result, config.output.json_out)
        logger.ok(f"JSON result written to {config.output.json_out}")


def execute_run(options: RunCLIOptions, logger: CLILogger) -> Signal:
    """Run the full pipeline for ``options`` and return the gate signal.

    Args:
        options: Parsed command-line options.
        logger: CLI logger for user-facing messages.

    Returns:
        Signal: ``OK`` or ``FAIL``.

    Raises:
        CLIError: For configuration, workspace or catalog errors.
    """

    config = _build_config(options)
    try:
        workspace = prepare_workspace(options.workspace, build=not config.run.skip_build)
        if config.run.target_lint is not None:
            config.run.target_lint = workspace.resolve_lint(config.run.target_lint)
    except WorkspaceError as exc:
        raise CLIError(str(exc)) from exc

    lint_label = config.run.target_lint or "all lints"
    logger.info(f"Linting {options.crates_root} for {lint_label} with {config.run.jobs} job(s)")
    progress = RunProgressController(
        enabled=config.output.progress,
        use_color=config.output.color,
        use_emoji=config.output.emoji,
    )
    try:
        result = run_corpus(options.crates_root, workspace, config, hooks=progress.hooks())
    except (CatalogError, ConfigError) as exc:
        raise CLIError(str(exc)) from exc
    finally:
        progress.stop()

    _emit_outputs(result, config, logger)

    decision = evaluate_gate(result, config.policy)
    for name in decision.unknown_expected:
        logger.warn(f"{name} is listed as expected clean but was not linted")
    for reason in decision.reasons:
        logger.fail(reason)
    summary = result.summary()
    if decision.signal is Signal.OK:
        logger.ok(f"{summary.attempted} package(s) linted, {summary.diagnostics} diagnostic(s); gate passed")
    else:
        logger.fail(f"Gate failed with {len(decision.reasons)} problem(s)")
    return decision.signal


@app.command("run")
def run_command(
    workspace: Annotated[Path, typer.Argument(help="Linter source checkout containing rust-toolchain.")],
    crates_root: Annotated[Path, typer.Argument(help="Directory holding one package per subdirectory.")],
    lint: Annotated[str | None, typer.Option("--lint", help="Only report this lint, e.g. needless_clone.")] = None,
    jobs: Annotated[int | None, typer.Option("--jobs", "-j", min=1, help="Concurrent package builds.")] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", min=0.001, help="Per-package wall-clock limit in seconds."),
    ] = None,
    expected_clean: Annotated[
        Path | None,
        typer.Option("--expected-clean", help="File listing packages that must not report the lint."),
    ] = None,
    fail_on_compile_error: Annotated[
        bool,
        typer.Option("--fail-on-compile-error", help="Fail the run when a package does not compile."),
    ] = False,
    check_allows: Annotated[
        bool,
        typer.Option("--check-allows", help="Count allow attributes overriding the lint."),
    ] = False,
    json_out: Annotated[Path | None, typer.Option("--json-out", help="Write the result as JSON.")] = None,
    report_out: Annotated[Path | None, typer.Option("--report-out", help="Write the markdown report here.")] = None,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", help=f"Configuration file (defaults to ./{DEFAULT_CONFIG_NAME})."),
    ] = None,
    skip_build: Annotated[
        bool,
        typer.Option("--skip-build", help="Assume the linter release build is up to date."),
    ] = False,
    no_emoji: Annotated[bool, typer.Option("--no-emoji", help="Disable emoji output.")] = False,
    no_color: Annotated[bool, typer.Option("--no-color", help="Disable ANSI colour output.")] = False,
    no_progress: Annotated[bool, typer.Option("--no-progress", help="Disable the progress bar.")] = False,
) -> None:
    """Lint every package under CRATES_ROOT and print a markdown report."""

    logger = build_cli_logger(emoji=not no_emoji, no_color=no_color)
    options = RunCLIOptions(
        workspace=workspace,
        crates_root=crates_root,
        lint=lint,
        jobs=jobs,
        timeout=timeout,
        expected_clean=expected_clean,
        fail_on_compile_error=fail_on_compile_error,
        check_allows=check_allows,
        json_out=json_out,
        report_out=report_out,
        config_path=config_path,
        skip_build=skip_build,
        emoji=not no_emoji,
        color=not no_color,
        progress=not no_progress,
    )
    try:
        signal = execute_run(options, logger)
    except CLIError as exc:
        logger.fail(str(exc))
        raise typer.Exit(code=exc.exit_code) from exc
    raise typer.Exit(code=signal.exit_code)


@app.command("diff")
def diff_command(
    baseline: Annotated[Path, typer.Argument(help="JSON result of the earlier run.")],
    current: Annotated[Path, typer.Argument(help="JSON result of the later run.")],
    fail_on_introduced: Annotated[
        bool,
        typer.Option("--fail-on-introduced", help="Exit with status 1 when new findings appear."),
    ] = False,
    no_emoji: Annotated[bool, typer.Option("--no-emoji", help="Disable emoji output.")] = False,
    no_color: Annotated[bool, typer.Option("--no-color", help="Disable ANSI colour output.")] = False,
) -> None:
    """Show findings introduced and resolved between two stored results."""

    logger = build_cli_logger(emoji=not no_emoji, no_color=no_color)
    try:
        before = load_json_report(baseline)
        after = load_json_report(current)
    except ReportLoadError as exc:
        logger.fail(str(exc))
        raise typer.Exit(code=EXIT_FATAL) from exc

    if before.target_lint != after.target_lint:
        logger.warn(f"Comparing results for different lints: {before.target_lint!r} vs {after.target_lint!r}")
    diff = diff_results(before, after)
    logger.echo(render_diff(diff))
    raise typer.Exit(code=1 if fail_on_introduced and diff.introduced else 0)


__all__ = ["RunCLIOptions", "app", "execute_run"]
