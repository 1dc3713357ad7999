# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Corpus run orchestration: catalog, parallel invocations, aggregation."""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import as_completed
from dataclasses import dataclass
from pathlib import Path

from ..config import Config, ConfigError
from ..core.models import AggregateResult, InvocationMode, InvocationStatus, Package
from ..diagnostics.aggregate import PackageRun, aggregate
from ..discovery.packages import PackageCatalog
from ..parsers.cargo import count_allow_overrides
from ..parsers.stream import DiagnosticStreamParser, parse
from .context import RunContext
from .invoker import LinterCommand, LinterInvoker

StartHook = Callable[[list[Package]], None]
PackageHook = Callable[[Package], None]
DoneHook = Callable[[PackageRun], None]


@dataclass(slots=True)
class RunHooks:
    """Optional callbacks fired while a corpus run progresses.

    ``on_package_start`` and ``on_package_done`` run on worker threads.
    """

    on_start: StartHook | None = None
    on_package_start: PackageHook | None = None
    on_package_done: DoneHook | None = None


def _lint_package(
    context: RunContext,
    invoker: LinterInvoker,
    package: Package,
    *,
    target_lint: str | None,
    check_allows: bool,
    hooks: RunHooks,
) -> PackageRun:
    """Lint ``package``, optionally count overriding ``allow`` attributes, and record the run."""

    if hooks.on_package_start is not None:
        hooks.on_package_start(package)
    invocation = invoker.invoke(package, target_lint)
    parsed = parse(invocation)

    allow_count: int | None = None
    if check_allows and not invocation.status.broke_build:
        allow_check = invoker.invoke(package, target_lint, mode=InvocationMode.ALLOW_CHECK)
        if allow_check.status not in (InvocationStatus.CRASHED, InvocationStatus.TIMEOUT):
            records = DiagnosticStreamParser(package.name).iter_records(allow_check.stdout)
            allow_count = count_allow_overrides(records)

    run = PackageRun(package=package, invocation=invocation, parsed=parsed, allow_count=allow_count)
    context.record(run)
    if hooks.on_package_done is not None:
        hooks.on_package_done(run)
    return run


def run_corpus(
    root: Path,
    linter: LinterCommand,
    config: Config | None = None,
    *,
    hooks: RunHooks | None = None,
) -> AggregateResult:
    """Lint every package under ``root`` and aggregate the results.

    Aggregation starts only after every scheduled invocation has finished,
    timed out or been killed.

    Args:
        root: Corpus directory holding one crate per subdirectory.
        linter: Source of the linter command prefix.
        config: Run configuration; defaults apply when omitted.
        hooks: Progress callbacks.

    Returns:
        AggregateResult: Corpus-wide result in catalog order.

    Raises:
        CatalogError: If ``root`` is not a directory.
        ConfigError: If allow checking is requested without a target lint.
    """

    cfg = config or Config()
    callbacks = hooks or RunHooks()
    target_lint = cfg.run.target_lint
    if cfg.run.check_allows and target_lint is None:
        raise ConfigError("allow checking requires a target lint")

    # ``None`` defers to TTY detection.
    use_color = None if cfg.output.color else False
    catalog = PackageCatalog(root, use_emoji=cfg.output.emoji, use_color=use_color)
    packages = list(catalog.enumerate())
    if callbacks.on_start is not None:
        callbacks.on_start(packages)

    with RunContext(cfg.run.jobs) as context:
        invoker = LinterInvoker(
            linter=linter,
            corpus_root=catalog.root,
            table=context.table,
            timeout=cfg.run.timeout_s,
            extra_env=cfg.run.extra_env,
            touch_roots=cfg.run.touch_crate_roots,
            use_emoji=cfg.output.emoji,
            use_color=use_color,
        )
        futures = [
            context.submit(
                _lint_package,
                context,
                invoker,
                package,
                target_lint=target_lint,
                check_allows=cfg.run.check_allows,
                hooks=callbacks,
            )
            for package in packages
        ]
        for future in as_completed(futures):
            future.result()

    order = {package.name: index for index, package in enumerate(packages)}
    runs = sorted(context.results, key=lambda run: order[run.package.name])
    return aggregate(
        runs,
        target_lint,
        root=catalog.root,
        use_emoji=cfg.output.emoji,
        use_color=use_color,
    )


__all__ = ["RunHooks", "run_corpus"]
