# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Progress rendering helpers for corpus runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from ..core.models import InvocationStatus, Package
from ..diagnostics.aggregate import PackageRun
from ..orchestration.orchestrator import RunHooks
from ..runtime.console import get_console_manager


@dataclass(slots=True)
class RunProgressController:
    """Drive a Rich progress bar from orchestrator hooks.

    The bar is only shown when ``enabled`` is true and the console is a
    terminal; hooks fire on worker threads, so updates go through a lock.
    """

    enabled: bool
    use_color: bool = True
    use_emoji: bool = True
    progress_factory: type[Progress] = Progress
    _progress: Progress | None = field(init=False, default=None)
    _task_id: TaskID | None = field(init=False, default=None)
    _lock: Lock = field(init=False, default_factory=Lock)
    _failures: int = field(init=False, default=0)

    def hooks(self) -> RunHooks:
        """Return orchestrator hooks bound to this controller."""

        if not self.enabled:
            return RunHooks()
        return RunHooks(on_start=self._start, on_package_done=self._done)

    def _start(self, packages: list[Package]) -> None:
        console: Console = get_console_manager().get(color=self.use_color, emoji=self.use_emoji)
        if not console.is_terminal:
            return
        progress = self.progress_factory(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            TimeElapsedColumn(),
            TextColumn("{task.fields[last]}", justify="right"),
            console=console,
            transient=True,
        )
        with self._lock:
            self._task_id = progress.add_task("Linting", total=len(packages), last="")
            self._progress = progress
        progress.start()

    def _done(self, run: PackageRun) -> None:
        with self._lock:
            if self._progress is None or self._task_id is None:
                return
            status = run.invocation.status
            if status.broke_build:
                self._failures += 1
            label = run.package.name if status is InvocationStatus.SUCCESS else f"{run.package.name} ({status.value})"
            self._progress.update(self._task_id, advance=1, last=label)

    def stop(self) -> int:
        """Stop the progress bar and return the number of failed packages seen."""

        with self._lock:
            if self._progress is not None:
                self._progress.stop()
                self._progress = None
            return self._failures


__all__ = ["RunProgressController"]
