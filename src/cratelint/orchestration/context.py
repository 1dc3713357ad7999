# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Run-scoped resources shared by the worker pool."""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from types import TracebackType
from typing import ParamSpec, TypeVar

from ..core.runtime.process import TERMINATE_GRACE_SECONDS, ProcessTable
from ..diagnostics.aggregate import PackageRun

LOGGER = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class RunContext:
    """Own the worker pool, the process table and the collected package runs.

    Leaving the context, whether normally, through an exception or through
    ``KeyboardInterrupt``, closes the process table and kills every child
    process group still tracked, then waits for the workers to return.

    Args:
        jobs: Maximum number of concurrent linter invocations.
        grace: Seconds a process group gets between ``SIGTERM`` and ``SIGKILL``
            when the run is torn down.
    """

    def __init__(self, jobs: int, *, grace: float = TERMINATE_GRACE_SECONDS) -> None:
        if jobs < 1:
            raise ValueError("jobs must be at least 1")
        self.jobs = jobs
        self.grace = grace
        self.table = ProcessTable()
        self._lock = Lock()
        self._results: list[PackageRun] = []
        self._executor: ThreadPoolExecutor | None = None

    def __enter__(self) -> RunContext:
        self._executor = ThreadPoolExecutor(max_workers=self.jobs, thread_name_prefix="cratelint")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.table.close()
        killed = self.table.terminate_all(grace=self.grace)
        if killed:
            LOGGER.debug("terminated %d process group(s) while leaving the run", killed)
        if self._executor is not None:
            self._executor.shutdown(wait=True, cancel_futures=exc_type is not None)
            self._executor = None

    def submit(self, fn: Callable[P, T], /, *args: P.args, **kwargs: P.kwargs) -> Future[T]:
        """Schedule ``fn`` on the worker pool.

        Raises:
            RuntimeError: If the context has not been entered.
        """

        if self._executor is None:
            raise RuntimeError("RunContext must be entered before submitting work")
        return self._executor.submit(fn, *args, **kwargs)

    def record(self, run: PackageRun) -> None:
        """Store a finished package run."""

        with self._lock:
            self._results.append(run)

    @property
    def results(self) -> list[PackageRun]:
        """Return a snapshot of the runs recorded so far, in completion order."""

        with self._lock:
            return list(self._results)


__all__ = ["RunContext"]
