# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Run the linter against one package and classify the result."""

from __future__ import annotations

import os
import shlex
import tomllib
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from textwrap import shorten
from typing import Final, Protocol, runtime_checkable

from ..config import DEFAULT_TIMEOUT_SECONDS
from ..core.logging import warn
from ..core.models import (
    BuildState,
    Invocation,
    InvocationMode,
    InvocationStatus,
    Package,
    ParseResult,
)
from ..core.runtime.process import ProcessTable, run_isolated
from ..discovery.crate_roots import touch_crate_roots
from ..discovery.packages import TARGET_DIR_NAME
from ..parsers.stream import parse_bytes
from ..workspace import CLIPPY_PREFIX, LinterBin

ENV_OVERRIDES: Final[Mapping[str, str]] = {"CARGO_TERM_COLOR": "never"}
ICE_MARKERS: Final[tuple[str, ...]] = (
    "error: internal compiler error",
    "the compiler unexpectedly panicked",
)
BUILD_FAILURE_MARKER: Final[str] = "could not compile"


@runtime_checkable
class LinterCommand(Protocol):
    """Source of the argv prefix that launches a linter binary."""

    def command(self, binary: LinterBin) -> list[str]:
        """Return the argv prefix for ``binary``, ending with ``--``.

        Args:
            binary: Linter binary to launch.

        Returns:
            list[str]: Command prefix; callers append the binary's arguments.
        """
        ...


def lint_flags(target_lint: str | None, mode: InvocationMode) -> list[str]:
    """Return the rustc lint level flags for one invocation.

    Args:
        target_lint: Rule under test, without the tool prefix.
        mode: Whether findings or overriding ``allow`` attributes are wanted.

    Returns:
        list[str]: Flags appended after ``--cap-lints warn``.

    Raises:
        ValueError: If ``mode`` is an allow check without a target lint.
    """

    if mode is InvocationMode.ALLOW_CHECK:
        if target_lint is None:
            raise ValueError("allow checking requires a target lint")
        return ["--allow", f"{CLIPPY_PREFIX}all", "--forbid", f"{CLIPPY_PREFIX}{target_lint}"]
    if target_lint is None:
        return ["--warn", f"{CLIPPY_PREFIX}all"]
    return ["--allow", f"{CLIPPY_PREFIX}all", "--warn", f"{CLIPPY_PREFIX}{target_lint}"]


def has_internal_compiler_error(stderr: bytes) -> bool:
    """Return ``True`` when ``stderr`` reports a compiler panic."""

    text = stderr.decode("utf-8", errors="replace")
    return any(marker in text for marker in ICE_MARKERS)


def build_failed(stderr: bytes, parsed: ParseResult) -> bool:
    """Return ``True`` when the output shows the package itself failed to compile."""

    if any(diag.is_compiler_error() for diag in parsed.diagnostics):
        return True
    return BUILD_FAILURE_MARKER in stderr.decode("utf-8", errors="replace")


def classify(
    *,
    returncode: int | None,
    timed_out: bool,
    stderr: bytes,
    parsed: ParseResult,
) -> InvocationStatus:
    """Return the status of a finished invocation.

    Lints are capped at ``warn``, so they never fail a build. A nonzero exit
    with a hard compiler error (``E0425`` and friends) or cargo's ``could not
    compile`` line is a compile error whatever warnings came with it.

    Args:
        returncode: Exit status, ``None`` when the process never exited itself.
        timed_out: Whether the wall-clock limit expired.
        stderr: Captured standard error.
        parsed: Diagnostics parsed from standard output.

    Returns:
        InvocationStatus: Classification of the run.
    """

    if timed_out:
        return InvocationStatus.TIMEOUT
    if returncode is None or returncode < 0 or has_internal_compiler_error(stderr):
        return InvocationStatus.CRASHED
    if returncode != 0 and build_failed(stderr, parsed):
        return InvocationStatus.COMPILE_ERROR
    if parsed.lint_diagnostics():
        return InvocationStatus.LINT_FINDINGS
    if returncode == 0:
        return InvocationStatus.SUCCESS
    return InvocationStatus.COMPILE_ERROR


@dataclass(slots=True)
class LinterInvoker:
    """Launch the linter for single packages under a shared process table.

    Each package gets its own cargo target directory below
    ``<corpus_root>/_target`` so concurrent builds never wait on one lock.
    """

    linter: LinterCommand
    corpus_root: Path
    table: ProcessTable
    timeout: float | None = DEFAULT_TIMEOUT_SECONDS
    extra_env: Mapping[str, str] = field(default_factory=dict)
    touch_roots: bool = True
    use_emoji: bool = True
    use_color: bool | None = None

    def target_dir(self, package: Package) -> Path:
        """Return the cargo target directory used for ``package``."""

        return self.corpus_root.absolute() / TARGET_DIR_NAME / package.name

    def build_command(
        self,
        package: Package,
        target_lint: str | None = None,
        *,
        mode: InvocationMode = InvocationMode.LINT,
    ) -> list[str]:
        """Return the full argv used to lint ``package``."""

        return [
            *self.linter.command(LinterBin.CARGO_CLIPPY),
            "--",
            "--quiet",
            "--message-format=json",
            "--target-dir",
            str(self.target_dir(package)),
            "--",
            "--cap-lints",
            "warn",
            *lint_flags(target_lint, mode),
        ]

    def compose_environment(self) -> dict[str, str]:
        """Return the child environment: the parent's plus fixed and configured overrides."""

        env = dict(os.environ)
        env.update(ENV_OVERRIDES)
        env.update({str(key): str(value) for key, value in self.extra_env.items()})
        return env

    def invoke(
        self,
        package: Package,
        target_lint: str | None = None,
        *,
        mode: InvocationMode = InvocationMode.LINT,
    ) -> Invocation:
        """Run the linter against ``package`` and return the classified invocation.

        Failures to build, crash or finish in time are reported through the
        invocation status, never raised.

        Args:
            package: Package to lint; its ``state`` is updated after a lint run.
            target_lint: Rule under test, without the tool prefix.
            mode: Lint run or allow-attribute check.

        Returns:
            Invocation: Captured output and status.

        Raises:
            ProcessTableClosedError: If the run is shutting down.
        """

        command = self.build_command(package, target_lint, mode=mode)
        if self.touch_roots:
            self._touch(package)

        started_at = datetime.now(UTC)
        try:
            capture = run_isolated(
                command,
                cwd=package.path,
                env=self.compose_environment(),
                timeout=self.timeout,
                table=self.table,
            )
        except (OSError, ValueError) as exc:
            invocation = Invocation(
                package=package.name,
                command=tuple(command),
                mode=mode,
                started_at=started_at,
                finished_at=datetime.now(UTC),
                returncode=None,
                status=InvocationStatus.CRASHED,
                stderr=f"failed to start linter: {exc}".encode(),
            )
        else:
            parsed = parse_bytes(capture.stdout, package.name)
            invocation = Invocation(
                package=package.name,
                command=capture.args,
                mode=mode,
                started_at=capture.started_at,
                finished_at=capture.finished_at,
                returncode=capture.returncode,
                status=classify(
                    returncode=capture.returncode,
                    timed_out=capture.timed_out,
                    stderr=capture.stderr,
                    parsed=parsed,
                ),
                stdout=capture.stdout,
                stderr=capture.stderr,
            )

        if mode is InvocationMode.LINT:
            package.state = BuildState.BROKEN_BUILD if invocation.status.broke_build else BuildState.BUILDABLE
            if invocation.status.broke_build:
                self._log_failure(invocation, package)
        elif invocation.status in (InvocationStatus.CRASHED, InvocationStatus.TIMEOUT):
            # Forbidden lints make allow checks exit nonzero, so only crashes matter here.
            self._log_failure(invocation, package)
        return invocation

    def _touch(self, package: Package) -> None:
        try:
            touch_crate_roots(package.path)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            warn(
                f"{package.name} - could not touch crate roots: {exc}",
                use_emoji=self.use_emoji,
                use_color=self.use_color,
            )

    def _log_failure(self, invocation: Invocation, package: Package) -> None:
        """Emit a structured warning describing a failed invocation."""

        if invocation.status is InvocationStatus.TIMEOUT:
            headline = f"{package.name} - timed out after {self.timeout:g}s"
        elif invocation.status is InvocationStatus.CRASHED:
            headline = f"{package.name} - linter crashed (exit {invocation.returncode})"
        else:
            headline = f"{package.name} - build failed (exit {invocation.returncode})"

        details = [f"command: {shlex.join(invocation.command)}", f"cwd: {package.path}"]
        stderr_tail = _last_non_empty_line(invocation.stderr.decode("utf-8", errors="replace").splitlines())
        if stderr_tail:
            details.append(f"stderr: {stderr_tail}")
        warn(headline + "\n  " + "\n  ".join(details), use_emoji=self.use_emoji, use_color=self.use_color)


def _last_non_empty_line(lines: Sequence[str]) -> str | None:
    """Return the last non-empty line from ``lines`` truncated for readability."""

    for raw_line in reversed(lines):
        hint = raw_line.strip()
        if hint:
            return shorten(hint, width=160, placeholder="…")
    return None


__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "ENV_OVERRIDES",
    "LinterCommand",
    "LinterInvoker",
    "build_failed",
    "classify",
    "has_internal_compiler_error",
    "lint_flags",
]
