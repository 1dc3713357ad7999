# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Core data models shared across the cratelint package."""

from __future__ import annotations

import re
from collections.abc import Iterator
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Final, NamedTuple, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cratelint.core.severity import Severity

JsonScalar: TypeAlias = str | int | float | bool | None
JsonValue: TypeAlias = JsonScalar | list["JsonValue"] | dict[str, "JsonValue"]

_COMPILER_ERROR_CODE: Final[re.Pattern[str]] = re.compile(r"E\d{4}")
UNKNOWN_LOCATION: Final[str] = "<unknown>"


class BuildState(str, Enum):
    """Build readiness of a package, settled by the invoker."""

    UNKNOWN = "unknown"
    BUILDABLE = "buildable"
    BROKEN_BUILD = "broken_build"


class Package(BaseModel):
    """One buildable crate discovered under the corpus root."""

    model_config = ConfigDict(validate_assignment=True)

    name: str
    path: Path
    state: BuildState = BuildState.UNKNOWN

    @field_validator("path")
    @classmethod
    def _absolute_path(cls, value: Path) -> Path:
        """Store package paths as absolute paths.

        Args:
            value: Path supplied by the catalog.

        Returns:
            Path: Absolute form of ``value``.
        """

        return value if value.is_absolute() else value.absolute()


class InvocationMode(str, Enum):
    """Kind of linter run performed for a package."""

    LINT = "lint"
    ALLOW_CHECK = "allow_check"


class InvocationStatus(str, Enum):
    """Classification of a finished linter invocation."""

    SUCCESS = "success"
    LINT_FINDINGS = "lint_findings"
    COMPILE_ERROR = "compile_error"
    TIMEOUT = "timeout"
    CRASHED = "crashed"

    @property
    def broke_build(self) -> bool:
        """Return ``True`` when the package could not be built."""

        return self in (InvocationStatus.COMPILE_ERROR, InvocationStatus.TIMEOUT, InvocationStatus.CRASHED)


class Invocation(BaseModel):
    """Record of one linter subprocess run against exactly one package.

    ``returncode`` is ``None`` when the process never exited on its own, which
    happens for timeouts and for commands that could not be spawned.
    """

    model_config = ConfigDict(frozen=True)

    package: str
    command: tuple[str, ...]
    mode: InvocationMode = InvocationMode.LINT
    started_at: datetime
    finished_at: datetime
    returncode: int | None
    status: InvocationStatus
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def duration(self) -> float:
        """Return the wall-clock duration of the invocation in seconds."""

        return max(0.0, (self.finished_at - self.started_at).total_seconds())

    def tail(self, *, max_lines: int = 20, max_chars: int = 2000) -> str:
        """Return the last lines of captured output for triage.

        stderr is preferred because cargo reports build failures there; stdout
        is used when stderr is empty.

        Args:
            max_lines: Maximum number of trailing lines to keep.
            max_chars: Maximum number of characters to keep.

        Returns:
            str: Bounded tail of the captured output.
        """

        payload = self.stderr if self.stderr.strip() else self.stdout
        lines = payload.decode("utf-8", errors="replace").rstrip().splitlines()
        text = "\n".join(lines[-max_lines:])
        if len(text) > max_chars:
            text = text[-max_chars:]
        return text


class DiagnosticKey(NamedTuple):
    """Identity of a diagnostic used for deduplication and cross-run diffs."""

    package: str
    rule: str
    file: str | None
    line: int | None
    column: int | None
    message: str


class Diagnostic(BaseModel):
    """One lint finding reported for a package.

    ``rendered`` carries the compiler's human-readable rendering and is not
    part of the identity.
    """

    model_config = ConfigDict(frozen=True)

    package: str
    rule: str
    severity: Severity
    message: str
    file: str | None = None
    line: int | None = None
    column: int | None = None
    suggestion: str | None = None
    rendered: str | None = None

    @property
    def key(self) -> DiagnosticKey:
        """Return the deduplication identity of this diagnostic."""

        return DiagnosticKey(self.package, self.rule, self.file, self.line, self.column, self.message)

    @property
    def location(self) -> str:
        """Return ``file:line:column`` using only the parts that are known."""

        if self.file is None:
            return UNKNOWN_LOCATION
        parts = [self.file]
        if self.line is not None:
            parts.append(str(self.line))
            if self.column is not None:
                parts.append(str(self.column))
        return ":".join(parts)

    def sort_key(self) -> tuple[str, int, int, str, str]:
        """Return a key ordering diagnostics by location, then message."""

        return (self.file or "", self.line or 0, self.column or 0, self.message, self.rule)

    def is_compiler_error(self) -> bool:
        """Return ``True`` for hard compiler errors such as ``E0425``."""

        return self.severity is Severity.ERROR and _COMPILER_ERROR_CODE.fullmatch(self.rule) is not None


class ParseIssue(BaseModel):
    """A malformed fragment skipped while parsing a diagnostic stream."""

    model_config = ConfigDict(frozen=True)

    line: int
    reason: str
    excerpt: str = ""


class ParseResult(BaseModel):
    """Diagnostics and resynchronisation events parsed from one invocation."""

    model_config = ConfigDict(frozen=True)

    diagnostics: tuple[Diagnostic, ...] = ()
    issues: tuple[ParseIssue, ...] = ()
    records: int = 0
    unparsed: bool = False

    @property
    def partially_unparsed(self) -> bool:
        """Return ``True`` when at least one fragment had to be skipped."""

        return bool(self.issues)

    def lint_diagnostics(self) -> tuple[Diagnostic, ...]:
        """Return diagnostics excluding hard compiler errors."""

        return tuple(diag for diag in self.diagnostics if not diag.is_compiler_error())


class PackageOutcome(BaseModel):
    """Per-package build outcome stored in an aggregate result."""

    model_config = ConfigDict(validate_assignment=True)

    name: str
    status: InvocationStatus
    returncode: int | None = None
    diagnostics: int = 0
    filtered_out: int = 0
    unparsed_output: bool = False
    parse_issues: int = 0
    duration_s: float = 0.0
    allow_count: int | None = None
    tail: str = ""

    @property
    def evaluated(self) -> bool:
        """Return ``False`` when every finding was filtered away by the target lint."""

        return not (self.status is InvocationStatus.SUCCESS and self.filtered_out > 0)


class RunSummary(BaseModel):
    """Counts describing one corpus run."""

    model_config = ConfigDict(frozen=True)

    attempted: int = 0
    succeeded: int = 0
    had_findings: int = 0
    failed_to_build: int = 0
    crashed: int = 0
    timed_out: int = 0
    diagnostics: int = 0


class AggregateResult(BaseModel):
    """Corpus-wide view of one run: package outcomes and diagnostics per rule.

    ``packages`` keeps catalog order and ``diagnostics`` keeps insertion order
    per rule. Neither order takes part in equality of the findings; reports
    re-sort everything before rendering.
    """

    model_config = ConfigDict(validate_assignment=True)

    root: Path
    target_lint: str | None = None
    packages: list[str] = Field(default_factory=list)
    outcomes: dict[str, PackageOutcome] = Field(default_factory=dict)
    diagnostics: dict[str, list[Diagnostic]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_invariants(self) -> AggregateResult:
        """Reject results whose diagnostics break the catalog or dedupe invariants.

        Returns:
            AggregateResult: The validated instance.

        Raises:
            ValueError: If a diagnostic names an unknown package or repeats a key.
        """

        known = set(self.packages)
        seen: set[DiagnosticKey] = set()
        for rule, entries in self.diagnostics.items():
            for diag in entries:
                if diag.rule != rule:
                    raise ValueError(f"diagnostic for {diag.rule!r} filed under {rule!r}")
                if diag.package not in known:
                    raise ValueError(f"diagnostic references unknown package {diag.package!r}")
                if diag.key in seen:
                    raise ValueError(f"duplicate diagnostic {diag.key!r}")
                seen.add(diag.key)
        return self

    def iter_diagnostics(self) -> Iterator[Diagnostic]:
        """Yield every diagnostic across all rules."""

        for entries in self.diagnostics.values():
            yield from entries

    def diagnostics_for(self, package: str) -> list[Diagnostic]:
        """Return the diagnostics of ``package`` sorted by location then message."""

        found = [diag for diag in self.iter_diagnostics() if diag.package == package]
        return sorted(found, key=Diagnostic.sort_key)

    def keys(self) -> set[DiagnosticKey]:
        """Return the identity tuples of every diagnostic."""

        return {diag.key for diag in self.iter_diagnostics()}

    def summary(self) -> RunSummary:
        """Return the per-status counts for this run."""

        statuses = [outcome.status for outcome in self.outcomes.values()]
        return RunSummary(
            attempted=len(statuses),
            succeeded=statuses.count(InvocationStatus.SUCCESS),
            had_findings=statuses.count(InvocationStatus.LINT_FINDINGS),
            failed_to_build=statuses.count(InvocationStatus.COMPILE_ERROR),
            crashed=statuses.count(InvocationStatus.CRASHED),
            timed_out=statuses.count(InvocationStatus.TIMEOUT),
            diagnostics=sum(len(entries) for entries in self.diagnostics.values()),
        )


class ResultDiff(BaseModel):
    """Findings introduced or resolved between two aggregate results."""

    model_config = ConfigDict(frozen=True)

    introduced: tuple[Diagnostic, ...] = ()
    resolved: tuple[Diagnostic, ...] = ()

    @property
    def has_changes(self) -> bool:
        """Return ``True`` when the two runs disagree on any finding."""

        return bool(self.introduced or self.resolved)


__all__ = [
    "AggregateResult",
    "BuildState",
    "Diagnostic",
    "DiagnosticKey",
    "Invocation",
    "InvocationMode",
    "InvocationStatus",
    "JsonScalar",
    "JsonValue",
    "Package",
    "PackageOutcome",
    "ParseIssue",
    "ParseResult",
    "ResultDiff",
    "RunSummary",
    "UNKNOWN_LOCATION",
]
