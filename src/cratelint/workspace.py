# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Linter workspace preparation and lint name resolution."""

from __future__ import annotations

import re
import tomllib
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from pathlib import Path
from typing import Final

from .core.runtime.process import CommandOptions, SubprocessExecutionError, run_command

TOOLCHAIN_FILES: Final[tuple[str, ...]] = ("rust-toolchain", "rust-toolchain.toml")
CLIPPY_PREFIX: Final[str] = "clippy::"
PLUGIN_LINTS_HEADER: Final[str] = "Lint checks provided by plugins"
PLUGIN_GROUPS_HEADER: Final[str] = "Lint groups provided by plugins"
_LINT_NAME_PATTERN: Final[re.Pattern[str]] = re.compile(r"[A-Za-z0-9_-]+")


class WorkspaceError(RuntimeError):
    """Raised when the linter workspace cannot be used."""


class LinterBin(str, Enum):
    """Binaries built from the linter workspace."""

    CARGO_CLIPPY = "cargo-clippy"
    CLIPPY_DRIVER = "clippy-driver"


def read_toolchain_channel(workspace: Path) -> str:
    """Return the toolchain channel pinned by ``workspace``.

    Args:
        workspace: Linter source checkout.

    Returns:
        str: Channel such as ``nightly-2021-03-25``.

    Raises:
        WorkspaceError: If no toolchain file exists or it lacks a channel.
    """

    for name in TOOLCHAIN_FILES:
        candidate = workspace / name
        if not candidate.is_file():
            continue
        try:
            with candidate.open("rb") as handle:
                payload = tomllib.load(handle)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise WorkspaceError(f"Failed to read toolchain file '{candidate}': {exc}") from exc
        toolchain = payload.get("toolchain")
        channel = toolchain.get("channel") if isinstance(toolchain, dict) else None
        if not isinstance(channel, str) or not channel.strip():
            raise WorkspaceError(f"Toolchain file '{candidate}' does not declare [toolchain] channel")
        return channel.strip()
    raise WorkspaceError(f"'{workspace}' is not a linter workspace directory")


@dataclass(frozen=True)
class LinterWorkspace:
    """A linter source checkout whose binaries are run through ``cargo run``.

    Not slotted: the lint list is cached in the instance dictionary.
    """

    path: Path
    channel: str

    @property
    def manifest_path(self) -> Path:
        """Return the workspace ``Cargo.toml``."""

        return self.path / "Cargo.toml"

    @property
    def toolchain_arg(self) -> str:
        """Return the rustup toolchain selector, e.g. ``+nightly-2021-03-25``."""

        return f"+{self.channel}"

    def command(self, binary: LinterBin) -> list[str]:
        """Return the argv prefix that runs ``binary`` from the workspace.

        Args:
            binary: Linter binary to run.

        Returns:
            list[str]: Command ending with ``--`` so callers can append the
            binary's own arguments.
        """

        return [
            "cargo",
            self.toolchain_arg,
            "--quiet",
            "run",
            f"--manifest-path={self.manifest_path}",
            "--release",
            "--bin",
            binary.value,
            "--",
        ]

    def build(self) -> None:
        """Compile the linter in release mode.

        Raises:
            WorkspaceError: If cargo is missing or the build fails.
        """

        args = ["cargo", self.toolchain_arg, "build", f"--manifest-path={self.manifest_path}", "--release"]
        try:
            run_command(args, options=CommandOptions(capture_output=True, discard_stdin=True))
        except FileNotFoundError as exc:
            raise WorkspaceError(str(exc)) from exc
        except SubprocessExecutionError as exc:
            raise WorkspaceError(f"Failed to build the linter\nstderr: {exc.stderr or ''}") from exc

    def available_lints(self) -> frozenset[str]:
        """Return the lint names the built driver knows, in ``clippy::name`` form.

        Raises:
            WorkspaceError: If the driver cannot list its lints.
        """

        return self._available_lints

    @cached_property
    def _available_lints(self) -> frozenset[str]:
        args = [*self.command(LinterBin.CLIPPY_DRIVER), "-W", "help"]
        try:
            completed = run_command(args, options=CommandOptions(capture_output=True, discard_stdin=True))
        except (FileNotFoundError, SubprocessExecutionError) as exc:
            raise WorkspaceError(f"Command to list lint names failed: {exc}") from exc
        return parse_lint_help(completed.stdout.splitlines())

    def resolve_lint(self, name: str) -> str:
        """Validate ``name`` against the driver's lints and return its rule id.

        Args:
            name: Lint name as typed by the user.

        Returns:
            str: Rule identifier as it appears on diagnostics.

        Raises:
            WorkspaceError: If the name is malformed or unknown to the driver.
        """

        rule = normalize_lint_name(name)
        if f"{CLIPPY_PREFIX}{rule.replace('_', '-')}" not in self.available_lints():
            raise WorkspaceError(f"Lints not found: `{name}`")
        return rule


def parse_lint_help(lines: Sequence[str]) -> frozenset[str]:
    """Extract lint names from ``clippy-driver -W help`` output.

    Args:
        lines: Output lines of the help command.

    Returns:
        frozenset[str]: Names such as ``clippy::needless-clone`` listed between
        the plugin lint header and the plugin group header.
    """

    names: set[str] = set()
    in_section = False
    for line in lines:
        if line.startswith(PLUGIN_LINTS_HEADER):
            in_section = True
            continue
        if line.startswith(PLUGIN_GROUPS_HEADER):
            break
        if not in_section:
            continue
        fields = line.split()
        if fields and fields[0].startswith(CLIPPY_PREFIX):
            names.add(fields[0])
    return frozenset(names)


def normalize_lint_name(name: str) -> str:
    """Return the rule identifier diagnostics use for lint ``name``.

    ``clippy::Needless-Clone``, ``needless-clone`` and ``needless_clone`` all
    normalise to ``needless_clone``.

    Args:
        name: Lint name as typed by the user.

    Returns:
        str: Lower-case rule identifier without the tool prefix.

    Raises:
        WorkspaceError: If the name is empty or contains invalid characters.
    """

    lowered = name.strip().lower().removeprefix(CLIPPY_PREFIX)
    if not _LINT_NAME_PATTERN.fullmatch(lowered):
        raise WorkspaceError(f"Invalid lint name: `{name}`")
    return lowered.replace("-", "_")


def prepare_workspace(path: Path, *, build: bool = True) -> LinterWorkspace:
    """Validate the linter checkout at ``path`` and optionally build it.

    Args:
        path: Linter source checkout.
        build: When ``False`` the release build is assumed to be up to date.

    Returns:
        LinterWorkspace: Workspace ready to produce linter commands.

    Raises:
        WorkspaceError: If the checkout is missing, has no toolchain file, or
            fails to build.
    """

    resolved = path.absolute()
    if not resolved.exists():
        raise WorkspaceError(f"Source path `{resolved}` does not exist")
    workspace = LinterWorkspace(path=resolved, channel=read_toolchain_channel(resolved))
    if build:
        workspace.build()
    return workspace


__all__ = [
    "CLIPPY_PREFIX",
    "LinterBin",
    "LinterWorkspace",
    "WorkspaceError",
    "normalize_lint_name",
    "parse_lint_help",
    "prepare_workspace",
    "read_toolchain_channel",
]
