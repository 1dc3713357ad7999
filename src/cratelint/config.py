# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Configuration models and loaders for cratelint runs."""

from __future__ import annotations

import os
import re
import tomllib
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_CONFIG_NAME: Final[str] = "cratelint.toml"
DEFAULT_TIMEOUT_SECONDS: Final[float] = 600.0
CLEAN_SET_KEY: Final[str] = "clean"
_PACKAGE_NAME: Final[re.Pattern[str]] = re.compile(r"[^\s/\\#]+")
_SECTIONS: Final[frozenset[str]] = frozenset({"run", "policy", "output"})


class ConfigError(Exception):
    """Raised when configuration input is invalid."""


class AggregationPolicyError(Exception):
    """Raised when the expected-clean package set is malformed."""


def default_parallel_jobs() -> int:
    """Return the number of available CPU cores (minimum of 1)."""
    return os.cpu_count() or 1


def _validate_package_names(names: Iterable[object]) -> frozenset[str]:
    """Return ``names`` as a set after checking each is a plausible directory name.

    Raises:
        ValueError: If an entry is not a string or contains whitespace or separators.
    """

    validated: set[str] = set()
    for name in names:
        if not isinstance(name, str) or not _PACKAGE_NAME.fullmatch(name):
            raise ValueError(f"invalid package name in expected-clean set: {name!r}")
        validated.add(name)
    return frozenset(validated)


class OutputConfig(BaseModel):
    """Console and artifact output settings."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    emoji: bool = True
    color: bool = True
    progress: bool = True
    report_out: Path | None = None
    json_out: Path | None = None


class RunConfig(BaseModel):
    """How packages are linted."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    jobs: int = Field(default_factory=default_parallel_jobs, ge=1)
    timeout_s: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    target_lint: str | None = None
    check_allows: bool = False
    skip_build: bool = False
    touch_crate_roots: bool = True
    extra_env: dict[str, str] = Field(default_factory=dict)


class PolicyConfig(BaseModel):
    """Rules turning an aggregate result into a pass/fail signal."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    compile_errors_fail: bool = False
    expected_clean: frozenset[str] = Field(default_factory=frozenset)

    @field_validator("expected_clean", mode="before")
    @classmethod
    def _check_names(cls, value: object) -> frozenset[str]:
        """Reject expected-clean entries that cannot name a package directory.

        Args:
            value: Raw collection of package names.

        Returns:
            frozenset[str]: Validated names.
        """

        if isinstance(value, str) or not isinstance(value, Iterable):
            raise ValueError("expected_clean must be a list of package names")
        return _validate_package_names(value)


class Config(BaseModel):
    """Primary configuration container used by the orchestrator."""

    model_config = ConfigDict(validate_assignment=True)

    run: RunConfig = Field(default_factory=RunConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except OSError as exc:
        raise ConfigError(f"Unable to read configuration at {path}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Configuration at {path} is not valid TOML: {exc}") from exc


def load_config(path: Path | None = None, *, overrides: Mapping[str, Mapping[str, Any]] | None = None) -> Config:
    """Load configuration from ``path`` and apply ``overrides`` on top.

    Args:
        path: Optional ``cratelint.toml`` file with ``[run]``, ``[policy]``
            and ``[output]`` tables.
        overrides: Per-section values (typically from the command line) that
            win over the file.

    Returns:
        Config: Validated configuration.

    Raises:
        ConfigError: If the file cannot be read or holds invalid values.
    """

    document: dict[str, Any] = _read_toml(path) if path is not None else {}
    unknown = sorted(set(document) - _SECTIONS)
    if unknown:
        raise ConfigError(f"Unknown configuration sections: {', '.join(unknown)}")
    merged: dict[str, dict[str, Any]] = {}
    for section in _SECTIONS:
        raw = document.get(section, {})
        if not isinstance(raw, Mapping):
            raise ConfigError(f"Configuration section [{section}] must be a table")
        merged[section] = dict(raw)
    for section, values in (overrides or {}).items():
        if section not in _SECTIONS:
            raise ConfigError(f"Unknown configuration section: {section}")
        merged[section].update(values)
    try:
        return Config.model_validate(merged)
    except ValidationError as exc:
        source = str(path) if path is not None else "command line"
        raise ConfigError(f"Invalid configuration ({source}):\n{exc}") from exc


def load_expected_clean_set(path: Path) -> frozenset[str]:
    """Read the set of packages expected to stay free of the target lint.

    Plain files list one package per line; ``#`` starts a comment. Files
    ending in ``.toml`` must hold a ``clean = [...]`` array instead.

    Args:
        path: Expected-clean set file.

    Returns:
        frozenset[str]: Package names.

    Raises:
        AggregationPolicyError: If the file is unreadable or malformed.
    """

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise AggregationPolicyError(f"Unable to read expected-clean set {path}: {exc}") from exc

    if path.suffix == ".toml":
        try:
            document = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise AggregationPolicyError(f"Expected-clean set {path} is not valid TOML: {exc}") from exc
        names = document.get(CLEAN_SET_KEY)
        if not isinstance(names, list):
            raise AggregationPolicyError(f"Expected-clean set {path} must define `{CLEAN_SET_KEY} = [...]`")
    else:
        names = [stripped for line in text.splitlines() if (stripped := line.split("#", 1)[0].strip())]

    try:
        return _validate_package_names(names)
    except ValueError as exc:
        raise AggregationPolicyError(f"{path}: {exc}") from exc


__all__ = [
    "AggregationPolicyError",
    "Config",
    "ConfigError",
    "DEFAULT_CONFIG_NAME",
    "OutputConfig",
    "PolicyConfig",
    "RunConfig",
    "default_parallel_jobs",
    "load_config",
    "load_expected_clean_set",
]
