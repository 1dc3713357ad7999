# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Package catalog: enumerate the crates stored under a corpus root."""

from __future__ import annotations

import tomllib
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Final

from cratelint.core.logging import warn
from cratelint.core.models import Package

MANIFEST_NAME: Final[str] = "Cargo.toml"
TARGET_DIR_NAME: Final[str] = "_target"


class CatalogErrorKind(str, Enum):
    """Reasons a catalog cannot be built at all."""

    NOT_A_DIRECTORY = "not_a_directory"


class CatalogError(RuntimeError):
    """Raised when the corpus root cannot be enumerated."""

    def __init__(self, kind: CatalogErrorKind, root: Path) -> None:
        """Initialise the error.

        Args:
            kind: Failure category.
            root: Corpus root that was requested.
        """

        super().__init__(f"crates root '{root}' does not exist or is not a directory")
        self.kind = kind
        self.root = root


@dataclass(frozen=True, slots=True)
class CatalogWarning:
    """A directory entry that was skipped while building the catalog."""

    name: str
    reason: str


@dataclass(slots=True)
class PackageCatalog:
    """Enumerate packages under ``root`` while recording skipped entries.

    Candidates are visited in lexicographic name order so that scheduling and
    report listing agree within a run.
    """

    root: Path
    warnings: list[CatalogWarning] = field(default_factory=list)
    use_emoji: bool = True
    use_color: bool | None = None

    def __post_init__(self) -> None:
        self.root = self.root.absolute()
        if not self.root.is_dir():
            raise CatalogError(CatalogErrorKind.NOT_A_DIRECTORY, self.root)

    def enumerate(self) -> Iterator[Package]:
        """Yield every qualifying package lazily.

        Yields:
            Package: Packages whose directory holds a readable ``Cargo.toml``.
        """

        for entry in sorted(self.root.iterdir(), key=lambda path: path.name):
            if entry.name == TARGET_DIR_NAME or entry.name.startswith("."):
                continue
            reason = _disqualify(entry)
            if reason is not None:
                self._skip(entry.name, reason)
                continue
            yield Package(name=entry.name, path=entry)

    def _skip(self, name: str, reason: str) -> None:
        self.warnings.append(CatalogWarning(name=name, reason=reason))
        warn(f"{name} - skipped: {reason}", use_emoji=self.use_emoji, use_color=self.use_color)


def _disqualify(entry: Path) -> str | None:
    """Return why ``entry`` is not a package, or ``None`` when it qualifies."""

    if not entry.is_dir():
        return "not a directory"
    manifest = entry / MANIFEST_NAME
    if not manifest.is_file():
        return f"no {MANIFEST_NAME}"
    try:
        with manifest.open("rb") as handle:
            tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        return f"unreadable {MANIFEST_NAME}: {exc}"
    return None


def enumerate_packages(root: Path, *, use_emoji: bool = True, use_color: bool | None = None) -> Iterator[Package]:
    """Yield the packages found directly under ``root``.

    Args:
        root: Corpus directory holding one crate per subdirectory.
        use_emoji: Emoji flag forwarded to skip warnings.
        use_color: Colour flag forwarded to skip warnings.

    Returns:
        Iterator[Package]: Lazy sequence of packages in name order.

    Raises:
        CatalogError: If ``root`` does not exist or is not a directory.
    """

    return PackageCatalog(root, use_emoji=use_emoji, use_color=use_color).enumerate()


__all__ = [
    "CatalogError",
    "CatalogErrorKind",
    "CatalogWarning",
    "MANIFEST_NAME",
    "PackageCatalog",
    "TARGET_DIR_NAME",
    "enumerate_packages",
]
