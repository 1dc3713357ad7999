# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Bump crate root timestamps so cargo re-lints unchanged packages.

Cargo fingerprints packages by their sources, not by the linter binary, so a
rebuilt linter would otherwise reuse cached results. Only modification times
are touched; file contents are never changed.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Final

from .packages import MANIFEST_NAME

DEFAULT_CRATE_ROOTS: Final[tuple[str, ...]] = ("src/lib.rs", "src/main.rs")


def _declared_roots(manifest: Mapping[str, object]) -> Iterator[str]:
    """Yield target paths declared in ``[lib]`` and ``[[bin]]`` sections."""

    lib = manifest.get("lib")
    if isinstance(lib, Mapping):
        path = lib.get("path")
        if isinstance(path, str):
            yield path
    bins = manifest.get("bin")
    if isinstance(bins, list):
        for section in bins:
            if isinstance(section, Mapping) and isinstance(section.get("path"), str):
                yield section["path"]


def touch_crate_roots(crate_path: Path) -> list[Path]:
    """Set the mtime of every crate root of ``crate_path`` to now.

    Args:
        crate_path: Package directory containing ``Cargo.toml``.

    Returns:
        list[Path]: Roots whose timestamps were updated.

    Raises:
        OSError: If the manifest cannot be read or a declared root cannot be touched.
        tomllib.TOMLDecodeError: If the manifest is not valid TOML.
    """

    with (crate_path / MANIFEST_NAME).open("rb") as handle:
        manifest = tomllib.load(handle)

    touched: list[Path] = []
    for relative in _declared_roots(manifest):
        root = crate_path / relative
        os.utime(root)
        touched.append(root)

    for relative in DEFAULT_CRATE_ROOTS:
        root = crate_path / relative
        if root in touched:
            continue
        try:
            os.utime(root)
        except FileNotFoundError:
            continue
        touched.append(root)
    return touched


__all__ = ["DEFAULT_CRATE_ROOTS", "touch_crate_roots"]
