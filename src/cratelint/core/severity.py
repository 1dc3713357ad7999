# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Severity related types and helpers."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Final


class Severity(str, Enum):
    """Severity levels reported by the compiler and the linter."""

    ERROR = "error"
    WARNING = "warning"
    NOTE = "note"
    HELP = "help"


# rustc emits a few levels beyond the four we keep; fold them onto the closest one.
RUSTC_LEVELS: Final[Mapping[str, Severity]] = {
    "error": Severity.ERROR,
    "error: internal compiler error": Severity.ERROR,
    "warning": Severity.WARNING,
    "note": Severity.NOTE,
    "failure-note": Severity.NOTE,
    "help": Severity.HELP,
}


def severity_from_level(level: object, default: Severity = Severity.WARNING) -> Severity:
    """Map a rustc ``level`` string onto :class:`Severity`.

    Args:
        level: Level value taken from a compiler message.
        default: Severity returned when the level is missing or unknown.

    Returns:
        Severity: Normalised severity.
    """

    if not isinstance(level, str):
        return default
    return RUSTC_LEVELS.get(level.strip().lower(), default)


__all__ = ["RUSTC_LEVELS", "Severity", "severity_from_level"]
