# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Public parser exports for converting linter output into diagnostics."""

from __future__ import annotations

from .cargo import count_allow_overrides, normalize_record
from .stream import DiagnosticStreamParser, ParseState, parse, parse_bytes

__all__ = [
    "DiagnosticStreamParser",
    "ParseState",
    "count_allow_overrides",
    "normalize_record",
    "parse",
    "parse_bytes",
]
