# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Diagnostics package exposing aggregation and cross-run comparison helpers."""

from __future__ import annotations

from .aggregate import PackageRun, aggregate
from .diff import diff_results

__all__ = ("PackageRun", "aggregate", "diff_results")
