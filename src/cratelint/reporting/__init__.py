# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Reporting helpers: markdown rendering, JSON persistence and the exit gate."""

from __future__ import annotations

from .emitters import ReportLoadError, load_json_report, write_json_report
from .gate import GateDecision, Signal, evaluate_gate, exit_signal
from .markdown import render, render_diff

__all__ = [
    "GateDecision",
    "ReportLoadError",
    "Signal",
    "evaluate_gate",
    "exit_signal",
    "load_json_report",
    "render",
    "render_diff",
    "write_json_report",
]
