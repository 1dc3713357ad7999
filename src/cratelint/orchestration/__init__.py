# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Orchestration layer: per-package invocation and the corpus worker pool."""

from __future__ import annotations

from .context import RunContext
from .invoker import LinterCommand, LinterInvoker, classify
from .orchestrator import RunHooks, run_corpus

__all__ = [
    "LinterCommand",
    "LinterInvoker",
    "RunContext",
    "RunHooks",
    "classify",
    "run_corpus",
]
