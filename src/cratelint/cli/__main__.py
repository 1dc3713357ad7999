# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Allow ``python -m cratelint.cli``."""

from __future__ import annotations

from .app import app

if __name__ == "__main__":
    app()
