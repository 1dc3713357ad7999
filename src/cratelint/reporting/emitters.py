# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Persist aggregate results as JSON so separate runs can be compared."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Final

from pydantic import ValidationError

from ..core.models import AggregateResult

SUMMARY_KEY: Final[str] = "summary"


class ReportLoadError(Exception):
    """Raised when a stored JSON report cannot be read back."""


def write_json_report(result: AggregateResult, path: Path) -> None:
    """Write ``result`` to ``path`` as indented JSON.

    A derived ``summary`` block is included for readers that only want the
    counts; it is ignored when the report is loaded again.
    """
    payload = result.model_dump(mode="json")
    payload[SUMMARY_KEY] = result.summary().model_dump(mode="json")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def load_json_report(path: Path) -> AggregateResult:
    """Load an :class:`AggregateResult` written by :func:`write_json_report`.

    Args:
        path: JSON report location.

    Returns:
        AggregateResult: The validated result.

    Raises:
        ReportLoadError: If the file is unreadable, not JSON, or not a report.
    """

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ReportLoadError(f"Unable to read report {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ReportLoadError(f"Report {path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ReportLoadError(f"Report {path} must contain a JSON object")
    payload.pop(SUMMARY_KEY, None)
    try:
        return AggregateResult.model_validate(payload)
    except ValidationError as exc:
        raise ReportLoadError(f"Report {path} is not a cratelint result:\n{exc}") from exc


__all__ = ["ReportLoadError", "load_json_report", "write_json_report"]
