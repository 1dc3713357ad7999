# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Normalise cargo ``--message-format=json`` records into diagnostics."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Final

from cratelint.core.models import Diagnostic, JsonValue
from cratelint.core.severity import severity_from_level

from .base import coerce_object_mapping, coerce_optional_int, coerce_optional_str, mapping_sequence

CARGO_DIAGNOSTIC_REASON: Final[str] = "compiler-message"
RUSTC_DIAGNOSTIC_TYPE: Final[str] = "diagnostic"
TOOL_PREFIX: Final[str] = "clippy::"
ALLOW_OVERRIDE_CODE: Final[str] = "E0453"


def compiler_message(record: Mapping[str, JsonValue]) -> dict[str, JsonValue] | None:
    """Return the rustc diagnostic carried by ``record``.

    Cargo wraps rustc output in ``{"reason": "compiler-message", "message": {...}}``;
    bare rustc diagnostics are accepted as well.

    Args:
        record: Decoded JSON object.

    Returns:
        dict[str, JsonValue] | None: The diagnostic mapping, or ``None`` for
        records that carry no diagnostic (build-script output, artifacts, ...).
    """

    reason = record.get("reason")
    if reason == CARGO_DIAGNOSTIC_REASON:
        message = coerce_object_mapping(record.get("message"))
        return message or None
    if reason is not None:
        return None
    if record.get("$message_type") == RUSTC_DIAGNOSTIC_TYPE or ("message" in record and "level" in record):
        return coerce_object_mapping(record)
    return None


def _primary_span(spans: list[dict[str, JsonValue]]) -> dict[str, JsonValue] | None:
    return next((span for span in spans if span.get("is_primary") is True), spans[0] if spans else None)


def _suggestion(message: Mapping[str, JsonValue]) -> str | None:
    """Return the replacement proposed by the first ``help`` child, if any."""

    for child in mapping_sequence(message.get("children")):
        if child.get("level") != "help":
            continue
        for span in mapping_sequence(child.get("spans")):
            replacement = span.get("suggested_replacement")
            if isinstance(replacement, str):
                return replacement
    return None


def normalize_record(record: Mapping[str, JsonValue], package: str) -> Diagnostic | None:
    """Convert one decoded cargo record into a :class:`Diagnostic`.

    Args:
        record: Decoded JSON object from the linter's stdout.
        package: Package the invocation ran against.

    Returns:
        Diagnostic | None: The diagnostic, or ``None`` when the record carries
        no coded diagnostic.
    """

    message = compiler_message(record)
    if message is None:
        return None
    code = coerce_optional_str(coerce_object_mapping(message.get("code")).get("code"))
    if not code:
        return None

    primary = _primary_span(mapping_sequence(message.get("spans")))
    return Diagnostic(
        package=package,
        rule=code.removeprefix(TOOL_PREFIX),
        severity=severity_from_level(message.get("level")),
        message=(coerce_optional_str(message.get("message")) or "").strip(),
        file=coerce_optional_str(primary.get("file_name")) if primary else None,
        line=coerce_optional_int(primary.get("line_start")) if primary else None,
        column=coerce_optional_int(primary.get("column_start")) if primary else None,
        suggestion=_suggestion(message),
        rendered=coerce_optional_str(message.get("rendered")),
    )


def count_allow_overrides(records: Iterable[Mapping[str, JsonValue]]) -> int:
    """Count source-level ``allow`` attributes that conflict with a ``--forbid`` lint.

    Each such attribute surfaces as rustc error ``E0453``. Errors raised from
    macro expansions are ignored because the attribute is not written in the
    package itself.

    Args:
        records: Decoded records from an allow-check invocation.

    Returns:
        int: Number of overriding attributes.
    """

    count = 0
    for record in records:
        message = compiler_message(record)
        if message is None:
            continue
        code = coerce_optional_str(coerce_object_mapping(message.get("code")).get("code"))
        if code != ALLOW_OVERRIDE_CODE:
            continue
        if all(span.get("expansion") is None for span in mapping_sequence(message.get("spans"))):
            count += 1
    return count


__all__ = [
    "ALLOW_OVERRIDE_CODE",
    "CARGO_DIAGNOSTIC_REASON",
    "compiler_message",
    "count_allow_overrides",
    "normalize_record",
]
