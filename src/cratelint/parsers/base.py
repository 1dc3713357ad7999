# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Coercion helpers shared by the diagnostic parsers."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import cast

from cratelint.core.models import JsonValue


def coerce_object_mapping(value: JsonValue | None) -> dict[str, JsonValue]:
    """Return ``value`` as a string-keyed dictionary, or an empty one."""

    if isinstance(value, Mapping):
        return {str(key): cast(JsonValue, entry) for key, entry in value.items()}
    return {}


def mapping_sequence(value: JsonValue | None) -> list[dict[str, JsonValue]]:
    """Return the mapping items of ``value`` when it is a JSON array."""

    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        return []
    return [coerce_object_mapping(item) for item in value if isinstance(item, Mapping)]


def coerce_optional_int(value: JsonValue | None) -> int | None:
    """Return an optional integer parsed from ``value`` when feasible."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def coerce_optional_str(value: JsonValue | None) -> str | None:
    """Return a string representation of ``value`` or ``None`` when unset."""

    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return None


__all__ = [
    "coerce_object_mapping",
    "coerce_optional_int",
    "coerce_optional_str",
    "mapping_sequence",
]
