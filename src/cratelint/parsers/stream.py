# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Resilient parser for the JSON diagnostic stream emitted by cargo.

Cargo prints one JSON object per line, but the stream it leaves behind is not
always well formed: build scripts interleave plain text, processes killed
mid-write leave truncated records, and some tools pretty-print objects over
several lines. The parser is an explicit state machine that recovers at the
next record boundary instead of giving up on the whole stream.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Final

from cratelint.core.models import Diagnostic, Invocation, JsonValue, ParseIssue, ParseResult

from .cargo import normalize_record

LOGGER = logging.getLogger(__name__)

RECORD_START: Final[str] = "{"
RESYNC_MARKER: Final[str] = '{"'
MAX_RECORD_CHARS: Final[int] = 4 * 1024 * 1024
EXCERPT_CHARS: Final[int] = 120


class ParseState(str, Enum):
    """States of :class:`DiagnosticStreamParser`."""

    SEEKING_RECORD_START = "seeking_record_start"
    IN_RECORD = "in_record"
    RECOVERING_FROM_ERROR = "recovering_from_error"


@dataclass(slots=True)
class _BraceScanner:
    """Track object nesting depth while ignoring braces inside JSON strings."""

    depth: int = 0
    in_string: bool = False
    escaped: bool = False

    def feed(self, text: str) -> None:
        for char in text:
            if self.in_string:
                if self.escaped:
                    self.escaped = False
                elif char == "\\":
                    self.escaped = True
                elif char == '"':
                    self.in_string = False
                continue
            if char == '"':
                self.in_string = True
            elif char == "{":
                self.depth += 1
            elif char == "}":
                self.depth -= 1
                if self.depth < 0:
                    return


def _excerpt(text: str) -> str:
    text = text.strip()
    return text if len(text) <= EXCERPT_CHARS else f"{text[:EXCERPT_CHARS]}..."


class DiagnosticStreamParser:
    """Decode JSON records from captured linter output.

    A parser instance is single use: it keeps the issues and record count of
    the last stream it consumed.

    Args:
        package: Package the output belongs to.
        max_record_chars: Upper bound on the size of one buffered record.
    """

    def __init__(self, package: str, *, max_record_chars: int = MAX_RECORD_CHARS) -> None:
        self.package = package
        self.max_record_chars = max_record_chars
        self.state = ParseState.SEEKING_RECORD_START
        self.issues: list[ParseIssue] = []
        self.records = 0
        self.saw_record_start = False
        self._buffer: list[str] = []
        self._buffered_chars = 0
        self._start_line = 0
        self._scanner = _BraceScanner()

    def _issue(self, line: int, reason: str, excerpt: str) -> None:
        LOGGER.debug("%s: line %d: %s", self.package, line, reason)
        self.issues.append(ParseIssue(line=line, reason=reason, excerpt=_excerpt(excerpt)))

    def _decode(self, text: str, line: int) -> dict[str, JsonValue] | None:
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            self._issue(line, f"invalid JSON: {exc.msg}", text)
            return None
        if not isinstance(payload, dict):
            self._issue(line, "record is not a JSON object", text)
            return None
        self.records += 1
        return payload

    def _reset(self) -> None:
        self._buffer = []
        self._buffered_chars = 0
        self._scanner = _BraceScanner()

    def _begin(self, line: str, number: int) -> dict[str, JsonValue] | None:
        """Start a record at ``line``; return it when the line is a complete record."""

        self.saw_record_start = True
        self._reset()
        self._scanner.feed(line)
        if self._scanner.depth == 0:
            self.state = ParseState.SEEKING_RECORD_START
            return self._decode(line, number)
        if self._scanner.depth < 0:
            self._issue(number, "unbalanced closing brace", line)
            self.state = ParseState.RECOVERING_FROM_ERROR
            return None
        self._buffer.append(line)
        self._buffered_chars = len(line)
        self._start_line = number
        self.state = ParseState.IN_RECORD
        return None

    def _continue(self, line: str, number: int) -> dict[str, JsonValue] | None:
        """Extend the buffered record with ``line``."""

        if line.startswith(RESYNC_MARKER):
            self._issue(self._start_line, "truncated record", "\n".join(self._buffer))
            return self._begin(line, number)
        self._buffer.append(line)
        self._buffered_chars += len(line) + 1
        if self._buffered_chars > self.max_record_chars:
            self._issue(self._start_line, f"record exceeds {self.max_record_chars} characters", self._buffer[0])
            self._reset()
            self.state = ParseState.RECOVERING_FROM_ERROR
            return None
        self._scanner.feed(line)
        depth = self._scanner.depth
        if depth > 0:
            return None
        text = "\n".join(self._buffer)
        self._reset()
        if depth < 0:
            self._issue(self._start_line, "unbalanced closing brace", text)
            self.state = ParseState.RECOVERING_FROM_ERROR
            return None
        self.state = ParseState.SEEKING_RECORD_START
        return self._decode(text, self._start_line)

    def iter_records(self, data: bytes) -> Iterator[dict[str, JsonValue]]:
        """Yield every JSON object that could be decoded from ``data``.

        Args:
            data: Raw bytes captured from the linter's stdout.

        Yields:
            dict[str, JsonValue]: Decoded records in stream order.
        """

        text = data.decode("utf-8", errors="replace")
        for number, line in enumerate(text.splitlines(), start=1):
            record: dict[str, JsonValue] | None = None
            if self.state is ParseState.IN_RECORD:
                record = self._continue(line, number)
            elif line.startswith(RECORD_START):
                record = self._begin(line, number)
            if record is not None:
                yield record
        if self.state is ParseState.IN_RECORD:
            self._issue(self._start_line, "truncated record at end of input", "\n".join(self._buffer))
            self._reset()
            self.state = ParseState.SEEKING_RECORD_START

    def parse(self, data: bytes) -> ParseResult:
        """Parse ``data`` into diagnostics.

        Args:
            data: Raw bytes captured from the linter's stdout.

        Returns:
            ParseResult: Diagnostics in stream order plus any resynchronisation
            issues. Malformed input never raises.
        """

        diagnostics: list[Diagnostic] = []
        for record in self.iter_records(data):
            diagnostic = normalize_record(record, self.package)
            if diagnostic is not None:
                diagnostics.append(diagnostic)
        return ParseResult(
            diagnostics=tuple(diagnostics),
            issues=tuple(self.issues),
            records=self.records,
            unparsed=self.saw_record_start and self.records == 0 and bool(self.issues),
        )


def parse_bytes(data: bytes, package: str) -> ParseResult:
    """Parse raw linter output for ``package``."""

    return DiagnosticStreamParser(package).parse(data)


def parse(invocation: Invocation) -> ParseResult:
    """Parse the stdout captured by ``invocation``.

    Args:
        invocation: Finished linter invocation.

    Returns:
        ParseResult: Diagnostics attributed to ``invocation.package``.
    """

    return parse_bytes(invocation.stdout, invocation.package)


__all__ = [
    "DiagnosticStreamParser",
    "MAX_RECORD_CHARS",
    "ParseState",
    "parse",
    "parse_bytes",
]
