# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for package discovery."""

from __future__ import annotations

from pathlib import Path

import pytest

from cratelint.core.models import BuildState
from cratelint.discovery import packages as packages_module
from cratelint.discovery.packages import (
    CatalogError,
    CatalogErrorKind,
    PackageCatalog,
    enumerate_packages,
)


@pytest.fixture
def captured_warnings(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    messages: list[str] = []

    def _capture(message: str, **_: object) -> None:
        messages.append(message)

    monkeypatch.setattr(packages_module, "warn", _capture)
    return messages


def test_enumerates_packages_in_name_order(corpus: Path, make_package, captured_warnings: list[str]) -> None:
    for name in ("zeta", "alpha", "mid"):
        make_package(name)

    found = list(enumerate_packages(corpus))

    assert [package.name for package in found] == ["alpha", "mid", "zeta"]
    assert all(package.path.is_absolute() for package in found)
    assert all(package.state is BuildState.UNKNOWN for package in found)
    assert captured_warnings == []


def test_skips_target_dir_and_hidden_entries_silently(
    corpus: Path,
    make_package,
    captured_warnings: list[str],
) -> None:
    make_package("real")
    (corpus / "_target" / "debug").mkdir(parents=True)
    (corpus / ".git").mkdir()

    catalog = PackageCatalog(corpus)

    assert [package.name for package in catalog.enumerate()] == ["real"]
    assert catalog.warnings == []
    assert captured_warnings == []


def test_records_warnings_for_unqualified_entries(
    corpus: Path,
    make_package,
    captured_warnings: list[str],
) -> None:
    make_package("good")
    (corpus / "README.md").write_text("notes", encoding="utf-8")
    (corpus / "no_manifest").mkdir()
    broken = corpus / "broken"
    broken.mkdir()
    (broken / "Cargo.toml").write_text("[package\nname =", encoding="utf-8")

    catalog = PackageCatalog(corpus)
    names = [package.name for package in catalog.enumerate()]

    assert names == ["good"]
    reasons = {warning.name: warning.reason for warning in catalog.warnings}
    assert reasons["README.md"] == "not a directory"
    assert reasons["no_manifest"] == "no Cargo.toml"
    assert reasons["broken"].startswith("unreadable Cargo.toml")
    assert len(captured_warnings) == 3
    assert any("no_manifest - skipped" in message for message in captured_warnings)


def test_missing_root_raises_catalog_error(tmp_path: Path) -> None:
    with pytest.raises(CatalogError) as excinfo:
        list(enumerate_packages(tmp_path / "missing"))

    assert excinfo.value.kind is CatalogErrorKind.NOT_A_DIRECTORY


def test_file_root_raises_catalog_error(tmp_path: Path) -> None:
    root = tmp_path / "file"
    root.write_text("", encoding="utf-8")

    with pytest.raises(CatalogError):
        PackageCatalog(root)


def test_skip_warnings_honour_output_flags(corpus: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, object]] = []
    monkeypatch.setattr(packages_module, "warn", lambda message, **kwargs: calls.append(kwargs))
    (corpus / "notes").mkdir()

    assert list(enumerate_packages(corpus, use_emoji=False, use_color=False)) == []
    assert calls == [{"use_emoji": False, "use_color": False}]
