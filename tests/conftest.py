# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Shared pytest fixtures: package corpora, cargo records and a scripted linter."""

from __future__ import annotations

import json
import os
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

from cratelint.core.runtime.process import ProcessTable
from cratelint.orchestration.invoker import LinterInvoker
from cratelint.workspace import LinterBin

BEHAVIOUR_FILE = "fake_linter.json"

# Executed with ``sys.executable`` from inside a package directory. Reads its
# behaviour from ``fake_linter.json`` in the working directory.
FAKE_LINTER_SOURCE = r'''
import json
import os
import subprocess
import sys
import time
from pathlib import Path

behaviour_path = Path("fake_linter.json")
behaviour = json.loads(behaviour_path.read_text()) if behaviour_path.exists() else {}
Path("argv.json").write_text(json.dumps(sys.argv[1:]))
Path("env.json").write_text(json.dumps({key: os.environ.get(key) for key in behaviour.get("record_env", [])}))

allow_check = "--forbid" in sys.argv
stdout = behaviour.get("allow_stdout", "") if allow_check else behaviour.get("stdout", "")
stderr = behaviour.get("stderr", "")
code = behaviour.get("allow_exit", 0) if allow_check else behaviour.get("exit", 0)

if behaviour.get("spawn_child"):
    child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(120)"])
    Path("child.pid").write_text(str(child.pid))
if behaviour.get("pid_file"):
    Path(behaviour["pid_file"]).write_text(str(os.getpid()))
if behaviour.get("sleep"):
    time.sleep(behaviour["sleep"])

sys.stdout.write(stdout)
sys.stdout.flush()
sys.stderr.write(stderr)
sys.stderr.flush()
sys.exit(code)
'''


@dataclass(frozen=True, slots=True)
class FakeLinter:
    """Command source that launches the scripted linter instead of cargo."""

    script: Path

    def command(self, binary: LinterBin) -> list[str]:
        return [sys.executable, str(self.script), binary.value, "--"]


@pytest.fixture
def fake_linter(tmp_path_factory: pytest.TempPathFactory) -> FakeLinter:
    """Return a linter command source backed by a small Python script."""

    script = tmp_path_factory.mktemp("linter") / "fake_linter.py"
    script.write_text(FAKE_LINTER_SOURCE, encoding="utf-8")
    return FakeLinter(script=script)


PackageFactory = Callable[..., Path]


@pytest.fixture
def corpus(tmp_path: Path) -> Path:
    """Return an empty corpus root."""

    root = tmp_path / "crates"
    root.mkdir()
    return root


@pytest.fixture
def make_package(corpus: Path) -> PackageFactory:
    """Return a factory creating crates under the corpus root."""

    def _make(name: str, *, behaviour: dict[str, Any] | None = None, manifest: str | None = None) -> Path:
        path = corpus / name
        (path / "src").mkdir(parents=True)
        (path / "src" / "lib.rs").write_text("pub fn answer() -> u32 { 42 }\n", encoding="utf-8")
        (path / "Cargo.toml").write_text(
            manifest if manifest is not None else f'[package]\nname = "{name}"\nversion = "0.1.0"\n',
            encoding="utf-8",
        )
        if behaviour is not None:
            write_behaviour(path, **behaviour)
        return path

    return _make


def write_behaviour(package_dir: Path, **behaviour: Any) -> None:
    """Describe how the scripted linter behaves when run in ``package_dir``."""

    (package_dir / BEHAVIOUR_FILE).write_text(json.dumps(behaviour), encoding="utf-8")


@pytest.fixture
def invoker(fake_linter: FakeLinter, corpus: Path) -> LinterInvoker:
    """Return an invoker bound to the scripted linter and a fresh process table."""

    return LinterInvoker(linter=fake_linter, corpus_root=corpus, table=ProcessTable(), timeout=30.0)


def compiler_message(
    code: str | None,
    message: str,
    *,
    level: str = "warning",
    file: str = "src/lib.rs",
    line: int = 1,
    column: int = 1,
    suggestion: str | None = None,
    expansion: dict[str, Any] | None = None,
    primary: bool = True,
) -> str:
    """Return one cargo ``compiler-message`` record as a JSON line."""

    children: list[dict[str, Any]] = []
    if suggestion is not None:
        children.append(
            {
                "message": "try",
                "level": "help",
                "code": None,
                "spans": [
                    {
                        "file_name": file,
                        "line_start": line,
                        "column_start": column,
                        "is_primary": True,
                        "suggested_replacement": suggestion,
                        "expansion": None,
                    },
                ],
                "children": [],
                "rendered": None,
            },
        )
    payload = {
        "reason": "compiler-message",
        "package_id": "demo 0.1.0 (path+file:///demo)",
        "message": {
            "$message_type": "diagnostic",
            "message": message,
            "code": {"code": code, "explanation": None} if code is not None else None,
            "level": level,
            "spans": [
                {
                    "file_name": file,
                    "line_start": line,
                    "line_end": line,
                    "column_start": column,
                    "column_end": column + 4,
                    "is_primary": primary,
                    "text": [],
                    "label": None,
                    "suggested_replacement": None,
                    "expansion": expansion,
                },
            ],
            "children": children,
            "rendered": f"{level}: {message}\n --> {file}:{line}:{column}\n",
        },
    }
    return json.dumps(payload)


def process_alive(pid: int) -> bool:
    """Return ``True`` while ``pid`` is a running, non-zombie process."""

    stat = Path(f"/proc/{pid}/stat")
    if stat.parent.parent.exists():
        try:
            content = stat.read_text()
        except (FileNotFoundError, ProcessLookupError):
            return False
        state = content.rsplit(")", 1)[1].split()[0]
        return state not in {"Z", "X"}
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


@pytest.fixture
def cargo_record() -> Callable[..., str]:
    """Return the cargo record builder."""

    return compiler_message


@pytest.fixture
def behave() -> Callable[..., None]:
    """Return the helper describing scripted linter behaviour for a package."""

    return write_behaviour


@pytest.fixture
def alive() -> Callable[[int], bool]:
    """Return the process liveness probe."""

    return process_alive
