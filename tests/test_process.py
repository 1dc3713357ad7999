# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for subprocess helpers: checked commands and isolated process groups."""

from __future__ import annotations

import importlib
import os
import signal
import subprocess
import sys
import threading
import time
from pathlib import Path

import pytest

from cratelint.core.runtime.process import (
    CommandOptions,
    ProcessCapture,
    ProcessTable,
    ProcessTableClosedError,
    SubprocessExecutionError,
    run_command,
    run_isolated,
    terminate_process_group,
)

process_module = importlib.import_module("cratelint.core.runtime.process")


def _python(code: str) -> list[str]:
    return [sys.executable, "-c", code]


def test_run_command_raises_on_failure() -> None:
    with pytest.raises(SubprocessExecutionError) as excinfo:
        run_command(
            _python("import sys; sys.stderr.write('boom'); sys.exit(3)"),
            options=CommandOptions(capture_output=True),
        )

    assert excinfo.value.returncode == 3
    assert excinfo.value.stderr == "boom"


def test_run_command_reports_missing_executable() -> None:
    with pytest.raises(FileNotFoundError):
        run_command(["definitely-not-a-real-binary-4242"])


def test_run_isolated_captures_streams_separately(tmp_path: Path) -> None:
    # More than a pipe buffer on both streams; a single reader would deadlock.
    code = "import sys; sys.stdout.write('o' * 300000); sys.stderr.write('e' * 300000)"

    capture = run_isolated(_python(code), cwd=tmp_path, env=dict(os.environ), timeout=30, table=ProcessTable())

    assert capture.returncode == 0
    assert capture.stdout == b"o" * 300000
    assert capture.stderr == b"e" * 300000
    assert not capture.timed_out
    assert capture.finished_at >= capture.started_at


def test_run_isolated_uses_cwd_and_env(tmp_path: Path) -> None:
    env = dict(os.environ, CRATELINT_PROBE="present")
    code = "import os; print(os.getcwd()); print(os.environ['CRATELINT_PROBE'])"

    capture = run_isolated(_python(code), cwd=tmp_path, env=env, timeout=30, table=ProcessTable())

    cwd_line, env_line = capture.stdout.decode().splitlines()
    assert Path(cwd_line).resolve() == tmp_path.resolve()
    assert env_line == "present"


def test_timeout_kills_whole_process_group(tmp_path: Path, alive) -> None:
    pid_file = tmp_path / "child.pid"
    code = (
        "import subprocess, sys, time\n"
        "child = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(120)'])\n"
        f"open({str(pid_file)!r}, 'w').write(str(child.pid))\n"
        "time.sleep(120)\n"
    )
    table = ProcessTable()

    started = time.monotonic()
    capture = run_isolated(_python(code), cwd=tmp_path, env=dict(os.environ), timeout=1.0, table=table)
    elapsed = time.monotonic() - started

    assert capture.timed_out
    assert capture.returncode is None
    assert elapsed < 20
    assert len(table) == 0
    child_pid = int(pid_file.read_text())
    deadline = time.monotonic() + 5
    while alive(child_pid) and time.monotonic() < deadline:
        time.sleep(0.05)
    assert not alive(child_pid)


def test_signalled_child_reports_negative_returncode(tmp_path: Path) -> None:
    code = "import os, signal; os.kill(os.getpid(), signal.SIGKILL)"

    capture = run_isolated(_python(code), cwd=tmp_path, env=dict(os.environ), timeout=30, table=ProcessTable())

    assert capture.returncode == -signal.SIGKILL
    assert capture.signalled


def test_closed_table_refuses_new_processes(tmp_path: Path) -> None:
    table = ProcessTable()
    table.close()

    with pytest.raises(ProcessTableClosedError):
        run_isolated(_python("pass"), cwd=tmp_path, env=dict(os.environ), timeout=5, table=table)
    assert table.closed


def test_terminate_all_kills_running_groups(tmp_path: Path) -> None:
    table = ProcessTable()
    results: list[ProcessCapture] = []

    def _worker() -> None:
        results.append(
            run_isolated(
                _python("import time; time.sleep(120)"),
                cwd=tmp_path,
                env=dict(os.environ),
                timeout=None,
                table=table,
            ),
        )

    thread = threading.Thread(target=_worker)
    thread.start()
    deadline = time.monotonic() + 10
    while len(table) == 0 and time.monotonic() < deadline:
        time.sleep(0.01)

    table.close()
    assert table.terminate_all(grace=1.0) == 1
    thread.join(timeout=15)

    assert not thread.is_alive()
    assert results[0].returncode is not None
    assert results[0].returncode < 0
    assert not results[0].timed_out


def _still_our_child(pid: int) -> bool:
    try:
        os.waitid(os.P_PID, pid, os.WEXITED | os.WNOHANG | os.WNOWAIT)
    except ChildProcessError:
        return False
    return True


@pytest.mark.parametrize("timeout", [30.0, None])
def test_group_is_signalled_only_before_the_leader_is_reaped(tmp_path: Path, monkeypatch, timeout) -> None:
    signalled: list[tuple[int, bool]] = []
    real_signal_group = process_module._signal_group

    def _recording(pgid: int, signum: signal.Signals) -> None:
        signalled.append((pgid, _still_our_child(pgid)))
        real_signal_group(pgid, signum)

    monkeypatch.setattr(process_module, "_signal_group", _recording)

    capture = run_isolated(
        _python("print('done')"),
        cwd=tmp_path,
        env=dict(os.environ),
        timeout=timeout,
        table=ProcessTable(),
    )

    assert capture.returncode == 0
    assert capture.stdout == b"done\n"
    assert signalled
    assert all(owned for _, owned in signalled)


def test_terminate_skips_a_reaped_leader(monkeypatch) -> None:
    signalled: list[int] = []
    monkeypatch.setattr(process_module, "_signal_group", lambda pgid, signum: signalled.append(pgid))
    process = subprocess.Popen(_python("pass"), start_new_session=True)
    process.wait()

    terminate_process_group(process, grace=0.1)

    assert signalled == []
    assert process.returncode == 0
