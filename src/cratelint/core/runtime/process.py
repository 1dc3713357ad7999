# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Safe wrappers around ``subprocess`` execution.

Two entry points live here. :func:`run_command` runs short, trusted helper
commands (building the linter, listing its lints). :func:`run_isolated` runs
untrusted package builds: each child gets its own process group, stdout and
stderr are drained by dedicated reader threads, and the whole group is killed
when the wall-clock timeout expires or the owning :class:`ProcessTable` shuts
down.
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import time

# Bandit: subprocess usage is intentional; we provide a controlled wrapper around
# external tool execution, normalising arguments and disabling ``shell=True``.
import subprocess  # nosec B404
from collections.abc import Mapping, Sequence
from contextlib import suppress
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import partial
from pathlib import Path
from subprocess import CompletedProcess, Popen
from threading import Lock, Thread
from typing import IO, Final

LOGGER = logging.getLogger(__name__)

TERMINATE_GRACE_SECONDS: Final[float] = 5.0
READER_JOIN_SECONDS: Final[float] = 5.0
_READ_CHUNK: Final[int] = 64 * 1024
_POLL_SECONDS: Final[float] = 0.05


@dataclass(slots=True)
class CommandOptions:
    """Command execution options for :func:`run_command`."""

    capture_output: bool = False
    discard_stdin: bool = False


class SubprocessExecutionError(RuntimeError):
    """Raised when a subprocess exits with a non-zero status."""

    def __init__(
        self,
        command: Sequence[str],
        returncode: int,
        stdout: str | None,
        stderr: str | None,
    ) -> None:
        """Initialise the error with captured subprocess metadata.

        Args:
            command: Normalised command sequence that was executed.
            returncode: Exit status reported by the subprocess.
            stdout: Captured standard output stream.
            stderr: Captured standard error stream.
        """
        super().__init__(
            f"Command '{command[0]}' exited with status {returncode}. stderr: {stderr or '<none>'}",
        )
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class ProcessTableClosedError(RuntimeError):
    """Raised when a spawn is attempted after the process table was closed."""


def _normalize_args(args: Sequence[str]) -> list[str]:
    """Normalise the subprocess argument sequence.

    Args:
        args: Raw command arguments supplied by the caller.

    Returns:
        list[str]: Validated argument list suitable for subprocess execution.

    Raises:
        ValueError: If no arguments are provided.
        FileNotFoundError: If the executable cannot be resolved on ``PATH``.
    """

    if not args:
        msg = "subprocess command requires at least one argument"
        raise ValueError(msg)

    head, *rest = args
    head_path = Path(head)
    if head_path.is_absolute():
        return [str(head_path), *rest]

    resolved = shutil.which(head)
    if resolved is None:
        msg = f"Executable '{head}' was not found on PATH"
        raise FileNotFoundError(msg)
    return [resolved, *rest]


def run_command(
    args: Sequence[str],
    *,
    options: CommandOptions | None = None,
) -> CompletedProcess[str]:
    """Execute ``args`` after normalising the executable path.

    Args:
        args: Command and argument sequence to execute.
        options: Options configuring execution semantics.

    Returns:
        CompletedProcess: Subprocess execution metadata.

    Raises:
        FileNotFoundError: If the executable cannot be resolved on ``PATH``.
        SubprocessExecutionError: When the process exits with a non-zero status.
    """

    normalized = _normalize_args(args)
    resolved_options = options or CommandOptions()

    # Bandit: commands originate from vetted configuration; we pass
    # argument lists directly without shell expansion.
    completed: CompletedProcess[str] = subprocess.run(  # nosec B603 - controlled arguments, not user supplied
        normalized,
        check=False,
        capture_output=resolved_options.capture_output,
        text=True,
        stdin=subprocess.DEVNULL if resolved_options.discard_stdin else None,
    )

    if completed.returncode != 0:
        raise SubprocessExecutionError(
            normalized,
            completed.returncode,
            completed.stdout if isinstance(completed.stdout, str) else None,
            completed.stderr if isinstance(completed.stderr, str) else None,
        )

    return completed


def _signal_group(pgid: int, signum: signal.Signals) -> None:
    """Send ``signum`` to process group ``pgid`` ignoring groups that are already gone."""

    with suppress(ProcessLookupError, PermissionError):
        os.killpg(pgid, signum)


def _wait_unreaped(process: Popen[bytes], timeout: float | None) -> bool:
    """Wait for the group leader to exit without reaping it.

    An exited but unreaped leader keeps its pid, so the group id stays safe to
    signal until :meth:`Popen.wait` collects it.

    Args:
        process: Group leader started with ``start_new_session=True``.
        timeout: Seconds to wait, ``None`` to wait indefinitely.

    Returns:
        bool: ``True`` once the leader has exited, ``False`` on timeout.
    """

    if process.returncode is not None:
        return True
    try:
        if timeout is None:
            os.waitid(os.P_PID, process.pid, os.WEXITED | os.WNOWAIT)
            return True
        deadline = time.monotonic() + timeout
        delay = 0.0005
        while os.waitid(os.P_PID, process.pid, os.WEXITED | os.WNOHANG | os.WNOWAIT) is None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            time.sleep(min(delay, remaining))
            delay = min(delay * 2, _POLL_SECONDS)
    except ChildProcessError:
        # Reaped through another handle on the same process.
        return True
    return True


def terminate_process_group(process: Popen[bytes], *, grace: float = TERMINATE_GRACE_SECONDS) -> None:
    """Terminate the process group led by ``process``.

    The group receives ``SIGTERM`` first and ``SIGKILL`` once ``grace`` seconds
    pass without the leader exiting. ``SIGKILL`` is always sent at the end so
    that descendants outliving the leader do not survive.

    Args:
        process: Group leader started with ``start_new_session=True``.
        grace: Seconds to wait between ``SIGTERM`` and ``SIGKILL``.
    """

    if process.returncode is None:
        # The leader is alive or a zombie here, so its pid still names the group.
        _signal_group(process.pid, signal.SIGTERM)
        if not _wait_unreaped(process, grace):
            LOGGER.debug("process group %s ignored SIGTERM; sending SIGKILL", process.pid)
        _signal_group(process.pid, signal.SIGKILL)
    process.wait()


class ProcessTable:
    """Track live child process groups so that every exit path can kill them.

    Spawning happens under the table lock, so a process is either registered
    before :meth:`close` takes effect or refused afterwards.
    """

    def __init__(self) -> None:
        """Create an empty, open table."""

        self._lock = Lock()
        self._processes: dict[int, Popen[bytes]] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        """Return ``True`` once the table refuses new processes."""

        return self._closed

    def __len__(self) -> int:
        with self._lock:
            return len(self._processes)

    def spawn(self, args: Sequence[str], *, cwd: Path, env: Mapping[str, str]) -> Popen[bytes]:
        """Start ``args`` in a new session and register it.

        Args:
            args: Normalised command line.
            cwd: Working directory for the child.
            env: Complete environment for the child.

        Returns:
            Popen[bytes]: Running process with piped stdout and stderr.

        Raises:
            ProcessTableClosedError: If the table was closed.
            OSError: If the process cannot be started.
        """

        with self._lock:
            if self._closed:
                raise ProcessTableClosedError("run is shutting down; refusing to start new processes")
            # Bandit: argument lists only, no shell expansion.
            process = Popen(  # nosec B603
                list(args),
                cwd=str(cwd),
                env=dict(env),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
            self._processes[process.pid] = process
            return process

    def unregister(self, process: Popen[bytes]) -> None:
        """Forget ``process`` after it has been reaped."""

        with self._lock:
            self._processes.pop(process.pid, None)

    def close(self) -> None:
        """Refuse any further spawns."""

        with self._lock:
            self._closed = True

    def terminate_all(self, *, grace: float = TERMINATE_GRACE_SECONDS) -> int:
        """Kill every tracked process group.

        Args:
            grace: Seconds each group gets between ``SIGTERM`` and ``SIGKILL``.

        Returns:
            int: Number of process groups that were still tracked.
        """

        with self._lock:
            live = list(self._processes.values())
            self._processes.clear()
        for process in live:
            LOGGER.debug("terminating process group %s", process.pid)
            terminate_process_group(process, grace=grace)
        return len(live)


@dataclass(frozen=True, slots=True)
class ProcessCapture:
    """Raw result of an isolated child process."""

    args: tuple[str, ...]
    returncode: int | None
    stdout: bytes
    stderr: bytes
    timed_out: bool
    started_at: datetime
    finished_at: datetime

    @property
    def signalled(self) -> bool:
        """Return ``True`` when the child was terminated by a signal."""

        return self.returncode is not None and self.returncode < 0


def _drain(stream: IO[bytes], sink: bytearray) -> None:
    """Copy ``stream`` into ``sink`` until EOF."""

    with stream:
        for chunk in iter(partial(stream.read1, _READ_CHUNK), b""):  # type: ignore[attr-defined]
            sink.extend(chunk)


def _start_reader(stream: IO[bytes] | None, sink: bytearray, name: str) -> Thread | None:
    """Start a daemon thread draining ``stream`` into ``sink``."""

    if stream is None:
        return None
    reader = Thread(target=_drain, args=(stream, sink), name=name, daemon=True)
    reader.start()
    return reader


def run_isolated(
    args: Sequence[str],
    *,
    cwd: Path,
    env: Mapping[str, str],
    timeout: float | None,
    table: ProcessTable,
) -> ProcessCapture:
    """Run ``args`` in its own process group and capture both output streams.

    Args:
        args: Command and argument sequence to execute.
        cwd: Working directory for the child.
        env: Complete environment for the child.
        timeout: Wall-clock limit in seconds, ``None`` for no limit.
        table: Process table the child is registered with while it runs.

    Returns:
        ProcessCapture: Exit status and raw output. ``returncode`` is ``None``
        when the timeout expired.

    Raises:
        FileNotFoundError: If the executable cannot be resolved on ``PATH``.
        ProcessTableClosedError: If ``table`` was closed.
        OSError: If the process cannot be started.
    """

    normalized = _normalize_args(args)
    started_at = datetime.now(UTC)
    process = table.spawn(normalized, cwd=cwd, env=env)
    stdout = bytearray()
    stderr = bytearray()
    readers = [
        reader
        for reader in (
            _start_reader(process.stdout, stdout, f"stdout-{process.pid}"),
            _start_reader(process.stderr, stderr, f"stderr-{process.pid}"),
        )
        if reader is not None
    ]
    timed_out = False
    try:
        if not _wait_unreaped(process, timeout):
            timed_out = True
            LOGGER.debug("process group %s exceeded %ss timeout", process.pid, timeout)
            terminate_process_group(process)
    finally:
        if process.returncode is None:
            # Descendants that outlive the leader would keep the pipes open.
            _signal_group(process.pid, signal.SIGKILL)
        exit_status = process.wait()
        for reader in readers:
            reader.join(READER_JOIN_SECONDS)
        table.unregister(process)

    return ProcessCapture(
        args=tuple(normalized),
        returncode=None if timed_out else exit_status,
        stdout=bytes(stdout),
        stderr=bytes(stderr),
        timed_out=timed_out,
        started_at=started_at,
        finished_at=datetime.now(UTC),
    )


__all__ = [
    "CommandOptions",
    "ProcessCapture",
    "ProcessTable",
    "ProcessTableClosedError",
    "SubprocessExecutionError",
    "run_command",
    "run_isolated",
    "terminate_process_group",
]
