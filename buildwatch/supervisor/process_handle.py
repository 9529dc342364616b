"""
Process handle for the supervised child process.
"""

# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import codecs
import logging
import shlex
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import IO

from buildwatch.exceptions import SpawnError

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 4096
# How long to keep draining pipes after exit (a grandchild may hold them open)
_DRAIN_TIMEOUT_SEC = 1.0


# ── Process State ──────────────────────────────────────────────────

class ProcessState(Enum):
    """State of the child process."""
    STARTING = "starting"       # Spawned, readiness not yet confirmed
    READY = "ready"             # Readiness confirmed (or timed out)
    STOPPING = "stopping"       # Intentional termination requested
    TERMINATED = "terminated"   # Exit observed


class ReadyVia(Enum):
    """How readiness was established."""
    SPAWNED = "spawned"         # No pattern configured
    MATCHED = "matched"         # Ready pattern seen in output
    TIMED_OUT = "timed_out"     # Pattern not seen in time, treated as ready


@dataclass
class ProcessStats:
    """Process statistics."""
    started_at: datetime
    ready_at: datetime | None = None
    ready_via: ReadyVia | None = None
    stopped_at: datetime | None = None
    exit_code: int | None = None


@dataclass(frozen=True)
class ExitInfo:
    """What was known about the child at the moment its exit was observed."""
    returncode: int | None
    expected: bool      # exit followed an intentional stop request
    was_ready: bool     # child had reached READY before exiting

    @property
    def signal(self) -> int | None:
        if self.returncode is not None and self.returncode < 0:
            return -self.returncode
        return None


OutputListener = Callable[[str, str], None]
ExitListener = Callable[["ProcessHandle", ExitInfo], None]


# ── Process Handle ──────────────────────────────────────────────────

class ProcessHandle:
    """
    Handle for one spawned child process.

    Owns the child's output capture for its whole lifetime: when
    ``capture_output`` is set, stdout and stderr are piped, appended to
    ``log_path`` and fanned out to output listeners. The log file is
    opened once per child and closed exactly once, after the exit has
    been observed and the pipes drained.
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        capture_output: bool = False,
        log_path: Path | None = None,
    ):
        if not command:
            raise ValueError("command must not be empty")
        self.command = list(command)
        self.capture_output = capture_output
        self.log_path = log_path

        self.state = ProcessState.STARTING
        self.process: asyncio.subprocess.Process | None = None
        self.stats = ProcessStats(started_at=datetime.now())
        self.exit_info: ExitInfo | None = None

        self._log_file: IO[str] | None = None
        self._output_listeners: list[OutputListener] = []
        self._exit_listeners: list[ExitListener] = []
        self._pumps: list[asyncio.Task] = []
        self._exit_task: asyncio.Task | None = None
        self._closed = asyncio.Event()

    def __repr__(self) -> str:
        return f"<ProcessHandle pid={self.pid} state={self.state.value}>"

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process else None

    @property
    def display_command(self) -> str:
        return shlex.join(self.command)

    # ── Listeners ───────────────────────────────────────────────────

    def add_output_listener(self, listener: OutputListener) -> None:
        self._output_listeners.append(listener)

    def remove_output_listener(self, listener: OutputListener) -> None:
        if listener in self._output_listeners:
            self._output_listeners.remove(listener)

    def add_exit_listener(self, listener: ExitListener) -> None:
        self._exit_listeners.append(listener)

    def remove_exit_listener(self, listener: ExitListener) -> None:
        if listener in self._exit_listeners:
            self._exit_listeners.remove(listener)

    def clear_listeners(self) -> None:
        """Detach every listener so no stale callback fires later."""
        self._output_listeners.clear()
        self._exit_listeners.clear()

    # ── Lifecycle ───────────────────────────────────────────────────

    async def spawn(self) -> None:
        """
        Spawn the child process.

        Raises:
            SpawnError: The executable could not be started.
        """
        if self.process is not None:
            raise RuntimeError(f"Process already spawned (PID {self.pid})")

        stdio = asyncio.subprocess.PIPE if self.capture_output else None
        if self.capture_output:
            self._open_log()

        logger.debug("Command: %s", self.display_command)
        try:
            self.process = await asyncio.create_subprocess_exec(
                *self.command,
                stdout=stdio,
                stderr=stdio,
            )
        except OSError as e:
            logger.error("Failed to start process %s: %s", self.command[0], e)
            self.state = ProcessState.TERMINATED
            self._close_log()
            self._closed.set()
            raise SpawnError(f"Failed to start {self.command[0]}: {e}") from e

        self.stats = ProcessStats(started_at=datetime.now())
        logger.info("Process spawned (PID %s): %s", self.pid, self.display_command)

        if self.capture_output:
            self._pumps = [
                asyncio.create_task(self._pump(self.process.stdout, "stdout")),
                asyncio.create_task(self._pump(self.process.stderr, "stderr")),
            ]
        self._exit_task = asyncio.create_task(self._watch_exit())

    def mark_ready(self, via: ReadyVia) -> bool:
        """Move STARTING -> READY. Returns False if the child is past that."""
        if self.state is not ProcessState.STARTING:
            return False
        self.state = ProcessState.READY
        self.stats.ready_at = datetime.now()
        self.stats.ready_via = via
        return True

    def mark_stopping(self) -> None:
        """Flag an intentional termination so the exit is not a crash."""
        if self.state is not ProcessState.TERMINATED:
            self.state = ProcessState.STOPPING

    def terminate(self) -> bool:
        """Send SIGTERM. Returns False if the process was already gone."""
        if not self.process:
            return False
        try:
            self.process.terminate()
        except ProcessLookupError:
            return False
        return True

    def kill(self) -> bool:
        """Send SIGKILL. Returns False if the process was already gone."""
        if not self.process:
            return False
        try:
            self.process.kill()
        except ProcessLookupError:
            return False
        return True

    def is_alive(self) -> bool:
        """Check if process is alive."""
        if not self.process or self.state is ProcessState.TERMINATED:
            return False
        return self.process.returncode is None

    async def wait_closed(self) -> ExitInfo | None:
        """Wait until the exit has been observed and fully processed."""
        await self._closed.wait()
        return self.exit_info

    # ── Internals ───────────────────────────────────────────────────

    def _open_log(self) -> None:
        if self.log_path is None:
            return
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            self._log_file = open(self.log_path, "a", encoding="utf-8")  # noqa: SIM115
            logger.info("Redirecting process output to %s", self.log_path)
        except OSError as e:
            logger.warning("Cannot open process log %s: %s", self.log_path, e)
            self._log_file = None

    def _close_log(self) -> None:
        if self._log_file is None:
            return
        try:
            self._log_file.close()
        except OSError:
            logger.debug("Failed to close process log", exc_info=True)
        self._log_file = None

    def _write_log(self, text: str) -> None:
        if self._log_file is None:
            return
        try:
            self._log_file.write(text)
            self._log_file.flush()
        except OSError:
            logger.debug("Failed to write process log", exc_info=True)

    async def _pump(self, stream: asyncio.StreamReader | None, name: str) -> None:
        """Forward one output stream to the log sink and the listeners."""
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(_CHUNK_SIZE)
            text = decoder.decode(chunk, final=not chunk)
            if text:
                self._write_log(text)
                for listener in list(self._output_listeners):
                    try:
                        listener(name, text)
                    except Exception:
                        logger.exception("Output listener failed (PID %s)", self.pid)
            if not chunk:
                break

    async def _watch_exit(self) -> None:
        assert self.process is not None
        returncode = await self.process.wait()

        if self._pumps:
            _done, pending = await asyncio.wait(self._pumps, timeout=_DRAIN_TIMEOUT_SEC)
            for task in pending:
                task.cancel()
        self._close_log()

        info = ExitInfo(
            returncode=returncode,
            expected=self.state is ProcessState.STOPPING,
            was_ready=self.stats.ready_at is not None,
        )
        self.exit_info = info
        self.stats.exit_code = returncode
        self.stats.stopped_at = datetime.now()
        self.state = ProcessState.TERMINATED
        logger.debug(
            "Process exit observed (PID %s, code=%s, expected=%s)",
            self.pid, returncode, info.expected,
        )

        for listener in list(self._exit_listeners):
            try:
                listener(self, info)
            except Exception:
                logger.exception("Exit listener failed (PID %s)", self.pid)
        self._closed.set()
