"""
Process Supervisor - owns the single supervised child process.
"""

# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from buildwatch.config.models import RestartConfig
from buildwatch.exceptions import PipelineBusyError
from buildwatch.supervisor.process_handle import ExitInfo, ProcessHandle, ProcessState
from buildwatch.supervisor.readiness import ReadinessMonitor, ReadinessOutcome

logger = logging.getLogger(__name__)


# ── Configuration ──────────────────────────────────────────────────

@dataclass
class RestartPolicy:
    """Crash recovery policy."""
    crash_delay_sec: float = 1.0           # Delay after a post-ready crash
    retry_delay_sec: float = 5.0           # Fixed delay between failed attempts
    max_retries: int | None = None         # None = retry indefinitely

    @classmethod
    def from_config(cls, config: RestartConfig) -> RestartPolicy:
        return cls(
            crash_delay_sec=config.crash_delay_ms / 1000,
            retry_delay_sec=config.retry_delay_ms / 1000,
            max_retries=config.max_retries,
        )


class SupervisorPhase(Enum):
    """Coarse view of the supervisor, derived from its flags."""
    IDLE = "idle"            # No build, no live child
    BUILDING = "building"    # A pipeline run is in flight
    STARTING = "starting"    # Child spawned, not ready yet
    RUNNING = "running"      # Child ready
    KILLING = "killing"      # Termination of the child in progress


# ── Process Supervisor ─────────────────────────────────────────────

class ProcessSupervisor:
    """
    Supervisor for the single child process of a watch session.

    Responsibilities:
    - Spawn the child and track it as ``active_child`` (at most one)
    - Stop it with SIGTERM, escalating to SIGKILL after the grace window
    - Classify exits as intentional, crash (after ready) or startup failure
    - Hold the ``build_in_flight`` guard used by the pipeline runner
    """

    def __init__(
        self,
        *,
        log_path: Path | None = None,
        kill_grace_sec: float = 3.0,
        restart_policy: RestartPolicy | None = None,
    ):
        self.log_path = log_path
        self.kill_grace_sec = kill_grace_sec
        self.restart_policy = restart_policy or RestartPolicy()

        self.active_child: ProcessHandle | None = None
        self._build_in_flight = False
        self._build_idle = asyncio.Event()
        self._build_idle.set()
        self._build_listeners: list[Callable[[], None]] = []
        self._crash_timer: asyncio.TimerHandle | None = None
        self._shutdown = False

        # Called with the crashed handle after ``crash_delay_sec``
        # (set by the watch session to the restart loop).
        self.on_crash: Callable[[ProcessHandle], None] | None = None

    # ── State ───────────────────────────────────────────────────────

    @property
    def build_in_flight(self) -> bool:
        return self._build_in_flight

    @property
    def kill_in_progress(self) -> bool:
        child = self.active_child
        return child is not None and child.state is ProcessState.STOPPING

    @property
    def phase(self) -> SupervisorPhase:
        if self.kill_in_progress:
            return SupervisorPhase.KILLING
        if self._build_in_flight:
            return SupervisorPhase.BUILDING
        child = self.active_child
        if child is None or not child.is_alive():
            return SupervisorPhase.IDLE
        if child.state is ProcessState.READY:
            return SupervisorPhase.RUNNING
        return SupervisorPhase.STARTING

    @contextmanager
    def building(self) -> Iterator[None]:
        """Hold the build-in-flight guard for one pipeline run.

        The flag is set before the first suspension point of the run and
        cleared on every exit path, including exceptions and cancellation.
        """
        if self._build_in_flight:
            raise PipelineBusyError("A pipeline run is already in flight")
        self._build_in_flight = True
        self._build_idle.clear()
        try:
            yield
        finally:
            self._build_in_flight = False
            self._build_idle.set()
            for listener in list(self._build_listeners):
                try:
                    listener()
                except Exception:
                    logger.exception("Build-release listener failed")

    def add_build_listener(self, callback: Callable[[], None]) -> None:
        """Call *callback* every time the build guard is released."""
        self._build_listeners.append(callback)

    async def wait_build_idle(self) -> None:
        """Return once no pipeline run holds the build guard."""
        while self._build_in_flight:
            await self._build_idle.wait()

    # ── Start ───────────────────────────────────────────────────────

    async def start(
        self,
        command: Sequence[str],
        *,
        capture_output: bool,
        monitor: ReadinessMonitor | None = None,
    ) -> ProcessHandle:
        """Spawn *command* and make it the active child.

        Raises:
            SpawnError: The process could not be started; ``active_child``
                is left untouched.
        """
        handle = ProcessHandle(
            command,
            capture_output=capture_output,
            log_path=self.log_path if capture_output else None,
        )
        if monitor is not None:
            monitor.attach(handle)
        handle.add_exit_listener(self._on_child_exit)

        await handle.spawn()

        previous = self.active_child
        if previous is not None and previous is not handle and previous.is_alive():
            logger.warning(
                "Overwriting an existing tracked process (PID %s) with new one (PID %s).",
                previous.pid, handle.pid,
            )
        self.active_child = handle
        return handle

    async def launch(
        self,
        command: Sequence[str],
        monitor: ReadinessMonitor,
    ) -> tuple[ProcessHandle, ReadinessOutcome]:
        """Start *command* and wait until *monitor* reports it ready.

        Raises:
            SpawnError, PreReadyExitError, StartCancelledError,
            ReadinessTimeoutError: the start's failure outcomes.
        """
        handle = await self.start(
            command, capture_output=monitor.needs_output, monitor=monitor,
        )
        outcome = await monitor.wait()
        return handle, outcome

    # ── Stop ────────────────────────────────────────────────────────

    async def stop(self) -> None:
        """
        Stop the active child.

        Shutdown flow:
        1. Send SIGTERM (a failed send means the child is already gone)
        2. If not exited after ``kill_grace_sec``, send SIGKILL once
        3. Resolve only once the exit has actually been observed
        """
        handle = self.active_child
        if handle is None:
            return

        if handle.state is ProcessState.STOPPING or not handle.is_alive():
            # Another stop() already signalled it, or it is exiting on
            # its own; either way the exit watcher will settle it.
            await handle.wait_closed()
            self._finish_stop(handle, "already exiting")
            return

        pid = handle.pid
        handle.mark_stopping()
        logger.info("Attempting to stop process (PID: %s)...", pid)

        logger.info("Sending SIGTERM to process (PID: %s).", pid)
        if not handle.terminate():
            logger.info(
                "Failed to send SIGTERM to process (PID: %s). It might have already exited.",
                pid,
            )
            self._finish_stop(handle, "SIGTERM send failed, assumed exited")
            return

        loop = asyncio.get_running_loop()
        kill_timer = loop.call_later(self.kill_grace_sec, self._escalate, handle)
        try:
            info = await handle.wait_closed()
        finally:
            kill_timer.cancel()
        reason = (
            f"exited with code {info.returncode}, signal {info.signal}"
            if info else "exited"
        )
        self._finish_stop(handle, reason)

    def _escalate(self, handle: ProcessHandle) -> None:
        if not handle.is_alive():
            return
        logger.warning(
            "Process (PID: %s) did not respond to SIGTERM. Sending SIGKILL...",
            handle.pid,
        )
        handle.kill()

    def _finish_stop(self, handle: ProcessHandle, reason: str) -> None:
        handle.clear_listeners()
        if self.active_child is handle:
            self.active_child = None
        logger.info("Process (PID: %s) has been dealt with (%s).", handle.pid, reason)

    # ── Exit classification ─────────────────────────────────────────

    def _on_child_exit(self, handle: ProcessHandle, info: ExitInfo) -> None:
        if handle is not self.active_child:
            if not info.expected:
                logger.info(
                    "A process instance (PID %s) exited (code %s, signal %s), "
                    "but was not the primary tracked process.",
                    handle.pid, info.returncode, info.signal,
                )
            return

        if info.expected:
            # stop() clears the slot once it observes the exit
            return

        self.active_child = None
        if not info.was_ready:
            # Startup failure: surfaced to the waiting pipeline by the
            # readiness monitor.
            return

        logger.warning(
            "Process (PID %s) exited unexpectedly with code %s, signal %s.",
            handle.pid, info.returncode, info.signal,
        )
        if self._shutdown or self.on_crash is None:
            return
        delay = self.restart_policy.crash_delay_sec
        logger.info("Attempting to restart the process in %.1fs...", delay)
        if self._crash_timer is not None:
            self._crash_timer.cancel()
        loop = asyncio.get_running_loop()
        self._crash_timer = loop.call_later(delay, self._fire_crash, handle)

    def _fire_crash(self, handle: ProcessHandle) -> None:
        self._crash_timer = None
        if self._shutdown or self.on_crash is None:
            return
        self.on_crash(handle)

    # ── Shutdown / status ───────────────────────────────────────────

    async def shutdown(self) -> None:
        """Stop the child and suppress any pending crash recovery."""
        self._shutdown = True
        if self._crash_timer is not None:
            self._crash_timer.cancel()
            self._crash_timer = None
        await self.stop()

    def snapshot(self) -> dict[str, Any]:
        """Return a JSON-friendly view of the supervisor state."""
        child = self.active_child
        return {
            "phase": self.phase.value,
            "build_in_flight": self._build_in_flight,
            "kill_in_progress": self.kill_in_progress,
            "pid": child.pid if child else None,
            "state": child.state.value if child else None,
            "ready_via": (
                child.stats.ready_via.value
                if child and child.stats.ready_via else None
            ),
            "started_at": child.stats.started_at.isoformat() if child else None,
            "command": child.display_command if child else None,
        }
