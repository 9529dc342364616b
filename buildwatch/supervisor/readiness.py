# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

"""Readiness detection for a freshly spawned child.

A child is ready either as soon as it is spawned (no pattern configured)
or when its captured output first matches the ready pattern. When the
pattern is not seen within the timeout, the default ``proceed`` policy
still reports the child as ready so the host is never starved by a
missing or misconfigured pattern; the ``fail`` policy raises instead.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Literal

from buildwatch.exceptions import (
    PreReadyExitError,
    ReadinessTimeoutError,
    StartCancelledError,
)
from buildwatch.supervisor.process_handle import ExitInfo, ProcessHandle, ReadyVia

logger = logging.getLogger(__name__)

TimeoutPolicy = Literal["proceed", "fail"]

# Characters carried over between chunks so a match split across two
# reads is still found.
_TAIL_CHARS = 256


@dataclass(frozen=True)
class ReadinessOutcome:
    via: ReadyVia
    elapsed: float
    matched_text: str | None = None

    @property
    def timed_out(self) -> bool:
        return self.via is ReadyVia.TIMED_OUT


class ReadinessMonitor:
    """Decide when one child process is ready.

    Usage::

        monitor = ReadinessMonitor(re.compile("Server started"), 10.0)
        monitor.attach(handle)      # before handle.spawn()
        await handle.spawn()
        outcome = await monitor.wait()
    """

    def __init__(
        self,
        pattern: re.Pattern[str] | str | None,
        timeout: float,
        *,
        timeout_policy: TimeoutPolicy = "proceed",
    ) -> None:
        if isinstance(pattern, str):
            pattern = re.compile(pattern)
        self.pattern = pattern
        self.timeout = timeout
        self.timeout_policy = timeout_policy

        self._handle: ProcessHandle | None = None
        self._future: asyncio.Future[ReadinessOutcome] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._tail = ""
        self._started = 0.0

    @property
    def needs_output(self) -> bool:
        """Whether the child's output must be captured for this monitor."""
        return self.pattern is not None

    def attach(self, handle: ProcessHandle) -> None:
        """Register on *handle*. Must happen before the handle is spawned."""
        loop = asyncio.get_running_loop()
        self._handle = handle
        self._future = loop.create_future()
        self._started = loop.time()
        if self.pattern is not None:
            handle.add_output_listener(self._on_output)
        handle.add_exit_listener(self._on_exit)

    async def wait(self) -> ReadinessOutcome:
        """Wait until the child is ready.

        Raises:
            PreReadyExitError: The child exited before it was ready.
            StartCancelledError: The child was stopped on purpose first.
            ReadinessTimeoutError: Timeout under the ``fail`` policy.
        """
        if self._handle is None or self._future is None:
            raise RuntimeError("ReadinessMonitor.wait() called before attach()")

        if self.pattern is None:
            if not self._future.done():
                self._resolve(ReadyVia.SPAWNED)
        elif not self._future.done():
            logger.info(
                "Waiting for ready pattern %r in output (timeout: %.0fms)...",
                self.pattern.pattern, self.timeout * 1000,
            )
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self.timeout, self._on_timeout)

        try:
            return await self._future
        finally:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._handle.remove_output_listener(self._on_output)
            self._handle.remove_exit_listener(self._on_exit)

    # ── Callbacks ───────────────────────────────────────────────────

    def _elapsed(self) -> float:
        return asyncio.get_running_loop().time() - self._started

    def _resolve(self, via: ReadyVia, matched: str | None = None) -> None:
        assert self._handle is not None and self._future is not None
        self._handle.mark_ready(via)
        self._future.set_result(
            ReadinessOutcome(via=via, elapsed=self._elapsed(), matched_text=matched),
        )

    def _on_output(self, _stream: str, text: str) -> None:
        if self._future is None or self._future.done() or self.pattern is None:
            return
        window = self._tail + text
        match = self.pattern.search(window)
        if match:
            logger.info(
                "Process (PID %s) is ready (matched pattern).",
                self._handle.pid if self._handle else "?",
            )
            self._resolve(ReadyVia.MATCHED, match.group(0))
            return
        self._tail = window[-_TAIL_CHARS:]

    def _on_timeout(self) -> None:
        self._timer = None
        if self._future is None or self._future.done():
            return
        pid = self._handle.pid if self._handle else "?"
        if self.timeout_policy == "fail":
            logger.error(
                "Timeout: process (PID %s) did not emit ready pattern within %.0fms.",
                pid, self.timeout * 1000,
            )
            self._future.set_exception(ReadinessTimeoutError(
                f"Ready pattern {self.pattern.pattern!r} not seen within "
                f"{self.timeout * 1000:.0f}ms",
            ))
            return
        logger.warning(
            "Timeout: process (PID %s) did not emit ready pattern within %.0fms; "
            "continuing as ready.",
            pid, self.timeout * 1000,
        )
        self._resolve(ReadyVia.TIMED_OUT)

    def _on_exit(self, handle: ProcessHandle, info: ExitInfo) -> None:
        if self._future is None or self._future.done():
            return
        if info.expected:
            self._future.set_exception(StartCancelledError(
                f"Process (PID {handle.pid}) was stopped before it became ready",
            ))
            return
        logger.warning(
            "Process (PID %s) exited before becoming ready (code %s, signal %s).",
            handle.pid, info.returncode, info.signal,
        )
        self._future.set_exception(PreReadyExitError(
            f"Process exited with code {info.returncode}, signal {info.signal} "
            "before it became ready",
            returncode=info.returncode,
            signal=info.signal,
        ))
