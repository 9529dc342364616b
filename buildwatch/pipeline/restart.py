# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

"""Crash recovery for a child that died after it became ready.

The loop re-runs the full pipeline until it succeeds, sleeping a fixed
delay between failed attempts. There is no ceiling unless
``RestartPolicy.max_retries`` is set. Recovery is invisible to the host:
failures are logged, never sent as error notifications.

A crash that lands while another pipeline holds the build guard waits for
that run. If it left a live process behind, recovery is already done;
otherwise (pre-commands only, or a failed build) the loop takes over.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from contextlib import suppress

from buildwatch.exceptions import CommandError, PipelineBusyError, StartCancelledError
from buildwatch.logging_config import bind_pipeline_context
from buildwatch.pipeline.requests import BuildRequest, PipelineKind
from buildwatch.pipeline.runner import PipelineRunner
from buildwatch.supervisor.manager import RestartPolicy
from buildwatch.supervisor.process_handle import ProcessHandle

logger = logging.getLogger(__name__)


class RestartLoop:
    """Iterative retry of the full pipeline after a post-ready crash."""

    def __init__(self, runner: PipelineRunner, policy: RestartPolicy | None = None) -> None:
        self.runner = runner
        self.policy = policy or RestartPolicy()
        self.attempts = 0
        self._task: asyncio.Task | None = None
        self._cancelled = False
        self._waiting = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self, handle: ProcessHandle | None = None) -> None:
        """Start recovering, unless a recovery loop is already running."""
        if self.running:
            logger.info("Restart already in progress; ignoring crash of PID %s",
                        handle.pid if handle else "?")
            return
        self._cancelled = False
        self._task = asyncio.create_task(self._run())

    def cancel(self) -> None:
        """Stop the loop.

        A loop that is sleeping, or waiting for another pipeline to release
        the build guard, is cancelled at once; an attempt that is already
        building runs to completion and the loop stops after it.
        """
        if not self.running:
            return
        self._cancelled = True
        if self._waiting and self._task is not None:
            self._task.cancel()

    async def aclose(self) -> None:
        self.cancel()
        if self._task is not None:
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _wait(self, aw: Awaitable[None]) -> None:
        self._waiting = True
        try:
            await aw
        finally:
            self._waiting = False

    async def _run(self) -> None:
        bind_pipeline_context(PipelineKind.FULL.value, "crash recovery")
        logger.info("Attempting to restart after unexpected exit...")
        self.attempts = 0

        while not self._cancelled:
            if self.runner.busy:
                logger.info("A pipeline is in flight; waiting for it before recovering")
                await self._wait(self.runner.wait_idle())
                if self.runner.child_alive:
                    logger.info("The finished pipeline started a new process; recovery done")
                    return
                continue

            self.attempts += 1
            try:
                await self.runner.deploy(BuildRequest.crash_recovery())
            except PipelineBusyError:
                logger.info("Lost the build guard to another pipeline; waiting for it")
                self.attempts -= 1
                await self._wait(self.runner.wait_idle())
                continue
            except StartCancelledError as e:
                logger.info("Restart superseded: %s", e)
                return
            except Exception as e:
                logger.error("Error during restart (attempt %d): %s", self.attempts, e)
                if isinstance(e, CommandError) and e.detail():
                    logger.error("%s", e.detail())
                max_retries = self.policy.max_retries
                if max_retries is not None and self.attempts >= max_retries:
                    logger.error("Giving up on restart after %d attempts", self.attempts)
                    return
                if self._cancelled:
                    return
                logger.info(
                    "Scheduling another restart attempt in %.0f seconds...",
                    self.policy.retry_delay_sec,
                )
                await self._wait(asyncio.sleep(self.policy.retry_delay_sec))
                continue

            logger.info("Process restarted and reported ready (or timed out).")
            return
