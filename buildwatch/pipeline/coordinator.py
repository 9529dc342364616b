# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

"""Trigger coordination: debounce change events and route them to a pipeline.

Changes under a skip path run the reduced pipeline (pre-commands only);
everything else runs the full pipeline. Each pipeline class has its own
debounce timer and only the last trigger inside a window survives.
Pipelines never overlap: a timer that fires while a run is in flight is
deferred and re-armed once the build guard is released, whether the
guard was held by this coordinator or by crash recovery.
"""

from __future__ import annotations

import asyncio
import logging
import os
import traceback
from collections.abc import Coroutine
from pathlib import Path
from typing import TYPE_CHECKING, Any

from buildwatch.config.models import BuildWatchConfig
from buildwatch.exceptions import (
    BuildWatchError,
    CommandError,
    PipelineBusyError,
    StartCancelledError,
)
from buildwatch.logging_config import bind_pipeline_context
from buildwatch.notification.notifier import HostNotifier
from buildwatch.pipeline.requests import BuildRequest, ChangeKind, PipelineKind
from buildwatch.pipeline.runner import PipelineRunner

if TYPE_CHECKING:
    from buildwatch.pipeline.restart import RestartLoop

logger = logging.getLogger(__name__)


class TriggerCoordinator:
    """Turn raw change events into serialized, debounced pipeline runs."""

    def __init__(
        self,
        config: BuildWatchConfig,
        runner: PipelineRunner,
        notifier: HostNotifier,
        *,
        restart_loop: RestartLoop | None = None,
        cwd: Path | None = None,
    ) -> None:
        self.config = config
        self.runner = runner
        self.notifier = notifier
        self.restart_loop = restart_loop
        self.cwd = cwd or Path.cwd()

        self._delay = config.build_delay_ms / 1000
        self._skip_prefixes = [self._dir_prefix(self.cwd / p) for p in config.skip_paths]

        self._timers: dict[PipelineKind, asyncio.TimerHandle] = {}
        self._pending: dict[PipelineKind, BuildRequest] = {}
        self._deferred: dict[PipelineKind, BuildRequest] = {}
        self._active: PipelineKind | None = None
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

        runner.supervisor.add_build_listener(self._on_build_released)

    # ── Introspection ───────────────────────────────────────────────

    @property
    def active(self) -> PipelineKind | None:
        """The pipeline class currently executing, if any."""
        return self._active

    def pending(self) -> dict[PipelineKind, BuildRequest]:
        """Requests waiting on a debounce timer."""
        return dict(self._pending)

    def deferred(self) -> dict[PipelineKind, BuildRequest]:
        """Requests whose timer fired while another run was in flight."""
        return dict(self._deferred)

    # ── Routing ─────────────────────────────────────────────────────

    @staticmethod
    def _dir_prefix(path: Path) -> str:
        return str(path.resolve()).rstrip(os.sep) + os.sep

    def is_skipped(self, path: Path | str) -> bool:
        """Whether *path* lies under a configured skip path.

        Both sides are resolved to absolute paths and compared with a
        trailing separator so ``foobar/x.go`` never matches skip ``foo``.
        """
        if not self._skip_prefixes:
            return False
        candidate = self._dir_prefix(self.cwd / Path(path))
        return any(candidate.startswith(prefix) for prefix in self._skip_prefixes)

    def _display(self, path: Path) -> str:
        try:
            return str(path.resolve().relative_to(self.cwd.resolve()))
        except ValueError:
            return str(path)

    def on_change(self, kind: ChangeKind, path: Path | str) -> None:
        """Entry point for the change source (must run on the loop thread)."""
        path = Path(path)
        request = BuildRequest.for_change(kind, path)
        if self.is_skipped(path):
            logger.info("File %s in skip path: %s", kind.value, self._display(path))
            self.submit(PipelineKind.REDUCED, request)
        else:
            logger.info("File %s: %s", kind.value, self._display(path))
            self.submit(PipelineKind.FULL, request)

    def request_rebuild(self) -> None:
        """Manual full rebuild, debounced like a change."""
        self.submit(PipelineKind.FULL, BuildRequest.manual())

    def schedule_initial(self) -> None:
        """Schedule the one-off startup run, if configured."""
        if not self.config.run_initial_build:
            return
        logger.info("Performing initial build and run...")
        self._schedule(
            PipelineKind.FULL,
            BuildRequest.initial(),
            delay=self.config.initial_build_delay_ms / 1000,
        )

    def submit(self, pipeline: PipelineKind, request: BuildRequest) -> None:
        if self._closed:
            return
        if pipeline is PipelineKind.FULL and self.runner.busy:
            # Stop wasted work now; debounce restarts once the kill is done.
            logger.info("Pipeline in flight; stopping the active process before rescheduling")
            self._spawn(self._stop_then_schedule(request))
            return
        self._schedule(pipeline, request)

    async def _stop_then_schedule(self, request: BuildRequest) -> None:
        try:
            await self.runner.supervisor.stop()
        finally:
            self._schedule(PipelineKind.FULL, request)

    # ── Debounce ────────────────────────────────────────────────────

    def _schedule(
        self,
        pipeline: PipelineKind,
        request: BuildRequest,
        *,
        delay: float | None = None,
    ) -> None:
        if self._closed:
            return
        timer = self._timers.pop(pipeline, None)
        if timer is not None:
            timer.cancel()
        self._pending[pipeline] = request
        loop = asyncio.get_running_loop()
        self._timers[pipeline] = loop.call_later(
            self._delay if delay is None else delay, self._fire, pipeline,
        )

    def _fire(self, pipeline: PipelineKind) -> None:
        self._timers.pop(pipeline, None)
        request = self._pending.pop(pipeline, None)
        if request is None or self._closed:
            return
        if self._active is not None or self.runner.busy:
            logger.info("Pipeline still in flight; deferring %s run", pipeline.value)
            self._deferred[pipeline] = request
            return
        self._active = pipeline
        self._spawn(self._execute(pipeline, request))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _execute(self, pipeline: PipelineKind, request: BuildRequest) -> None:
        bind_pipeline_context(pipeline.value, request.describe())
        try:
            if pipeline is PipelineKind.FULL:
                await self.rebuild_and_restart(request)
            else:
                await self.run_reduced(request)
        finally:
            self._active = None
            self._rearm_deferred()

    def _rearm_deferred(self) -> None:
        for kind, deferred in list(self._deferred.items()):
            del self._deferred[kind]
            self._schedule(kind, deferred)

    def _on_build_released(self) -> None:
        # Crash recovery holds the guard without going through _execute.
        if self._active is None and self._deferred:
            logger.info("Build guard released; re-arming deferred runs")
            self._rearm_deferred()

    # ── Pipelines ───────────────────────────────────────────────────

    async def rebuild_and_restart(self, request: BuildRequest) -> None:
        """Full pipeline followed by a host reload, or one host error."""
        logger.info("Rebuilding and restarting (%s)...", request.describe())
        if self.restart_loop is not None:
            self.restart_loop.cancel()

        try:
            result = await self.runner.deploy(request)
        except PipelineBusyError:
            logger.info("Another pipeline holds the build; deferring this run")
            self._deferred[PipelineKind.FULL] = request
            return
        except StartCancelledError as e:
            logger.info("%s; a newer run supersedes this one", e)
            return
        except BuildWatchError as e:
            await self._report_failure("Error during rebuild/restart/ready-check", e)
            return
        except Exception as e:
            logger.exception("Unexpected error during rebuild/restart")
            await self._report_failure("Unexpected error during rebuild/restart", e)
            return

        if result.handle is None:
            logger.info("Build finished without running; triggering reload.")
        else:
            logger.info(
                "Process reported ready (%s). Triggering reload.",
                result.outcome.via.value if result.outcome else "unknown",
            )
        await self._notify_reload()

    async def run_reduced(self, request: BuildRequest) -> None:
        """Pre-commands only, followed by a host reload, or one host error."""
        logger.info("Running pre-commands only (%s)...", request.describe())
        try:
            await self.runner.run_pre_only(request)
        except PipelineBusyError:
            logger.info("Another pipeline holds the build; deferring this run")
            self._deferred[PipelineKind.REDUCED] = request
            return
        except BuildWatchError as e:
            await self._report_failure("Error during pre-commands", e)
            return
        except Exception as e:
            logger.exception("Unexpected error during pre-commands")
            await self._report_failure("Unexpected error during pre-commands", e)
            return
        await self._notify_reload()

    # ── Host notification ───────────────────────────────────────────

    async def _report_failure(self, context: str, exc: BaseException) -> None:
        if isinstance(exc, CommandError):
            stack = exc.detail()
        else:
            stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        logger.error("%s: %s", context, exc)
        try:
            await self.notifier.error(
                f"{context}: {exc}", stack=stack, source_id=self.config.source,
            )
        except Exception:
            logger.warning("Failed to deliver error notification to host", exc_info=True)

    async def _notify_reload(self) -> None:
        try:
            await self.notifier.reload()
        except Exception:
            logger.warning("Failed to deliver reload notification to host", exc_info=True)

    # ── Shutdown ────────────────────────────────────────────────────

    def cancel_pending(self) -> None:
        """Drop armed timers and deferred runs; no new run will start."""
        self._closed = True
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._pending.clear()
        self._deferred.clear()

    async def close(self) -> None:
        """Cancel timers and wait for the running pipeline to settle."""
        self.cancel_pending()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
