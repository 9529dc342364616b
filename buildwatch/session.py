# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

"""One watch session: change source, coordinator, pipeline and supervisor."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from typing import Any

from buildwatch.config.models import BuildWatchConfig
from buildwatch.notification.notifier import HostNotifier
from buildwatch.pipeline.build import BuildPipeline
from buildwatch.pipeline.coordinator import TriggerCoordinator
from buildwatch.pipeline.restart import RestartLoop
from buildwatch.pipeline.runner import PipelineRunner
from buildwatch.supervisor.manager import ProcessSupervisor, RestartPolicy
from buildwatch.watcher import SourceWatcher

logger = logging.getLogger(__name__)


class WatchSession:
    """Own every component of a running watch and tear them down in order."""

    def __init__(
        self,
        config: BuildWatchConfig,
        notifier: HostNotifier,
        *,
        cwd: Path | None = None,
    ) -> None:
        self.config = config
        self.notifier = notifier
        self.cwd = (cwd or Path.cwd()).resolve()

        policy = RestartPolicy.from_config(config.restart)
        self.supervisor = ProcessSupervisor(
            log_path=Path(config.log_file),
            kill_grace_sec=config.kill_grace_ms / 1000,
            restart_policy=policy,
        )
        self.pipeline = BuildPipeline(config, cwd=self.cwd)
        self.runner = PipelineRunner(config, self.supervisor, self.pipeline)
        self.restart_loop = RestartLoop(self.runner, policy)
        self.supervisor.on_crash = self.restart_loop.trigger

        self.coordinator = TriggerCoordinator(
            config, self.runner, notifier,
            restart_loop=self.restart_loop, cwd=self.cwd,
        )
        roots = [self.cwd / p for p in (*config.watch_paths, *config.skip_paths)]
        self.watcher = SourceWatcher(roots, config.watch_patterns, self.coordinator.on_change)
        self._started = False

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        logger.info(
            "Watch session starting in %s (source=%s, output=%s)",
            self.cwd, self.config.source, self.config.output_binary,
        )
        self.watcher.start(asyncio.get_running_loop())
        self.coordinator.schedule_initial()

    async def stop(self) -> None:
        """Stop watching, cancel pending work and terminate the child."""
        if not self._started:
            return
        self._started = False
        logger.info("Shutting down watch session...")
        self.watcher.stop()
        self.restart_loop.cancel()
        self.coordinator.cancel_pending()
        await self.supervisor.stop()
        await self.coordinator.close()
        await self.restart_loop.aclose()
        await self.supervisor.shutdown()
        logger.info("Watch session stopped")

    def request_rebuild(self) -> None:
        self.coordinator.request_rebuild()

    def snapshot(self) -> dict[str, Any]:
        return {
            **self.supervisor.snapshot(),
            "restart_running": self.restart_loop.running,
            "restart_attempts": self.restart_loop.attempts,
            "active_pipeline": (
                self.coordinator.active.value if self.coordinator.active else None
            ),
            "pending": sorted(k.value for k in self.coordinator.pending()),
        }

    async def run_until_signalled(self) -> None:
        """Run until SIGINT or SIGTERM, then shut down cleanly."""
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                # Windows event loops; KeyboardInterrupt still ends asyncio.run
                pass

        await self.start()
        try:
            await stop_event.wait()
            logger.info("Received shutdown signal")
        finally:
            await self.stop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.remove_signal_handler(sig)
                except NotImplementedError:
                    pass
