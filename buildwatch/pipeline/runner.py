# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

"""Full and reduced pipeline runs on top of the build pipeline and supervisor."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from buildwatch.config.models import BuildWatchConfig
from buildwatch.pipeline.build import BuildPipeline, CommandResult
from buildwatch.pipeline.requests import BuildRequest
from buildwatch.supervisor.manager import ProcessSupervisor
from buildwatch.supervisor.process_handle import ProcessHandle
from buildwatch.supervisor.readiness import ReadinessMonitor, ReadinessOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeployResult:
    binary: Path
    handle: ProcessHandle | None = None         # None in dont_run mode
    outcome: ReadinessOutcome | None = None


class PipelineRunner:
    """Run pipelines one at a time against one supervisor."""

    def __init__(
        self,
        config: BuildWatchConfig,
        supervisor: ProcessSupervisor,
        pipeline: BuildPipeline,
    ) -> None:
        self.config = config
        self.supervisor = supervisor
        self.pipeline = pipeline

    @property
    def busy(self) -> bool:
        return self.supervisor.build_in_flight

    @property
    def child_alive(self) -> bool:
        child = self.supervisor.active_child
        return child is not None and child.is_alive()

    async def wait_idle(self) -> None:
        await self.supervisor.wait_build_idle()

    def make_monitor(self) -> ReadinessMonitor:
        return ReadinessMonitor(
            self.config.ready_regex(),
            self.config.ready_timeout_ms / 1000,
            timeout_policy=self.config.ready_timeout_policy,
        )

    async def deploy(self, request: BuildRequest) -> DeployResult:
        """Kill the current child, rebuild, and start the new artifact.

        Raises:
            PipelineBusyError: Another run holds the build guard.
            PipelineError: Directory, pre-command or build failure.
            ProcessError: Spawn failure or exit before ready.
        """
        with self.supervisor.building():
            logger.debug("Full pipeline started (%s)", request.describe())
            await self.supervisor.stop()
            binary = await self.pipeline.run()

            if self.config.dont_run:
                logger.info(
                    "Built successfully but not running (dont_run). "
                    "To run it manually, use the following command:\n\n%s\n",
                    self.pipeline.format_run_command(binary),
                )
                return DeployResult(binary=binary)

            argv = self.pipeline.run_argv(binary)
            if self.config.remote_debug:
                logger.info(
                    "Starting in remote debug mode with Delve on port %d",
                    self.config.remote_debug_port,
                )
            logger.info("Starting: %s", self.pipeline.format_run_command(binary))
            handle, outcome = await self.supervisor.launch(argv, self.make_monitor())
            return DeployResult(binary=binary, handle=handle, outcome=outcome)

    async def run_pre_only(self, request: BuildRequest) -> list[CommandResult]:
        """Run the pre-commands without building or touching the child."""
        with self.supervisor.building():
            logger.debug("Reduced pipeline started (%s)", request.describe())
            return await self.pipeline.run_pre_commands()
