# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0
"""
Build-and-run pipeline package.

Builds the artifact, routes change triggers to full or reduced runs,
and recovers from crashes of the running artifact.
"""

from __future__ import annotations

from buildwatch.pipeline.requests import BuildRequest, ChangeKind, PipelineKind
from buildwatch.pipeline.build import BuildPipeline, CommandResult, run_command
from buildwatch.pipeline.runner import DeployResult, PipelineRunner
from buildwatch.pipeline.restart import RestartLoop
from buildwatch.pipeline.coordinator import TriggerCoordinator

__all__ = [
    "BuildRequest",
    "ChangeKind",
    "PipelineKind",
    "BuildPipeline",
    "CommandResult",
    "run_command",
    "DeployResult",
    "PipelineRunner",
    "RestartLoop",
    "TriggerCoordinator",
]
