# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0
"""
Child process supervision package.

Tracks the single supervised child, decides when it is ready, and
stops it with graceful-to-forceful escalation.
"""

from __future__ import annotations

from buildwatch.supervisor.process_handle import (
    ExitInfo,
    ProcessHandle,
    ProcessState,
    ProcessStats,
    ReadyVia,
)
from buildwatch.supervisor.readiness import ReadinessMonitor, ReadinessOutcome
from buildwatch.supervisor.manager import ProcessSupervisor, RestartPolicy, SupervisorPhase

__all__ = [
    "ExitInfo",
    "ProcessHandle",
    "ProcessState",
    "ProcessStats",
    "ReadyVia",
    "ReadinessMonitor",
    "ReadinessOutcome",
    "ProcessSupervisor",
    "RestartPolicy",
    "SupervisorPhase",
]
