# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

"""Trigger vocabulary shared by the watcher, coordinator and restart loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


class ChangeKind(Enum):
    """Raw filesystem event kinds delivered by the change source."""
    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


class PipelineKind(Enum):
    FULL = "full"          # kill, pre-commands, build, run, readiness
    REDUCED = "reduced"    # pre-commands only


@dataclass(frozen=True)
class BuildRequest:
    """Why a pipeline run was requested."""
    reason: str
    path: Path | None = None
    change: ChangeKind | None = None
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def for_change(cls, change: ChangeKind, path: Path) -> BuildRequest:
        return cls(reason="change", path=path, change=change)

    @classmethod
    def initial(cls) -> BuildRequest:
        return cls(reason="initial build")

    @classmethod
    def crash_recovery(cls) -> BuildRequest:
        return cls(reason="crash recovery")

    @classmethod
    def manual(cls) -> BuildRequest:
        return cls(reason="manual")

    def describe(self) -> str:
        if self.change is not None and self.path is not None:
            return f"{self.path} {self.change.value}"
        return self.reason
