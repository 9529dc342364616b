from __future__ import annotations
# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of BuildWatch, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Unified exception hierarchy for BuildWatch.

All domain-specific exceptions derive from :class:`BuildWatchError`,
enabling callers to catch the entire family with a single clause::

    try:
        ...
    except BuildWatchError as e:
        logger.error("Pipeline error: %s", e)
"""


class BuildWatchError(Exception):
    """Base exception for all BuildWatch errors."""


# ── Configuration ────────────────────────────────────────────


class ConfigError(BuildWatchError):
    """Configuration errors."""


class ConfigValidationError(ConfigError):
    """Configuration file could not be parsed or failed validation."""


# ── Pipeline ─────────────────────────────────────────────────


class PipelineError(BuildWatchError):
    """Errors raised while running pre-commands or the build."""


class OutputDirError(PipelineError):
    """The artifact output directory could not be created."""


class PipelineBusyError(PipelineError):
    """A pipeline run was requested while another one is in flight."""


class CommandError(PipelineError):
    """An external command exited with a non-zero status.

    Carries the captured streams so the host and the log can show
    the command's own diagnostics.
    """

    def __init__(
        self,
        message: str,
        *,
        command: str = "",
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    def detail(self) -> str:
        """Render the captured output for logs and host error payloads."""
        parts: list[str] = []
        if self.stderr:
            parts.append(f"stderr:\n{self.stderr.rstrip()}")
        if self.stdout:
            parts.append(f"stdout:\n{self.stdout.rstrip()}")
        return "\n".join(parts)


class PreCommandError(CommandError):
    """A pre-command failed; the rest of the pipeline was aborted."""


class BuildError(CommandError):
    """The build command failed."""


# ── Process ──────────────────────────────────────────────────


class ProcessError(BuildWatchError):
    """Child process errors."""


class SpawnError(ProcessError):
    """The child process could not be spawned."""


class PreReadyExitError(ProcessError):
    """The child exited before it was considered ready."""

    def __init__(
        self,
        message: str,
        *,
        returncode: int | None = None,
        signal: int | None = None,
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.signal = signal


class StartCancelledError(ProcessError):
    """The child was stopped on purpose before it became ready."""


class ReadinessTimeoutError(ProcessError):
    """The ready pattern was not seen in time and the policy is ``fail``."""
