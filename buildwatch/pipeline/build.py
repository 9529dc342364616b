# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

"""Build pipeline: output directory, pre-commands, then the build command.

Every step runs to completion before the next one starts and the first
failure aborts the rest of the invocation. Nothing is retried here; the
next trigger re-runs the whole sequence.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from buildwatch.config.models import BuildWatchConfig
from buildwatch.exceptions import BuildError, CommandError, OutputDirError, PreCommandError

logger = logging.getLogger(__name__)

# Compiler flags that keep the binary debuggable under Delve
DEBUG_BUILD_FLAGS = ("-gcflags", "all=-N -l")


@dataclass(frozen=True)
class CommandResult:
    """Captured outcome of one external command."""
    command: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def check(self, error_cls: type[CommandError] = CommandError, message: str | None = None) -> None:
        """Raise *error_cls* with the captured output if the command failed."""
        if self.ok:
            return
        raise error_cls(
            message or f"Command failed with exit code {self.returncode}: {self.command}",
            command=self.command,
            returncode=self.returncode,
            stdout=self.stdout,
            stderr=self.stderr,
        )


async def run_command(
    command: str | Sequence[str],
    *,
    cwd: Path | None = None,
) -> CommandResult:
    """Run *command* to completion, capturing both streams.

    A string is run through the shell; a sequence is executed directly.
    Non-zero exits are reported in the result, not raised. ``OSError``
    from a missing executable propagates.
    """
    if isinstance(command, str):
        display = command
        proc = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
    else:
        display = shlex.join(command)
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
    stdout, stderr = await proc.communicate()
    return CommandResult(
        command=display,
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


class BuildPipeline:
    """Produce the artifact described by a :class:`BuildWatchConfig`."""

    def __init__(self, config: BuildWatchConfig, *, cwd: Path | None = None) -> None:
        self.config = config
        self.cwd = cwd or Path.cwd()

    @property
    def output_path(self) -> Path:
        return self.config.output_path(self.cwd)

    # ── Steps ───────────────────────────────────────────────────────

    def ensure_output_dir(self) -> Path:
        """Create the artifact's directory if needed.

        Raises:
            OutputDirError: The directory could not be created.
        """
        output_dir = self.output_path.parent
        if output_dir.is_dir():
            return output_dir
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Error creating output directory %s: %s", output_dir, e)
            raise OutputDirError(f"Cannot create output directory {output_dir}: {e}") from e
        logger.info("Created output directory: %s", output_dir)
        return output_dir

    async def run_pre_commands(self) -> list[CommandResult]:
        """Run the configured pre-commands in order.

        Raises:
            PreCommandError: The first command that exits non-zero.
        """
        pre_cmds = self.config.pre_cmds
        if not pre_cmds:
            return []

        logger.info("Executing %d pre-commands...", len(pre_cmds))
        results: list[CommandResult] = []
        for cmd in pre_cmds:
            logger.info("Executing command: %s", cmd)
            try:
                result = await run_command(cmd, cwd=self.cwd)
            except OSError as e:
                raise PreCommandError(
                    f"Pre-command could not be started: {cmd}: {e}", command=cmd,
                ) from e
            if not result.ok:
                logger.error(
                    "Error executing pre-command %r (exit code %s)", cmd, result.returncode,
                )
                if result.stderr:
                    logger.error("Command stderr:\n%s", result.stderr.rstrip())
            result.check(
                PreCommandError,
                f"Pre-command failed with exit code {result.returncode}: {cmd}",
            )
            if result.stderr:
                logger.info("Command stderr (warnings or info):\n%s", result.stderr.rstrip())
            if result.stdout:
                logger.info("Command stdout:\n%s", result.stdout.rstrip())
            results.append(result)
        logger.info("All pre-commands executed successfully.")
        return results

    def build_argv(self) -> list[str]:
        """The build command line for the configured artifact."""
        debug_flags = list(DEBUG_BUILD_FLAGS) if self.config.remote_debug else []
        return [
            *self.config.build_command,
            *self.config.build_args,
            *debug_flags,
            "-o", str(self.output_path),
            self.config.source,
        ]

    async def build(self) -> Path:
        """Run the build command.

        Raises:
            BuildError: The build exited non-zero or could not be started.
        """
        argv = self.build_argv()
        logger.info("Building: %s", shlex.join(argv))
        try:
            result = await run_command(argv, cwd=self.cwd)
        except OSError as e:
            logger.error("Build failed to start: %s", e)
            raise BuildError(
                f"Build command could not be started: {e}",
                command=shlex.join(argv),
                stderr=str(e),
            ) from e

        if not result.ok:
            logger.error("Build failed (exit code %s)", result.returncode)
            if result.stderr:
                logger.error("Build stderr:\n%s", result.stderr.rstrip())
            if result.stdout:
                logger.info("Build stdout:\n%s", result.stdout.rstrip())
            result.check(BuildError, f"Build failed with exit code {result.returncode}")

        if result.stderr:
            logger.info("Build stderr (warnings or info):\n%s", result.stderr.rstrip())
        if result.stdout:
            logger.info("Build stdout:\n%s", result.stdout.rstrip())
        logger.info("Built successfully: %s", self.output_path)
        return self.output_path

    async def run(self) -> Path:
        """Directory, pre-commands, build; returns the artifact path."""
        self.ensure_output_dir()
        await self.run_pre_commands()
        return await self.build()

    # ── Run command templates ───────────────────────────────────────

    def run_argv(self, binary: Path) -> list[str]:
        """The argv used to spawn the artifact (wrapped by Delve in debug mode)."""
        run_args = list(self.config.run_args)
        if self.config.remote_debug:
            return [
                "dlv",
                f"--listen=:{self.config.remote_debug_port}",
                "--headless=true",
                "--api-version=2",
                "--accept-multiclient",
                "exec",
                str(binary),
                "--",
                *run_args,
            ]
        return [str(binary), *run_args]

    def format_run_command(self, binary: Path) -> str:
        """Shell-quoted run command, for logging in ``dont_run`` mode."""
        return shlex.join(self.run_argv(binary))
