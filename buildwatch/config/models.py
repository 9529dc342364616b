# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of BuildWatch, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Central configuration module for BuildWatch.

Defines frozen Pydantic models for ``buildwatch.json`` and provides
load / override helpers. A configuration is supplied once per watch
session and is read-only afterwards.
"""

from __future__ import annotations

import json
import logging
import re
import tempfile
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from buildwatch.exceptions import ConfigValidationError

logger = logging.getLogger("buildwatch.config")

CONFIG_FILENAME = "buildwatch.json"

# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class RestartConfig(BaseModel):
    """Crash recovery timing."""

    model_config = ConfigDict(frozen=True)

    crash_delay_ms: int = 1000  # delay between a post-ready crash and recovery
    retry_delay_ms: int = 5000  # delay between failed recovery attempts
    max_retries: int | None = None  # None = retry forever


class ServerConfig(BaseModel):
    """Host server (``buildwatch serve``) binding."""

    model_config = ConfigDict(frozen=True)

    host: str = "127.0.0.1"
    port: int = 18600


class BuildWatchConfig(BaseModel):
    """Top-level configuration for one watch session."""

    model_config = ConfigDict(frozen=True)

    source: str = "main.go"
    output_binary: str = "dist/go-app"
    watch_paths: tuple[str, ...] = (".",)
    watch_patterns: tuple[str, ...] = ("*.go",)
    skip_paths: tuple[str, ...] = ()
    run_args: tuple[str, ...] = ()
    build_command: tuple[str, ...] = ("go", "build")
    build_args: tuple[str, ...] = ()
    build_delay_ms: int = 1000
    run_initial_build: bool = True
    initial_build_delay_ms: int = 200
    ready_pattern: str | None = None
    ready_timeout_ms: int = 10000
    ready_timeout_policy: Literal["proceed", "fail"] = "proceed"
    pre_cmds: tuple[str, ...] = ()
    remote_debug: bool = False
    remote_debug_port: int = 2345
    dont_run: bool = False
    log_file: str = str(Path(tempfile.gettempdir()) / "buildwatch-process.log")
    kill_grace_ms: int = 3000
    restart: RestartConfig = RestartConfig()
    server: ServerConfig = ServerConfig()
    log_level: str = "INFO"

    @field_validator("ready_pattern")
    @classmethod
    def _check_ready_pattern(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"invalid ready_pattern {value!r}: {exc}") from exc
        return value

    @field_validator("build_command")
    @classmethod
    def _check_build_command(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("build_command must not be empty")
        return value

    @field_validator(
        "build_delay_ms", "initial_build_delay_ms", "ready_timeout_ms", "kill_grace_ms",
    )
    @classmethod
    def _check_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("delays and timeouts must be >= 0")
        return value

    # ── Derived values ────────────────────────────────────

    def ready_regex(self) -> re.Pattern[str] | None:
        """Return the compiled ready pattern, or None when unset."""
        return re.compile(self.ready_pattern) if self.ready_pattern else None

    def output_path(self, cwd: Path | None = None) -> Path:
        """Absolute path of the built artifact."""
        base = cwd or Path.cwd()
        return (base / self.output_binary).resolve()


# ---------------------------------------------------------------------------
# Load / override
# ---------------------------------------------------------------------------


def get_config_path(cwd: Path | None = None) -> Path:
    """Return the default config file location inside *cwd*."""
    return (cwd or Path.cwd()) / CONFIG_FILENAME


def load_config(path: Path | None = None) -> BuildWatchConfig:
    """Load configuration from disk.

    If *path* is ``None``, :func:`get_config_path` determines the location.
    When the file does not exist the default configuration is returned.

    Raises:
        ConfigValidationError: The file is not valid JSON or does not
            satisfy the schema.
    """
    if path is None:
        path = get_config_path()

    if not path.is_file():
        logger.info("Config file not found at %s; using defaults", path)
        return BuildWatchConfig()

    logger.debug("Loading config from %s", path)
    try:
        data: dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
        return BuildWatchConfig.model_validate(data)
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse %s: %s", path, exc)
        raise ConfigValidationError(f"Invalid JSON in {path}: {exc}") from exc
    except ValidationError as exc:
        logger.error("Invalid configuration in %s: %s", path, exc)
        raise ConfigValidationError(f"Invalid configuration in {path}: {exc}") from exc


def apply_overrides(config: BuildWatchConfig, **overrides: Any) -> BuildWatchConfig:
    """Return a new validated config with non-None *overrides* applied.

    ``None`` values are ignored so that unset CLI flags keep the file's
    value.
    """
    updates = {k: v for k, v in overrides.items() if v is not None}
    if not updates:
        return config
    data = config.model_dump()
    data.update(updates)
    try:
        return BuildWatchConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigValidationError(f"Invalid option: {exc}") from exc
