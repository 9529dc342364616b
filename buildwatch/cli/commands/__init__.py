# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from buildwatch.config.models import BuildWatchConfig, apply_overrides, load_config
from buildwatch.exceptions import ConfigError


def resolve_config(args: argparse.Namespace) -> BuildWatchConfig:
    """Load the config file and layer the command-line flags on top."""
    path = Path(args.config) if getattr(args, "config", None) else None
    config = load_config(path)

    def _tuple(value: list[str] | None) -> tuple[str, ...] | None:
        return tuple(value) if value else None

    return apply_overrides(
        config,
        source=args.source,
        output_binary=args.output,
        watch_paths=_tuple(args.watch),
        skip_paths=_tuple(args.skip),
        watch_patterns=_tuple(args.pattern),
        pre_cmds=_tuple(args.pre_cmd),
        run_args=_tuple(args.run_arg),
        build_args=_tuple(args.build_arg),
        ready_pattern=args.ready_pattern,
        ready_timeout_ms=args.ready_timeout_ms,
        build_delay_ms=args.build_delay_ms,
        run_initial_build=False if args.no_initial_build else None,
        remote_debug=True if args.remote_debug else None,
        remote_debug_port=args.remote_debug_port,
        dont_run=True if args.dont_run else None,
        log_file=args.log_file,
    )


def apply_log_level(config: BuildWatchConfig) -> None:
    """Use the configured level unless BUILDWATCH_LOG_LEVEL already set one."""
    if "BUILDWATCH_LOG_LEVEL" in os.environ:
        return
    logging.getLogger().setLevel(getattr(logging, config.log_level.upper(), logging.INFO))


def resolve_config_or_exit(args: argparse.Namespace) -> BuildWatchConfig:
    try:
        return resolve_config(args)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)
