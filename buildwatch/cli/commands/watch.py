# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import argparse
import asyncio
import logging

from buildwatch.cli.commands import apply_log_level, resolve_config_or_exit

logger = logging.getLogger("buildwatch")


def cmd_watch(args: argparse.Namespace) -> None:
    """Run a headless watch session until interrupted."""
    from buildwatch.notification.notifier import LoggingNotifier
    from buildwatch.session import WatchSession

    config = resolve_config_or_exit(args)
    apply_log_level(config)
    session = WatchSession(config, LoggingNotifier())
    try:
        asyncio.run(session.run_until_signalled())
    except KeyboardInterrupt:
        logger.info("Interrupted")
