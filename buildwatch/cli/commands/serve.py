# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import argparse
import logging

from buildwatch.cli.commands import apply_log_level, resolve_config_or_exit

logger = logging.getLogger("buildwatch")


def cmd_serve(args: argparse.Namespace) -> None:
    """Run the watch session behind the HTTP/WebSocket host."""
    import uvicorn

    from buildwatch.server.app import create_app

    config = resolve_config_or_exit(args)
    apply_log_level(config)
    host = args.host or config.server.host
    port = args.port or config.server.port

    app = create_app(config)
    logger.info("Starting BuildWatch host on %s:%d", host, port)
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info",
        ws_ping_interval=25,
    )
