# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of BuildWatch, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""HTTP/WebSocket host for a watch session.

Connected clients receive ``full-reload`` and ``error`` events; the
session starts with the app and is torn down when the app stops.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

import buildwatch
from buildwatch.config.models import BuildWatchConfig
from buildwatch.notification.notifier import HostNotifier, WebSocketNotifier
from buildwatch.server.routes import create_router
from buildwatch.server.websocket import WebSocketManager
from buildwatch.session import WatchSession

logger = logging.getLogger("buildwatch.server")

SessionFactory = Callable[..., WatchSession]


@asynccontextmanager
async def lifespan(app: FastAPI):
    await app.state.session.start()
    logger.info("BuildWatch host ready")

    yield

    await app.state.session.stop()


def create_app(
    config: BuildWatchConfig,
    *,
    cwd: Path | None = None,
    session_factory: SessionFactory = WatchSession,
) -> FastAPI:
    app = FastAPI(title="BuildWatch", version=buildwatch.__version__, lifespan=lifespan)

    ws_manager = WebSocketManager()
    notifier: HostNotifier = WebSocketNotifier(ws_manager)

    app.state.config = config
    app.state.ws_manager = ws_manager
    app.state.session = session_factory(config, notifier, cwd=cwd)

    app.include_router(create_router())
    return app
