# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of BuildWatch, licensed under Apache-2.0.
# See LICENSE for the full license text.

"""Host notification sinks.

The pipeline tells its host two things: reload (the new process is
ready) and error (a pipeline invocation failed). The payloads follow the
Vite dev-server HMR message shapes so a browser client can consume them
unchanged.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from buildwatch.server.websocket import WebSocketManager

logger = logging.getLogger("buildwatch.notification")

PLUGIN_NAME = "buildwatch"


def reload_payload() -> dict[str, Any]:
    return {"type": "full-reload", "path": "*"}


def error_payload(message: str, stack: str = "", source_id: str = "") -> dict[str, Any]:
    return {
        "type": "error",
        "err": {
            "message": message,
            "stack": stack,
            "plugin": PLUGIN_NAME,
            "id": source_id,
        },
    }


class HostNotifier:
    """Base notification sink. Subclasses deliver to a concrete host."""

    async def reload(self) -> None:
        raise NotImplementedError

    async def error(self, message: str, stack: str = "", source_id: str = "") -> None:
        raise NotImplementedError


class LoggingNotifier(HostNotifier):
    """Sink for headless sessions: host events only go to the log."""

    async def reload(self) -> None:
        logger.info("Host notification: reload")

    async def error(self, message: str, stack: str = "", source_id: str = "") -> None:
        logger.error("Host notification: error in %s: %s", source_id or "-", message)
        if stack:
            logger.debug("Error detail:\n%s", stack)


class WebSocketNotifier(HostNotifier):
    """Sink that broadcasts host events to connected WebSocket clients.

    Events sent while no client is connected are queued by the manager
    and flushed to the next client.
    """

    def __init__(self, ws_manager: WebSocketManager) -> None:
        self.ws_manager = ws_manager

    async def reload(self) -> None:
        await self.ws_manager.send_event(reload_payload())

    async def error(self, message: str, stack: str = "", source_id: str = "") -> None:
        await self.ws_manager.send_event(error_payload(message, stack, source_id))
