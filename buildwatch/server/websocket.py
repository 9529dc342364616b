# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import json
import logging

from fastapi import WebSocket

logger = logging.getLogger("buildwatch.websocket")


class WebSocketManager:
    """Host-side fan-out of reload/error events to connected clients.

    Connection liveness is left to the server's protocol-level pings
    (``ws_ping_interval``); clients only ever receive.
    """

    _MAX_QUEUE_SIZE = 50

    def __init__(self) -> None:
        self.active_connections: list[WebSocket] = []
        self._event_queue: list[dict] = []

    @property
    def queued(self) -> int:
        return len(self._event_queue)

    # ── Connection Management ───────────────────────────────

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info("Host client connected. Total: %d", len(self.active_connections))
        await self.flush_event_queue(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
        logger.info("Host client disconnected. Total: %d", len(self.active_connections))

    # ── Host events ─────────────────────────────────────────

    async def send_event(self, event: dict) -> None:
        """Broadcast *event*, or queue it until a client connects.

        The queue keeps the newest events only.
        """
        if self.active_connections:
            await self.broadcast(event)
            return
        self._event_queue.append(event)
        while len(self._event_queue) > self._MAX_QUEUE_SIZE:
            self._event_queue.pop(0)

    async def flush_event_queue(self, websocket: WebSocket) -> None:
        while self._event_queue:
            event = self._event_queue.pop(0)
            try:
                await websocket.send_text(json.dumps(event, ensure_ascii=False, default=str))
            except Exception:
                logger.warning("Failed to flush queued event to new client")
                break

    async def broadcast(self, data: dict) -> None:
        if not self.active_connections:
            return
        message = json.dumps(data, ensure_ascii=False, default=str)
        disconnected: list[WebSocket] = []
        for conn in self.active_connections:
            try:
                await conn.send_text(message)
            except Exception:
                logger.warning("broadcast_failed", exc_info=True)
                disconnected.append(conn)
        for conn in disconnected:
            self.disconnect(conn)
