# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger("buildwatch.routes.websocket")


def create_websocket_router() -> APIRouter:
    """Create the host event WebSocket router."""
    router = APIRouter()

    @router.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        ws_manager = websocket.app.state.ws_manager
        await ws_manager.connect(websocket)
        try:
            while True:
                # Inbound messages carry nothing; reading detects disconnects.
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info("Host client disconnected normally")
        except Exception:
            logger.warning("Host connection lost unexpectedly", exc_info=True)
        finally:
            ws_manager.disconnect(websocket)

    return router
