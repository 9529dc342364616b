# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("buildwatch.routes.session")


def create_session_router() -> APIRouter:
    router = APIRouter()

    @router.get("/status")
    async def session_status(request: Request):
        session = request.app.state.session
        ws_manager = request.app.state.ws_manager
        return {
            **session.snapshot(),
            "clients": len(ws_manager.active_connections),
            "queued_events": ws_manager.queued,
        }

    @router.post("/rebuild")
    async def rebuild(request: Request):
        """Queue a debounced full rebuild."""
        logger.info("Rebuild requested over HTTP")
        request.app.state.session.request_rebuild()
        return JSONResponse({"status": "scheduled"}, status_code=202)

    return router
