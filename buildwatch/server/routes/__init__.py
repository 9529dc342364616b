# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from fastapi import APIRouter

from buildwatch.server.routes.session_routes import create_session_router
from buildwatch.server.routes.websocket_route import create_websocket_router


def create_router() -> APIRouter:
    router = APIRouter()
    api = APIRouter(prefix="/api")

    api.include_router(create_session_router())

    router.include_router(api)
    router.include_router(create_websocket_router())

    return router
