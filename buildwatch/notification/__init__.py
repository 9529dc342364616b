# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

from buildwatch.notification.notifier import (
    PLUGIN_NAME,
    HostNotifier,
    LoggingNotifier,
    WebSocketNotifier,
    error_payload,
    reload_payload,
)

__all__ = [
    "PLUGIN_NAME",
    "HostNotifier",
    "LoggingNotifier",
    "WebSocketNotifier",
    "error_payload",
    "reload_payload",
]
