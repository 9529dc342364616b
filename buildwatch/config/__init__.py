# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0
#
# This file is part of BuildWatch, licensed under Apache-2.0.
# See LICENSE for the full license text.

from buildwatch.config.models import (
    CONFIG_FILENAME,
    BuildWatchConfig,
    RestartConfig,
    ServerConfig,
    apply_overrides,
    get_config_path,
    load_config,
)

__all__ = [
    "CONFIG_FILENAME",
    "BuildWatchConfig",
    "RestartConfig",
    "ServerConfig",
    "apply_overrides",
    "get_config_path",
    "load_config",
]
