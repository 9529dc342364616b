# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0
"""BuildWatch: rebuild, restart and reload a child process on source changes."""

__version__ = "0.3.0"
