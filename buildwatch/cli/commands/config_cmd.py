# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import argparse

from buildwatch.cli.commands import resolve_config_or_exit


def cmd_show_config(args: argparse.Namespace) -> None:
    config = resolve_config_or_exit(args)
    print(config.model_dump_json(indent=2))
