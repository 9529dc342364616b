# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import argparse
import os
from pathlib import Path


def _add_session_options(p: argparse.ArgumentParser) -> None:
    """Options shared by every command that resolves a configuration."""
    p.add_argument(
        "--config", default=None, metavar="PATH",
        help="Config file (default: ./buildwatch.json)",
    )
    p.add_argument("--source", default=None, help="Source entry point handed to the build")
    p.add_argument("--output", default=None, help="Build artifact path")
    p.add_argument(
        "--watch", action="append", default=None, metavar="PATH",
        help="Directory to watch (repeatable)",
    )
    p.add_argument(
        "--skip", action="append", default=None, metavar="PATH",
        help="Directory whose changes only run pre-commands (repeatable)",
    )
    p.add_argument(
        "--pattern", action="append", default=None,
        help="File name glob to watch, e.g. '*.go' (repeatable)",
    )
    p.add_argument(
        "--pre-cmd", action="append", default=None, metavar="CMD",
        help="Shell command run before each build (repeatable)",
    )
    p.add_argument("--ready-pattern", default=None, help="Regex marking the process as ready")
    p.add_argument("--ready-timeout-ms", type=int, default=None)
    p.add_argument("--build-delay-ms", type=int, default=None, help="Debounce window")
    p.add_argument(
        "--no-initial-build", action="store_true",
        help="Do not build and run on startup",
    )
    p.add_argument("--remote-debug", action="store_true", help="Run under Delve")
    p.add_argument("--remote-debug-port", type=int, default=None)
    p.add_argument(
        "--dont-run", action="store_true",
        help="Build only; print the run command instead of starting it",
    )
    p.add_argument("--log-file", default=None, help="Child process output log")
    p.add_argument(
        "--run-arg", action="append", default=None, metavar="ARG",
        help="Argument passed to the built program (repeatable)",
    )
    p.add_argument(
        "--build-arg", action="append", default=None, metavar="ARG",
        help="Extra argument for the build command (repeatable)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="buildwatch",
        description="BuildWatch - rebuild and restart a program when its sources change",
    )
    sub = parser.add_subparsers(dest="command")

    # ── Watch ─────────────────────────────────────────────
    p_watch = sub.add_parser("watch", help="Watch, rebuild and restart (headless)")
    _add_session_options(p_watch)
    p_watch.set_defaults(func=_lazy_watch)

    # ── Serve ─────────────────────────────────────────────
    p_serve = sub.add_parser(
        "serve", help="Watch and push reload/error events to WebSocket clients",
    )
    p_serve.add_argument("--host", default=None)
    p_serve.add_argument("--port", type=int, default=None)
    _add_session_options(p_serve)
    p_serve.set_defaults(func=_lazy_serve)

    # ── Show Config ──────────────────────────────────────
    p_show = sub.add_parser("show-config", help="Print the effective configuration")
    _add_session_options(p_show)
    p_show.set_defaults(func=_lazy_show_config)

    return parser


def cli_main(argv: list[str] | None = None) -> None:
    from dotenv import load_dotenv

    load_dotenv()

    from buildwatch.logging_config import setup_logging

    log_dir = os.environ.get("BUILDWATCH_LOG_DIR")
    setup_logging(
        level=os.environ.get("BUILDWATCH_LOG_LEVEL", "INFO"),
        log_dir=Path(log_dir) if log_dir else None,
    )

    parser = build_parser()
    args = parser.parse_args(argv)

    if hasattr(args, "func"):
        args.func(args)
    else:
        parser.print_help()


# ── Lazy import wrappers ──────────────────────────────────


def _lazy_watch(args: argparse.Namespace) -> None:
    from buildwatch.cli.commands.watch import cmd_watch

    cmd_watch(args)


def _lazy_serve(args: argparse.Namespace) -> None:
    from buildwatch.cli.commands.serve import cmd_serve

    cmd_serve(args)


def _lazy_show_config(args: argparse.Namespace) -> None:
    from buildwatch.cli.commands.config_cmd import cmd_show_config

    cmd_show_config(args)
