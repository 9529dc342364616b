"""Unit tests for buildwatch/logging_config.py — structlog-based logging setup."""
# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import json
import logging
from logging.handlers import RotatingFileHandler

import pytest
import structlog

from buildwatch.logging_config import (
    bind_pipeline_context,
    get_pipeline_context,
    setup_logging,
)


# ── Pipeline context ──────────────────────────────────────


class TestPipelineContext:
    def test_empty_by_default(self):
        assert get_pipeline_context() == {}

    def test_bind(self):
        bind_pipeline_context("full", "main.go changed")
        assert get_pipeline_context() == {"pipeline": "full", "reason": "main.go changed"}

    async def test_binding_is_task_local(self):
        async def run(kind: str) -> dict:
            bind_pipeline_context(kind, "test")
            await asyncio.sleep(0)
            return get_pipeline_context()

        full, reduced = await asyncio.gather(run("full"), run("reduced"))
        assert full["pipeline"] == "full"
        assert reduced["pipeline"] == "reduced"
        assert get_pipeline_context() == {}


# ── setup_logging ─────────────────────────────────────────


class TestSetupLogging:
    @pytest.fixture(autouse=True)
    def _reset_logging(self):
        root = logging.getLogger()
        saved = list(root.handlers)
        yield
        for handler in root.handlers:
            if handler not in saved:
                handler.close()
        root.handlers[:] = saved
        root.setLevel(logging.WARNING)
        structlog.reset_defaults()

    def test_console_only(self):
        setup_logging(level="DEBUG", log_dir=None)
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], logging.StreamHandler)

    def test_rotating_file_handler(self, tmp_path):
        setup_logging(level="INFO", log_dir=tmp_path / "logs")
        root = logging.getLogger()
        files = [h for h in root.handlers if isinstance(h, RotatingFileHandler)]
        assert len(files) == 1
        assert files[0].maxBytes == 10 * 1024 * 1024
        assert files[0].backupCount == 5
        assert (tmp_path / "logs").is_dir()

    def test_json_lines_carry_pipeline_context(self, tmp_path):
        setup_logging(level="INFO", log_dir=tmp_path, json_file=True)
        bind_pipeline_context("full", "initial build")
        logging.getLogger("buildwatch.test").info("Built successfully")
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = (tmp_path / "buildwatch.log").read_text(encoding="utf-8").splitlines()
        record = json.loads(lines[-1])
        assert record["event"] == "Built successfully"
        assert record["pipeline"] == "full"
        assert record["reason"] == "initial build"
        assert record["level"] == "info"

    def test_noisy_loggers_quietened(self):
        setup_logging()
        assert logging.getLogger("watchdog").level == logging.WARNING
        assert logging.getLogger("uvicorn.access").level == logging.WARNING
