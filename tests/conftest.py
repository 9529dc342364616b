# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0
"""Global test fixtures for BuildWatch."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
import structlog

from tests.helpers.processes import write_fake_compiler


@pytest.fixture
def fake_compiler(tmp_path: Path) -> list[str]:
    """Build command prefix for the fake compiler."""
    return write_fake_compiler(tmp_path)


@pytest.fixture(autouse=True)
def _clear_structlog_context():
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


@pytest.fixture(autouse=True)
def _debug_logs(caplog: pytest.LogCaptureFixture):
    caplog.set_level(logging.DEBUG, logger="buildwatch")
    yield
