# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0
"""
Unit tests for TriggerCoordinator.

Verifies debouncing (N events in a window -> one run), skip-path routing
to the reduced pipeline, serialization of runs, and that each failed
invocation reaches the host exactly once.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from buildwatch.config.models import BuildWatchConfig
from buildwatch.exceptions import (
    BuildError,
    PipelineBusyError,
    PreCommandError,
    StartCancelledError,
)
from buildwatch.notification.notifier import HostNotifier
from buildwatch.pipeline.coordinator import TriggerCoordinator
from buildwatch.pipeline.requests import BuildRequest, ChangeKind, PipelineKind
from buildwatch.pipeline.runner import DeployResult

DELAY_MS = 50
SETTLE = 0.3


class FakeRunner:
    """Stands in for PipelineRunner; records calls, never builds."""

    def __init__(self) -> None:
        self.busy = False
        self.supervisor = MagicMock()
        self.supervisor.stop = AsyncMock()
        self.deploy = AsyncMock(return_value=DeployResult(binary=Path("/tmp/app")))
        self.run_pre_only = AsyncMock(return_value=[])


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def notifier() -> HostNotifier:
    n = MagicMock(spec=HostNotifier)
    n.reload = AsyncMock()
    n.error = AsyncMock()
    return n


def _coordinator(tmp_path: Path, runner, notifier, restart_loop=None, **kwargs) -> TriggerCoordinator:
    kwargs.setdefault("build_delay_ms", DELAY_MS)
    return TriggerCoordinator(
        BuildWatchConfig(**kwargs), runner, notifier,
        restart_loop=restart_loop, cwd=tmp_path,
    )


# ── Routing ───────────────────────────────────────────────────


class TestSkipPaths:
    def test_prefix_match(self, tmp_path, runner, notifier):
        coord = _coordinator(tmp_path, runner, notifier, skip_paths=("foo",))
        assert coord.is_skipped(tmp_path / "foo" / "x.go")
        assert coord.is_skipped("foo/sub/y.go")
        assert not coord.is_skipped(tmp_path / "foobar" / "x.go")
        assert not coord.is_skipped(tmp_path / "main.go")

    def test_no_skip_paths(self, tmp_path, runner, notifier):
        coord = _coordinator(tmp_path, runner, notifier)
        assert not coord.is_skipped(tmp_path / "anything.go")

    async def test_skip_path_runs_reduced_pipeline(self, tmp_path, runner, notifier):
        coord = _coordinator(tmp_path, runner, notifier, skip_paths=("web",))
        coord.on_change(ChangeKind.CHANGED, tmp_path / "web" / "handler.go")
        await asyncio.sleep(SETTLE)

        runner.run_pre_only.assert_awaited_once()
        runner.deploy.assert_not_awaited()
        runner.supervisor.stop.assert_not_awaited()
        notifier.reload.assert_awaited_once()

    async def test_sibling_with_shared_prefix_runs_full(self, tmp_path, runner, notifier):
        coord = _coordinator(tmp_path, runner, notifier, skip_paths=("foo",))
        coord.on_change(ChangeKind.CHANGED, tmp_path / "foobar" / "x.go")
        await asyncio.sleep(SETTLE)

        runner.deploy.assert_awaited_once()
        runner.run_pre_only.assert_not_awaited()


# ── Debounce ──────────────────────────────────────────────────


class TestDebounce:
    async def test_burst_coalesces_to_one_run(self, tmp_path, runner, notifier):
        coord = _coordinator(tmp_path, runner, notifier)
        for i in range(5):
            coord.on_change(ChangeKind.CHANGED, tmp_path / f"f{i}.go")
            await asyncio.sleep(0.01)
        assert PipelineKind.FULL in coord.pending()

        await asyncio.sleep(SETTLE)

        runner.deploy.assert_awaited_once()
        request: BuildRequest = runner.deploy.await_args.args[0]
        assert request.path == tmp_path / "f4.go"
        notifier.reload.assert_awaited_once()

    async def test_separate_windows_run_twice(self, tmp_path, runner, notifier):
        coord = _coordinator(tmp_path, runner, notifier)
        coord.on_change(ChangeKind.CHANGED, tmp_path / "a.go")
        await asyncio.sleep(SETTLE)
        coord.on_change(ChangeKind.REMOVED, tmp_path / "b.go")
        await asyncio.sleep(SETTLE)
        assert runner.deploy.await_count == 2

    async def test_classes_debounce_independently(self, tmp_path, runner, notifier):
        coord = _coordinator(tmp_path, runner, notifier, skip_paths=("web",))
        coord.on_change(ChangeKind.CHANGED, tmp_path / "main.go")
        coord.on_change(ChangeKind.CHANGED, tmp_path / "web" / "x.go")
        await asyncio.sleep(SETTLE * 2)

        runner.deploy.assert_awaited_once()
        runner.run_pre_only.assert_awaited_once()

    async def test_initial_build(self, tmp_path, runner, notifier):
        coord = _coordinator(tmp_path, runner, notifier, initial_build_delay_ms=10)
        coord.schedule_initial()
        await asyncio.sleep(SETTLE)
        runner.deploy.assert_awaited_once()
        assert runner.deploy.await_args.args[0].reason == "initial build"

    async def test_initial_build_disabled(self, tmp_path, runner, notifier):
        coord = _coordinator(tmp_path, runner, notifier, run_initial_build=False)
        coord.schedule_initial()
        await asyncio.sleep(SETTLE)
        runner.deploy.assert_not_awaited()

    async def test_cancel_pending_drops_timers(self, tmp_path, runner, notifier):
        coord = _coordinator(tmp_path, runner, notifier)
        coord.on_change(ChangeKind.CHANGED, tmp_path / "a.go")
        coord.cancel_pending()
        coord.on_change(ChangeKind.CHANGED, tmp_path / "b.go")
        await asyncio.sleep(SETTLE)
        runner.deploy.assert_not_awaited()
        assert coord.pending() == {}


# ── Serialization ─────────────────────────────────────────────


class TestSerialization:
    async def test_reduced_run_deferred_until_full_finishes(self, tmp_path, runner, notifier):
        gate = asyncio.Event()
        order: list[str] = []

        async def slow_deploy(request):
            order.append("deploy-start")
            await gate.wait()
            order.append("deploy-end")
            return DeployResult(binary=Path("/tmp/app"))

        async def pre_only(request):
            order.append("pre")
            return []

        runner.deploy.side_effect = slow_deploy
        runner.run_pre_only.side_effect = pre_only
        coord = _coordinator(tmp_path, runner, notifier, skip_paths=("web",))

        coord.on_change(ChangeKind.CHANGED, tmp_path / "main.go")
        await asyncio.sleep(SETTLE)
        assert coord.active is PipelineKind.FULL

        coord.on_change(ChangeKind.CHANGED, tmp_path / "web" / "x.go")
        await asyncio.sleep(SETTLE)
        assert PipelineKind.REDUCED in coord.deferred()
        assert order == ["deploy-start"]

        gate.set()
        await asyncio.sleep(SETTLE)

        assert order == ["deploy-start", "deploy-end", "pre"]
        assert coord.active is None
        assert notifier.reload.await_count == 2

    async def test_full_trigger_while_busy_stops_child_first(self, tmp_path, runner, notifier):
        coord = _coordinator(tmp_path, runner, notifier)
        runner.busy = True

        coord.on_change(ChangeKind.CHANGED, tmp_path / "main.go")
        await asyncio.sleep(0.01)
        runner.supervisor.stop.assert_awaited_once()

        runner.busy = False
        await asyncio.sleep(SETTLE)
        runner.deploy.assert_awaited_once()

    async def test_busy_error_defers_and_retries(self, tmp_path, runner, notifier):
        runner.deploy.side_effect = [
            PipelineBusyError("held by crash recovery"),
            DeployResult(binary=Path("/tmp/app")),
        ]
        coord = _coordinator(tmp_path, runner, notifier)
        coord.on_change(ChangeKind.CHANGED, tmp_path / "main.go")
        await asyncio.sleep(SETTLE)

        assert runner.deploy.await_count == 2
        notifier.error.assert_not_awaited()
        notifier.reload.assert_awaited_once()

    async def test_full_run_cancels_restart_loop(self, tmp_path, runner, notifier):
        restart_loop = MagicMock()
        coord = _coordinator(tmp_path, runner, notifier, restart_loop=restart_loop)
        coord.request_rebuild()
        await asyncio.sleep(SETTLE)
        restart_loop.cancel.assert_called_once()
        assert runner.deploy.await_args.args[0].reason == "manual"


# ── Host notification ─────────────────────────────────────────


class TestNotification:
    async def test_build_failure_reported_once(self, tmp_path, runner, notifier):
        runner.deploy.side_effect = BuildError(
            "Build failed with exit code 2", stderr="main.go:3: undefined: x",
        )
        coord = _coordinator(tmp_path, runner, notifier, source="main.go")
        coord.on_change(ChangeKind.CHANGED, tmp_path / "main.go")
        await asyncio.sleep(SETTLE)

        notifier.error.assert_awaited_once()
        notifier.reload.assert_not_awaited()
        args, kwargs = notifier.error.await_args
        assert "Build failed" in args[0]
        assert "undefined: x" in kwargs["stack"]
        assert kwargs["source_id"] == "main.go"

    async def test_failure_is_not_retried(self, tmp_path, runner, notifier):
        runner.deploy.side_effect = BuildError("Build failed")
        coord = _coordinator(tmp_path, runner, notifier)
        coord.on_change(ChangeKind.CHANGED, tmp_path / "main.go")
        await asyncio.sleep(SETTLE * 2)
        runner.deploy.assert_awaited_once()

    async def test_pre_command_failure_in_reduced_run(self, tmp_path, runner, notifier):
        runner.run_pre_only.side_effect = PreCommandError("Pre-command failed", stderr="nope")
        coord = _coordinator(tmp_path, runner, notifier, skip_paths=("web",))
        coord.on_change(ChangeKind.ADDED, tmp_path / "web" / "new.go")
        await asyncio.sleep(SETTLE)

        notifier.error.assert_awaited_once()
        notifier.reload.assert_not_awaited()

    async def test_start_cancelled_is_silent(self, tmp_path, runner, notifier):
        runner.deploy.side_effect = StartCancelledError("stopped before ready")
        coord = _coordinator(tmp_path, runner, notifier)
        coord.on_change(ChangeKind.CHANGED, tmp_path / "main.go")
        await asyncio.sleep(SETTLE)

        notifier.error.assert_not_awaited()
        notifier.reload.assert_not_awaited()

    async def test_unexpected_error_reported_with_traceback(self, tmp_path, runner, notifier):
        runner.deploy.side_effect = RuntimeError("kaboom")
        coord = _coordinator(tmp_path, runner, notifier)
        coord.on_change(ChangeKind.CHANGED, tmp_path / "main.go")
        await asyncio.sleep(SETTLE)

        notifier.error.assert_awaited_once()
        assert "RuntimeError: kaboom" in notifier.error.await_args.kwargs["stack"]

    async def test_notifier_failure_does_not_break_loop(self, tmp_path, runner, notifier):
        notifier.reload.side_effect = ConnectionError("host gone")
        coord = _coordinator(tmp_path, runner, notifier)
        coord.on_change(ChangeKind.CHANGED, tmp_path / "a.go")
        await asyncio.sleep(SETTLE)
        coord.on_change(ChangeKind.CHANGED, tmp_path / "b.go")
        await asyncio.sleep(SETTLE)
        assert runner.deploy.await_count == 2
        assert coord.active is None


class TestClose:
    async def test_close_waits_for_running_pipeline(self, tmp_path, runner, notifier):
        finished = asyncio.Event()

        async def deploy(request):
            await asyncio.sleep(0.2)
            finished.set()
            return DeployResult(binary=Path("/tmp/app"))

        runner.deploy.side_effect = deploy
        coord = _coordinator(tmp_path, runner, notifier)
        coord.on_change(ChangeKind.CHANGED, tmp_path / "a.go")
        await asyncio.sleep(DELAY_MS / 1000 + 0.08)

        await coord.close()
        assert finished.is_set()
