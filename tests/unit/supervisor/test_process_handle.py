# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for ProcessHandle: spawning, output capture and exit info."""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path

import pytest

from buildwatch.exceptions import SpawnError
from buildwatch.supervisor.process_handle import (
    ExitInfo,
    ProcessHandle,
    ProcessState,
    ReadyVia,
)
from tests.helpers.processes import python_cmd


class TestSpawn:
    async def test_spawn_and_exit(self):
        handle = ProcessHandle(python_cmd("raise SystemExit(3)"))
        await handle.spawn()
        assert handle.pid is not None

        info = await asyncio.wait_for(handle.wait_closed(), 10)

        assert info == ExitInfo(returncode=3, expected=False, was_ready=False)
        assert handle.state is ProcessState.TERMINATED
        assert handle.stats.exit_code == 3
        assert not handle.is_alive()

    async def test_missing_executable_raises_spawn_error(self, tmp_path: Path):
        handle = ProcessHandle([str(tmp_path / "does-not-exist")])
        with pytest.raises(SpawnError):
            await handle.spawn()
        assert handle.state is ProcessState.TERMINATED
        assert await handle.wait_closed() is None

    def test_empty_command_rejected(self):
        with pytest.raises(ValueError):
            ProcessHandle([])

    async def test_double_spawn_rejected(self):
        handle = ProcessHandle(python_cmd("pass"))
        await handle.spawn()
        with pytest.raises(RuntimeError):
            await handle.spawn()
        await handle.wait_closed()


class TestOutputCapture:
    async def test_output_goes_to_log_and_listeners(self, tmp_path: Path):
        log_path = tmp_path / "logs" / "child.log"
        handle = ProcessHandle(
            python_cmd("""
                import sys
                print("hello out")
                sys.stderr.write("hello err\\n")
            """),
            capture_output=True,
            log_path=log_path,
        )
        seen: list[tuple[str, str]] = []
        handle.add_output_listener(lambda stream, text: seen.append((stream, text)))

        await handle.spawn()
        await asyncio.wait_for(handle.wait_closed(), 10)

        content = log_path.read_text(encoding="utf-8")
        assert "hello out" in content
        assert "hello err" in content
        streams = {stream for stream, _ in seen}
        assert streams == {"stdout", "stderr"}

    async def test_log_appends_across_children(self, tmp_path: Path):
        log_path = tmp_path / "child.log"
        log_path.write_text("previous run\n", encoding="utf-8")
        for word in ("first", "second"):
            handle = ProcessHandle(
                python_cmd(f"print({word!r})"), capture_output=True, log_path=log_path,
            )
            await handle.spawn()
            await asyncio.wait_for(handle.wait_closed(), 10)

        lines = log_path.read_text(encoding="utf-8").splitlines()
        assert lines == ["previous run", "first", "second"]

    async def test_unwritable_log_does_not_block_spawn(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        handle = ProcessHandle(
            python_cmd("print('ok')"),
            capture_output=True,
            log_path=blocker / "child.log",  # parent is a file
        )
        seen: list[str] = []
        handle.add_output_listener(lambda _s, text: seen.append(text))

        await handle.spawn()
        await asyncio.wait_for(handle.wait_closed(), 10)

        assert "ok" in "".join(seen)

    async def test_failing_listener_does_not_stop_pump(self, tmp_path: Path):
        handle = ProcessHandle(python_cmd("print('a'); print('b')"), capture_output=True)
        seen: list[str] = []

        def broken(_stream: str, _text: str) -> None:
            raise RuntimeError("listener bug")

        handle.add_output_listener(broken)
        handle.add_output_listener(lambda _s, text: seen.append(text))
        await handle.spawn()
        await asyncio.wait_for(handle.wait_closed(), 10)

        assert "a" in "".join(seen) and "b" in "".join(seen)


class TestStateTransitions:
    async def test_mark_ready_only_from_starting(self):
        handle = ProcessHandle(python_cmd("import time; time.sleep(30)"))
        await handle.spawn()
        try:
            assert handle.mark_ready(ReadyVia.MATCHED) is True
            assert handle.stats.ready_via is ReadyVia.MATCHED
            assert handle.mark_ready(ReadyVia.TIMED_OUT) is False
            assert handle.stats.ready_via is ReadyVia.MATCHED
        finally:
            handle.mark_stopping()
            handle.kill()
            info = await asyncio.wait_for(handle.wait_closed(), 10)

        assert info.expected is True
        assert info.was_ready is True
        assert info.signal == signal.SIGKILL

    async def test_exit_listeners_fire_once(self):
        handle = ProcessHandle(python_cmd("pass"))
        calls: list[ExitInfo] = []
        handle.add_exit_listener(lambda _h, info: calls.append(info))
        await handle.spawn()
        await asyncio.wait_for(handle.wait_closed(), 10)
        await asyncio.sleep(0.05)
        assert len(calls) == 1

    async def test_signals_after_exit_report_gone(self):
        handle = ProcessHandle(python_cmd("pass"))
        await handle.spawn()
        await asyncio.wait_for(handle.wait_closed(), 10)
        assert handle.terminate() is False
        assert handle.kill() is False
