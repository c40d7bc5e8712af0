"""Tests for killing and reaping ffmpeg child processes."""

from __future__ import annotations

import pytest

from hikbridge.streaming.process import kill_and_reap
from tests.hikbridge.mocks import FakeProcess


async def test_running_process_is_killed_and_reaped() -> None:
    process = FakeProcess()

    returncode = await kill_and_reap(process)

    assert returncode == -9
    assert process.kill_calls == 1
    assert process.reaped == 1


async def test_exited_process_is_reaped_without_kill() -> None:
    # Given: a process that already exited on its own
    process = FakeProcess()
    process.exit(1)

    # When: killing and reaping it
    returncode = await kill_and_reap(process)

    # Then: no signal was sent but the status was still collected
    assert returncode == 1
    assert process.kill_calls == 0
    assert process.reaped == 1


async def test_process_ignoring_kill_times_out(caplog: pytest.LogCaptureFixture) -> None:
    # Given: a process that survives kill
    process = FakeProcess(pid=777, ignore_kill=True)

    # When: reaping with a short timeout
    returncode = await kill_and_reap(process, timeout_s=0.05, camera_name="Porch")

    # Then: the wait is abandoned and logged
    assert returncode is None
    assert process.kill_calls == 1
    assert process.reaped == 0
    assert "Process 777 did not exit" in caplog.text


async def test_missing_process_is_ignored() -> None:
    assert await kill_and_reap(None) is None
