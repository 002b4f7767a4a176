"""Unit tests for pwmcp.lifecycle.ShutdownCoordinator."""
from __future__ import annotations

import asyncio
import os
import signal

import pytest

from pwmcp.lifecycle import ExitCode, ShutdownCoordinator, ShutdownState


class Recorder:
    """Cleanup callback that counts calls and can stall or fail."""

    def __init__(self, delay: float = 0.0, error: Exception | None = None) -> None:
        self.calls = 0
        self.delay = delay
        self.error = error

    async def __call__(self) -> None:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error


@pytest.mark.asyncio
async def test_cleanup_runs_once_with_trigger_code():
    cleanup = Recorder()
    exits: list[int] = []
    coord = ShutdownCoordinator(cleanup, on_exit=exits.append)
    assert coord.state is ShutdownState.RUNNING

    assert coord.request_shutdown("SIGTERM", ExitCode.SUCCESS) is True
    assert coord.is_shutdown_in_progress
    assert coord.request_shutdown("SIGINT", ExitCode.SIGINT) is False

    assert await coord.wait() == 0
    assert cleanup.calls == 1
    assert exits == [0]
    assert coord.state is ShutdownState.TERMINATED
    assert coord.reason == "SIGTERM"


@pytest.mark.asyncio
async def test_sigint_exit_code():
    coord = ShutdownCoordinator(Recorder())
    coord.request_shutdown("SIGINT", ExitCode.SIGINT)
    assert await coord.wait() == 130


@pytest.mark.asyncio
async def test_failed_cleanup_exits_with_error():
    coord = ShutdownCoordinator(Recorder(error=RuntimeError("close failed")))
    coord.request_shutdown("SIGTERM", ExitCode.SUCCESS)
    assert await coord.wait() == 1


@pytest.mark.asyncio
async def test_timeout_forces_exit():
    forced: list[int] = []
    cleanup = Recorder(delay=5.0)
    coord = ShutdownCoordinator(cleanup, grace_period=0.05, force_exit=forced.append)

    coord.request_shutdown("SIGINT", ExitCode.SIGINT)
    code = await asyncio.wait_for(coord.wait(), timeout=2.0)
    assert code == 130
    assert forced == [130]
    assert coord.state is ShutdownState.TERMINATED
    coord._task.cancel()


@pytest.mark.asyncio
async def test_timer_cancelled_after_clean_exit():
    forced: list[int] = []
    coord = ShutdownCoordinator(Recorder(), grace_period=0.05, force_exit=forced.append)
    coord.request_shutdown("stdin closed")
    await coord.wait()
    await asyncio.sleep(0.1)
    assert forced == []


@pytest.mark.asyncio
async def test_loop_exception_triggers_error_exit():
    coord = ShutdownCoordinator(Recorder())
    loop = asyncio.get_running_loop()
    coord._on_loop_exception(loop, {"message": "Task exception was never retrieved",
                                    "exception": ValueError("bad")})
    assert await coord.wait() == 1
    assert coord.reason == "unhandled exception"


@pytest.mark.asyncio
async def test_signal_handlers_installed():
    cleanup = Recorder()
    coord = ShutdownCoordinator(cleanup)
    loop = asyncio.get_running_loop()
    coord.install(loop)
    try:
        os.kill(os.getpid(), signal.SIGTERM)
        code = await asyncio.wait_for(coord.wait(), timeout=2.0)
    finally:
        coord.uninstall(loop)
    assert code == 0
    assert coord.reason == "SIGTERM"
    assert cleanup.calls == 1
