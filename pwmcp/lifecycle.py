"""Process-wide shutdown coordination.

A termination request (signal, unhandled failure, end of input) runs the
cleanup callback exactly once, bounded by a grace period after which the
process is force-exited with the triggering exit code.

    coordinator = ShutdownCoordinator(browser.shutdown)
    coordinator.install(asyncio.get_running_loop())
    ...
    code = await coordinator.wait()
"""
from __future__ import annotations

import asyncio
import os
import signal
import sys
from enum import Enum, IntEnum
from typing import Any, Awaitable, Callable

import structlog

log = structlog.get_logger(__name__)

SHUTDOWN_TIMEOUT = 5.0  # seconds


class ExitCode(IntEnum):
    SUCCESS = 0
    ERROR = 1
    SIGINT = 130  # conventional 128 + SIGINT


class ShutdownState(Enum):
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


def _force_exit(code: int) -> None:
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.flush()
        except (OSError, ValueError):
            pass
    os._exit(code)


class ShutdownCoordinator:
    """Idempotent shutdown state machine: RUNNING → SHUTTING_DOWN → TERMINATED."""

    def __init__(
        self,
        cleanup: Callable[[], Awaitable[None]],
        grace_period: float = SHUTDOWN_TIMEOUT,
        on_exit: Callable[[int], None] | None = None,
        force_exit: Callable[[int], None] = _force_exit,
    ) -> None:
        self._cleanup = cleanup
        self._grace_period = grace_period
        self._on_exit = on_exit
        self._force_exit = force_exit

        self._state = ShutdownState.RUNNING
        self._exit_code: int | None = None
        self._reason: str | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None
        self._done = asyncio.Event()

    # -- Queries ---------------------------------------------------------------

    @property
    def state(self) -> ShutdownState:
        return self._state

    @property
    def is_shutdown_in_progress(self) -> bool:
        return self._state is not ShutdownState.RUNNING

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    @property
    def reason(self) -> str | None:
        return self._reason

    # -- Triggers --------------------------------------------------------------

    def install(self, loop: asyncio.AbstractEventLoop) -> None:
        """Wire SIGINT/SIGTERM and the loop's unhandled-exception hook."""
        loop.add_signal_handler(
            signal.SIGINT, self.request_shutdown, "SIGINT", ExitCode.SIGINT
        )
        loop.add_signal_handler(
            signal.SIGTERM, self.request_shutdown, "SIGTERM", ExitCode.SUCCESS
        )
        loop.set_exception_handler(self._on_loop_exception)
        log.debug("process hooks registered")

    def uninstall(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        loop.set_exception_handler(None)

    def _on_loop_exception(
        self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
    ) -> None:
        exc = context.get("exception")
        log.error(
            "unhandled exception",
            message=context.get("message"),
            error=repr(exc) if exc else None,
        )
        self.request_shutdown("unhandled exception", ExitCode.ERROR)

    def request_shutdown(self, reason: str, exit_code: int = ExitCode.SUCCESS) -> bool:
        """Start shutdown; returns False if one is already under way."""
        if self._state is not ShutdownState.RUNNING:
            log.debug("shutdown already in progress, ignoring", reason=reason)
            return False

        self._state = ShutdownState.SHUTTING_DOWN
        self._reason = reason
        log.info("initiating graceful shutdown", reason=reason, exit_code=int(exit_code))

        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._grace_period, self._on_timeout, int(exit_code))
        self._task = loop.create_task(self._run_cleanup(int(exit_code)))
        return True

    async def wait(self) -> int:
        """Block until shutdown has finished; returns the exit code."""
        await self._done.wait()
        assert self._exit_code is not None
        return self._exit_code

    # -- Internals -------------------------------------------------------------

    async def _run_cleanup(self, exit_code: int) -> None:
        try:
            await self._cleanup()
        except Exception as exc:
            log.error("error during shutdown", error=str(exc))
            self._finish(ExitCode.ERROR)
            return
        log.info("graceful shutdown completed")
        self._finish(exit_code)

    def _finish(self, exit_code: int) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._state is ShutdownState.TERMINATED:
            return
        self._state = ShutdownState.TERMINATED
        self._exit_code = int(exit_code)
        self._done.set()
        if self._on_exit is not None:
            self._on_exit(self._exit_code)

    def _on_timeout(self, exit_code: int) -> None:
        self._timer = None
        if self._state is ShutdownState.TERMINATED:
            return
        log.error(
            "shutdown timeout exceeded, forcing exit",
            timeout_ms=int(self._grace_period * 1000),
            exit_code=exit_code,
        )
        self._state = ShutdownState.TERMINATED
        self._exit_code = exit_code
        self._done.set()
        self._force_exit(exit_code)
