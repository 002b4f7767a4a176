"""Async JSON-RPC client that drives the MCP server as a subprocess.

Used by the integration tests and handy for poking at the server by hand:

    async with McpTestClient() as client:
        await client.call("initialize", {"protocolVersion": "2024-11-05"})
        tools = await client.call("tools/list")
"""
from __future__ import annotations

import asyncio
import json
import sys
from collections import deque
from pathlib import Path
from typing import Any, Mapping, Sequence

import structlog

log = structlog.get_logger(__name__)

REQUEST_TIMEOUT = 10.0  # seconds
STOP_TIMEOUT = 2.0  # seconds
READ_LIMIT = 16 * 1024 * 1024


class McpClientError(Exception):
    """Base class for client-side failures."""


class McpCallError(McpClientError):
    """The server answered with a JSON-RPC error object."""

    def __init__(self, response: dict[str, Any]) -> None:
        error = response.get("error") or {}
        self.response = response
        self.code: int | None = error.get("code")
        self.message: str = error.get("message", "")
        self.data: Any = error.get("data")
        super().__init__(f"MCP error {self.code}: {self.message}")


class McpRequestTimeout(McpClientError, TimeoutError):
    """No response arrived within the request timeout."""


class McpServerExited(McpClientError):
    """The server process exited while requests were outstanding."""

    def __init__(self, returncode: int | None, stderr_tail: str = "") -> None:
        self.returncode = returncode
        self.stderr_tail = stderr_tail
        message = f"MCP server exited with code {returncode}"
        if stderr_tail:
            message += f"\nstderr:\n{stderr_tail}"
        super().__init__(message)


class McpTestClient:
    """Spawn the server and correlate responses with requests by id."""

    def __init__(
        self,
        command: Sequence[str] | None = None,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        request_timeout: float = REQUEST_TIMEOUT,
        stop_timeout: float = STOP_TIMEOUT,
    ) -> None:
        self.command = list(command) if command else [sys.executable, "-m", "pwmcp"]
        self.cwd = cwd
        self.env = dict(env) if env is not None else None
        self.request_timeout = request_timeout
        self.stop_timeout = stop_timeout

        self._proc: asyncio.subprocess.Process | None = None
        self._pending: dict[Any, asyncio.Future] = {}
        self._next_id = 1
        self._stdout_task: asyncio.Task | None = None
        self._stderr_task: asyncio.Task | None = None
        self._exit_task: asyncio.Task | None = None
        self._stderr_lines: deque[str] = deque(maxlen=50)
        self._last_returncode: int | None = None

    # -- Process ---------------------------------------------------------------

    async def start(self) -> None:
        if self._proc is not None:
            raise McpClientError("MCP server is already started")
        self._proc = await asyncio.create_subprocess_exec(
            *self.command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(self.cwd) if self.cwd is not None else None,
            env=self.env,
            limit=READ_LIMIT,
        )
        log.debug("server process started", pid=self._proc.pid, command=self.command)
        self._stdout_task = asyncio.create_task(self._read_stdout(self._proc))
        self._stderr_task = asyncio.create_task(self._read_stderr(self._proc))
        self._exit_task = asyncio.create_task(self._watch_exit(self._proc))

    async def stop(self) -> int | None:
        """Close stdin and wait for exit; terminate, then kill, if it lingers."""
        proc = self._proc
        if proc is None:
            return None

        if proc.returncode is None:
            if proc.stdin is not None and not proc.stdin.is_closing():
                proc.stdin.close()
            try:
                await asyncio.wait_for(proc.wait(), self.stop_timeout)
            except asyncio.TimeoutError:
                log.warning("server did not exit after stdin closed, terminating")
                proc.terminate()
                try:
                    await asyncio.wait_for(proc.wait(), self.stop_timeout)
                except asyncio.TimeoutError:
                    log.warning("server ignored SIGTERM, killing")
                    proc.kill()
                    await proc.wait()

        tasks = [t for t in (self._stdout_task, self._stderr_task, self._exit_task) if t]
        _, still_running = await asyncio.wait(tasks, timeout=self.stop_timeout)
        for task in still_running:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._fail_pending(McpServerExited(proc.returncode, self.stderr_tail()))
        self._last_returncode = proc.returncode
        self._proc = None
        log.debug("server process stopped", returncode=proc.returncode)
        return proc.returncode

    @property
    def is_running(self) -> bool:
        return self._proc is not None and self._proc.returncode is None

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode if self._proc is not None else self._last_returncode

    def send_signal(self, sig: int) -> None:
        self._require_running().send_signal(sig)

    async def wait(self, timeout: float | None = None) -> int:
        """Wait for the server to exit on its own; returns the exit code."""
        if self._proc is None:
            raise McpClientError("MCP server was not started")
        return await asyncio.wait_for(self._proc.wait(), timeout)

    def stderr_tail(self) -> str:
        return "\n".join(self._stderr_lines)

    async def __aenter__(self) -> McpTestClient:
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.stop()

    # -- Requests --------------------------------------------------------------

    async def call(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        request_id: int | str | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Send a request and return the full response object.

        Raises McpCallError if the response carries an error.
        """
        proc = self._require_running()
        if request_id is None:
            request_id = self._next_id
            self._next_id += 1
        if request_id in self._pending:
            raise McpClientError(f"Request id already in flight: {request_id!r}")

        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        request = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
            "params": params if params is not None else {},
        }
        wait = self.request_timeout if timeout is None else timeout
        try:
            await self._write_line(proc, json.dumps(request))
            return await asyncio.wait_for(future, wait)
        except asyncio.TimeoutError:
            raise McpRequestTimeout(
                f"Request timeout after {int(wait * 1000)}ms for method: {method}"
            ) from None
        finally:
            self._pending.pop(request_id, None)

    async def call_tool(
        self, name: str, arguments: dict[str, Any] | None = None, **kwargs: Any
    ) -> dict[str, Any]:
        """tools/call shortcut; returns the ``result`` member."""
        response = await self.call(
            "tools/call", {"name": name, "arguments": arguments or {}}, **kwargs
        )
        return response["result"]

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        message: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        await self._write_line(self._require_running(), json.dumps(message))

    async def send_raw(self, line: str) -> None:
        """Write *line* verbatim (plus newline), e.g. to send malformed JSON."""
        await self._write_line(self._require_running(), line)

    async def wait_for_response(
        self, request_id: Any, timeout: float | None = None
    ) -> dict[str, Any]:
        """Await a response for an id sent via send_raw (``None`` for parse errors)."""
        if request_id in self._pending:
            raise McpClientError(f"Request id already in flight: {request_id!r}")
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        wait = self.request_timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(future, wait)
        except asyncio.TimeoutError:
            raise McpRequestTimeout(
                f"Request timeout after {int(wait * 1000)}ms for id: {request_id!r}"
            ) from None
        finally:
            self._pending.pop(request_id, None)

    # -- Internals -------------------------------------------------------------

    def _require_running(self) -> asyncio.subprocess.Process:
        if self._proc is None or self._proc.returncode is not None:
            raise McpClientError("MCP server is not running")
        return self._proc

    async def _write_line(self, proc: asyncio.subprocess.Process, line: str) -> None:
        assert proc.stdin is not None
        try:
            proc.stdin.write(line.encode("utf-8") + b"\n")
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise McpServerExited(proc.returncode, self.stderr_tail()) from exc

    async def _read_stdout(self, proc: asyncio.subprocess.Process) -> None:
        assert proc.stdout is not None
        while True:
            try:
                line = await proc.stdout.readline()
            except ValueError as exc:
                log.error("response line too long, dropped", error=str(exc))
                continue
            if not line:
                break
            self._handle_line(line)

    def _handle_line(self, line: bytes) -> None:
        text = line.decode("utf-8", errors="replace").strip()
        if not text:
            return
        try:
            response = json.loads(text)
        except json.JSONDecodeError as exc:
            log.error("failed to parse JSON-RPC response", line=text[:200], error=str(exc))
            return
        if not isinstance(response, dict):
            log.error("unexpected JSON-RPC payload", line=text[:200])
            return

        request_id = response.get("id")
        try:
            future = self._pending.get(request_id)
        except TypeError:
            future = None
        if future is None or future.done():
            log.warning("response for unknown request id", id=request_id)
            return

        if response.get("error") is not None:
            future.set_exception(McpCallError(response))
        else:
            future.set_result(response)

    async def _read_stderr(self, proc: asyncio.subprocess.Process) -> None:
        assert proc.stderr is not None
        while True:
            try:
                line = await proc.stderr.readline()
            except ValueError:
                continue
            if not line:
                break
            self._stderr_lines.append(line.decode("utf-8", errors="replace").rstrip())

    async def _watch_exit(self, proc: asyncio.subprocess.Process) -> None:
        code = await proc.wait()
        # Let any final responses already on the pipe reach their callers.
        if self._stdout_task is not None:
            await asyncio.wait({self._stdout_task}, timeout=1.0)
        log.debug("server process exited", returncode=code)
        if self._pending:
            self._fail_pending(McpServerExited(code, self.stderr_tail()))

    def _fail_pending(self, exc: McpClientError) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(exc)
        self._pending.clear()
