"""MCP server: line-delimited JSON-RPC 2.0 over stdio.

stdout carries protocol messages only, one JSON object per line. All
diagnostics go to stderr via structlog (see pwmcp.logs).

Run with:

    python -m pwmcp
    pwmcp-server
"""
from __future__ import annotations

import asyncio
import json
import sys
from enum import Enum
from typing import Any, BinaryIO

import structlog
from mcp.types import (
    Implementation,
    InitializeResult,
    ServerCapabilities,
    ToolsCapability,
)

from pwmcp import config as config_module
from pwmcp.browser import BrowserManager
from pwmcp.config import Config
from pwmcp.errors import (
    InternalError,
    InvalidParams,
    InvalidRequest,
    JsonRpcError,
    MethodNotFound,
    ParseError,
)
from pwmcp.lifecycle import ExitCode, ShutdownCoordinator
from pwmcp.logs import configure_logging
from pwmcp.tools import ToolRegistry, list_tools

log = structlog.get_logger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "playwright-mcp-framework"
SERVER_VERSION = "0.1.0"

READ_LIMIT = 16 * 1024 * 1024  # bytes per input line


class ServerState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"


def initialize_result() -> dict[str, Any]:
    result = InitializeResult(
        protocolVersion=PROTOCOL_VERSION,
        capabilities=ServerCapabilities(tools=ToolsCapability()),
        serverInfo=Implementation(name=SERVER_NAME, version=SERVER_VERSION),
    )
    return result.model_dump(by_alias=True, exclude_none=True)


def _error_response(request_id: Any, error: JsonRpcError) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": error.to_error()}


def _valid_id(value: Any) -> bool:
    return value is None or (
        isinstance(value, (str, int, float)) and not isinstance(value, bool)
    )


class McpServer:
    """Dispatches JSON-RPC requests to the browser tools."""

    def __init__(
        self,
        manager: BrowserManager,
        coordinator: ShutdownCoordinator | None = None,
    ) -> None:
        self.manager = manager
        self.coordinator = coordinator
        self.tools = ToolRegistry(manager)
        self.state = ServerState.UNINITIALIZED
        self.client_info: dict[str, Any] | None = None

        self._output: BinaryIO | None = None
        self._tasks: set[asyncio.Task] = set()

    # -- Transport -------------------------------------------------------------

    async def serve(self, reader: asyncio.StreamReader, output: BinaryIO) -> None:
        """Read requests until EOF, then wait for in-flight handlers."""
        self._output = output
        log.info("ready to receive requests")
        try:
            while True:
                try:
                    line = await reader.readline()
                except ValueError as exc:
                    # Line exceeded the reader limit; the rest of it was discarded.
                    log.error("request line too long", error=str(exc))
                    self._send(_error_response(None, ParseError("Parse error", data=str(exc))))
                    continue
                if not line:
                    break
                if not line.strip():
                    continue
                task = asyncio.create_task(self._process_line(line))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        except asyncio.CancelledError:
            for task in list(self._tasks):
                task.cancel()
            raise
        log.info("input closed")
        await self.drain()

    async def serve_stdio(self, output: BinaryIO | None = None) -> None:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=READ_LIMIT)
        await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(reader), sys.stdin
        )
        await self.serve(reader, output if output is not None else sys.stdout.buffer)

    async def drain(self) -> None:
        if self._tasks:
            log.debug("waiting for in-flight requests", count=len(self._tasks))
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _process_line(self, line: bytes) -> None:
        response = await self.handle_line(line)
        if response is not None:
            self._send(response)

    def _send(self, message: dict[str, Any]) -> None:
        if self._output is None:
            raise RuntimeError("server output is not attached")
        try:
            data = json.dumps(message, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            log.error("response not serializable", error=str(exc))
            data = json.dumps(
                _error_response(
                    message.get("id"),
                    InternalError("Internal error", data="response not serializable"),
                )
            )
        self._output.write(data.encode("utf-8") + b"\n")
        self._output.flush()

    # -- Dispatch --------------------------------------------------------------

    async def handle_line(self, line: bytes | str) -> dict[str, Any] | None:
        """Handle one raw input line; returns the response or None."""
        try:
            message = json.loads(line)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            log.error("JSON parse error", error=str(exc))
            return _error_response(None, ParseError("Parse error", data=str(exc)))
        return await self.handle_message(message)

    async def handle_message(self, message: Any) -> dict[str, Any] | None:
        if not isinstance(message, dict):
            return _error_response(
                None, InvalidRequest("Invalid Request", data="expected a JSON object")
            )

        request_id = message.get("id")
        if not _valid_id(request_id):
            return _error_response(
                None, InvalidRequest("Invalid Request", data='invalid "id"')
            )
        method = message.get("method")
        if message.get("jsonrpc") != "2.0" or not isinstance(method, str):
            return _error_response(
                request_id,
                InvalidRequest("Invalid Request", data='expected jsonrpc "2.0" and a method'),
            )

        if "id" not in message and method.startswith("notifications/"):
            log.debug("notification received", method=method)
            return None

        log.debug("request received", method=method, id=request_id)
        try:
            result = await self._dispatch(method, message.get("params"))
        except JsonRpcError as exc:
            return _error_response(request_id, exc)
        except Exception as exc:
            log.exception("unexpected error handling request", method=method)
            return _error_response(request_id, InternalError("Internal error", data=str(exc)))
        return {"jsonrpc": "2.0", "id": request_id, "result": result}

    async def _dispatch(self, method: str, params: Any) -> dict[str, Any]:
        if method == "initialize":
            return self._initialize(params)
        if method == "ping":
            return {}
        if method == "tools/list":
            return {"tools": list_tools()}
        if method == "tools/call":
            return await self._call_tool(params)
        raise MethodNotFound(f"Method not found: {method}", data={"method": method})

    def _initialize(self, params: Any) -> dict[str, Any]:
        if isinstance(params, dict):
            client_info = params.get("clientInfo")
            if isinstance(client_info, dict):
                self.client_info = client_info
        self.state = ServerState.INITIALIZED
        log.info("client initialized", client=self.client_info)
        return initialize_result()

    async def _call_tool(self, params: Any) -> dict[str, Any]:
        if not isinstance(params, dict):
            raise InvalidParams("Invalid params: expected object")
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise InvalidParams('Invalid params: missing or invalid "name"')
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidParams('Invalid params: "arguments" must be an object')

        if self.coordinator is not None and self.coordinator.is_shutdown_in_progress:
            raise InternalError("Server is shutting down", data={"tool": name})
        return await self.tools.call(name, arguments)


# -- Entry point -------------------------------------------------------------------


async def run(cfg: Config, output: BinaryIO | None = None) -> int:
    """Serve stdio until shutdown; returns the process exit code."""
    manager = BrowserManager(cfg)

    async def cleanup() -> None:
        log.info("closing browser")
        await manager.shutdown()

    coordinator = ShutdownCoordinator(cleanup)
    loop = asyncio.get_running_loop()
    coordinator.install(loop)

    server = McpServer(manager, coordinator)
    serve_task = asyncio.create_task(server.serve_stdio(output))
    wait_task = asyncio.create_task(coordinator.wait())
    log.info("pwmcp server started", version=SERVER_VERSION, headless=cfg.headless)

    try:
        done, _ = await asyncio.wait(
            {serve_task, wait_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if serve_task in done:
            exc = serve_task.exception()
            if exc is not None:
                log.error("fatal error in server loop", error=repr(exc))
                coordinator.request_shutdown("fatal error", ExitCode.ERROR)
            else:
                coordinator.request_shutdown("stdin closed", ExitCode.SUCCESS)
        code = await wait_task
    finally:
        if not serve_task.done():
            serve_task.cancel()
            await asyncio.gather(serve_task, return_exceptions=True)
        coordinator.uninstall(loop)

    log.info("pwmcp server stopped", exit_code=code)
    return code


def main() -> None:
    cfg = config_module.load()
    configure_logging(cfg.log_level)
    protocol_out = sys.stdout.buffer
    # Stray print() calls must not corrupt the protocol stream.
    sys.stdout = sys.stderr
    sys.exit(asyncio.run(run(cfg, protocol_out)))


if __name__ == "__main__":
    main()
