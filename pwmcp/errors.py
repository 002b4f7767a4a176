"""Error taxonomy shared by the session manager and the protocol server.

Failures are classified by exception type and ``kind``, never by inspecting
the human-readable message.
"""
from __future__ import annotations

from enum import Enum
from typing import Any

from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
)


class ErrorKind(str, Enum):
    NOT_LAUNCHED = "not_launched"
    ALREADY_LAUNCHED = "already_launched"
    ACTION_FAILED = "action_failed"
    ACTION_TIMEOUT = "action_timeout"
    INTERNAL = "internal"


class BrowserError(Exception):
    """Base class for session manager failures."""

    kind: ErrorKind = ErrorKind.INTERNAL

    @property
    def cause(self) -> BaseException | None:
        return self.__cause__


class PreconditionError(BrowserError):
    """Operation called in a session state that forbids it."""


class NotLaunchedError(PreconditionError):
    kind = ErrorKind.NOT_LAUNCHED

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(
            f"Cannot {operation}: Browser is not launched. Call launch() first."
        )


class AlreadyLaunchedError(PreconditionError):
    kind = ErrorKind.ALREADY_LAUNCHED

    def __init__(self) -> None:
        super().__init__(
            "Browser is already launched. Call quit() before launching again."
        )


class ActionError(BrowserError):
    """Element-targeting operation failed; the engine error is the cause."""

    kind = ErrorKind.ACTION_FAILED

    def __init__(self, action: str, selector: str, timeout_ms: int, detail: str) -> None:
        self.action = action
        self.selector = selector
        self.timeout_ms = timeout_ms
        super().__init__(
            f'{action} failed for selector "{selector}" (timeout {timeout_ms}ms): {detail}'
        )


class ActionabilityTimeoutError(ActionError):
    """Target never became actionable before the timeout elapsed."""

    kind = ErrorKind.ACTION_TIMEOUT


# ---------------------------------------------------------------------------
# JSON-RPC transport errors
# ---------------------------------------------------------------------------


class JsonRpcError(Exception):
    """An error that maps directly onto a JSON-RPC error object."""

    code: int = INTERNAL_ERROR

    def __init__(self, message: str, data: Any = None, code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.data = data
        if code is not None:
            self.code = code

    def to_error(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


class ParseError(JsonRpcError):
    code = PARSE_ERROR


class InvalidRequest(JsonRpcError):
    code = INVALID_REQUEST


class MethodNotFound(JsonRpcError):
    code = METHOD_NOT_FOUND


class InvalidParams(JsonRpcError):
    code = INVALID_PARAMS


class InternalError(JsonRpcError):
    code = INTERNAL_ERROR
