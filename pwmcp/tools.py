"""Browser tools exposed over MCP ``tools/call``.

Each tool maps 1:1 to a BrowserManager operation. Handlers validate
arguments, call the manager and turn the outcome into an MCP tool result.
Failures surface as JsonRpcError subclasses; the server serialises them.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Awaitable, Callable

import structlog
from mcp.types import ImageContent, TextContent, Tool

from pwmcp.browser import BrowserManager
from pwmcp.errors import (
    BrowserError,
    ErrorKind,
    InternalError,
    InvalidParams,
    JsonRpcError,
    MethodNotFound,
    NotLaunchedError,
)

log = structlog.get_logger(__name__)

NOT_LAUNCHED_MESSAGE = "Browser not launched. Call browser_launch first."

_TIMEOUT_SCHEMA = {
    "type": "integer",
    "minimum": 0,
    "description": "Timeout in milliseconds (defaults to DEFAULT_TIMEOUT_MS)",
}

TOOLS: list[Tool] = [
    Tool(
        name="browser_launch",
        description="Start a browser session (visible unless headless)",
        inputSchema={
            "type": "object",
            "properties": {
                "headless": {"type": "boolean", "description": "Run browser headless"},
            },
            "required": [],
        },
    ),
    Tool(
        name="browser_navigate",
        description="Go to a URL and wait until the DOM is parsed",
        inputSchema={
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "URL to navigate to"},
            },
            "required": ["url"],
        },
    ),
    Tool(
        name="browser_find",
        description="Inspect the first element matching a selector (tag, text, bounding box)",
        inputSchema={
            "type": "object",
            "properties": {
                "selector": {"type": "string", "description": "CSS, text= or other Playwright selector"},
                "timeoutMs": _TIMEOUT_SCHEMA,
            },
            "required": ["selector"],
        },
    ),
    Tool(
        name="browser_click",
        description="Click an element once it is visible, stable and enabled",
        inputSchema={
            "type": "object",
            "properties": {
                "selector": {"type": "string", "description": "Selector of the element to click"},
                "timeoutMs": _TIMEOUT_SCHEMA,
            },
            "required": ["selector"],
        },
    ),
    Tool(
        name="browser_type",
        description="Type text into an input, replacing its content unless clear is false",
        inputSchema={
            "type": "object",
            "properties": {
                "selector": {"type": "string", "description": "Selector of the input element"},
                "text": {"type": "string", "description": "Text to enter"},
                "timeoutMs": _TIMEOUT_SCHEMA,
                "clear": {"type": "boolean", "description": "Replace existing content (default true); false appends keystrokes"},
            },
            "required": ["selector", "text"],
        },
    ),
    Tool(
        name="browser_screenshot",
        description="Capture the viewport (optionally save to file and/or return base64)",
        inputSchema={
            "type": "object",
            "properties": {
                "filename": {
                    "type": "string",
                    "description": "Optional filename (relative to SCREENSHOT_DIR)",
                },
                "returnBase64": {
                    "type": "boolean",
                    "description": "Return the PNG as base64 image content",
                },
                "fullPage": {"type": "boolean", "description": "Capture full scrollable page"},
            },
            "required": [],
        },
    ),
    Tool(
        name="browser_quit",
        description="Close the browser session",
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
]

# Used in "Failed to <verb>: ..." messages.
_VERBS = {
    "browser_launch": "launch browser",
    "browser_navigate": "navigate",
    "browser_find": "find element",
    "browser_click": "click",
    "browser_type": "type",
    "browser_screenshot": "take screenshot",
    "browser_quit": "close browser",
}


def list_tools() -> list[dict[str, Any]]:
    return [t.model_dump(by_alias=True, exclude_none=True) for t in TOOLS]


def text_result(text: str, **extra: Any) -> dict[str, Any]:
    content = TextContent(type="text", text=text)
    return {"content": [content.model_dump(by_alias=True, exclude_none=True)], **extra}


# -- Argument helpers -----------------------------------------------------------


def _require_str(args: dict[str, Any], key: str, allow_empty: bool = False) -> str:
    value = args.get(key)
    if not isinstance(value, str) or (not allow_empty and not value):
        raise InvalidParams(f'Missing or invalid "{key}" parameter')
    return value


def _optional_bool(args: dict[str, Any], key: str) -> bool | None:
    value = args.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise InvalidParams(f'Invalid "{key}" parameter: expected boolean')
    return value


def _optional_timeout(args: dict[str, Any], key: str = "timeoutMs") -> int | None:
    value = args.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise InvalidParams(f'Invalid "{key}" parameter: expected non-negative number')
    return int(value)


# -- Registry --------------------------------------------------------------------


class ToolRegistry:
    """Dispatches tool calls by name to the browser manager."""

    def __init__(self, manager: BrowserManager) -> None:
        self.manager = manager
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]] = {
            "browser_launch": self._launch,
            "browser_navigate": self._navigate,
            "browser_find": self._find,
            "browser_click": self._click,
            "browser_type": self._type,
            "browser_screenshot": self._screenshot,
            "browser_quit": self._quit,
        }

    def has(self, name: str) -> bool:
        return name in self._handlers

    @property
    def names(self) -> list[str]:
        return list(self._handlers)

    async def call(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        handler = self._handlers.get(name)
        if handler is None:
            raise MethodNotFound(f"Unknown tool: {name}", data={"tool": name})

        log.info("calling tool", tool=name)
        try:
            result = await handler(arguments)
        except JsonRpcError:
            raise
        except NotLaunchedError as exc:
            log.warning("tool called before launch", tool=name)
            raise InternalError(
                NOT_LAUNCHED_MESSAGE, data={"tool": name, "kind": exc.kind.value}
            ) from exc
        except BrowserError as exc:
            log.error("tool failed", tool=name, kind=exc.kind.value, error=str(exc))
            raise InternalError(
                f"Failed to {_VERBS[name]}: {exc}",
                data={"tool": name, "kind": exc.kind.value},
            ) from exc
        except Exception as exc:
            log.error("tool failed", tool=name, kind=ErrorKind.INTERNAL.value, error=str(exc))
            raise InternalError(
                f"Failed to {_VERBS[name]}: {exc}",
                data={"tool": name, "kind": ErrorKind.INTERNAL.value},
            ) from exc
        log.info("tool completed", tool=name)
        return result

    # -- Handlers ----------------------------------------------------------------

    async def _launch(self, args: dict[str, Any]) -> dict[str, Any]:
        headless = _optional_bool(args, "headless")
        await self.manager.launch(headless=headless)
        effective = self.manager.cfg.headless if headless is None else headless
        return text_result(f"Browser launched (headless: {str(effective).lower()})")

    async def _navigate(self, args: dict[str, Any]) -> dict[str, Any]:
        url = _require_str(args, "url")
        await self.manager.navigate(url)
        return text_result(f"Navigated to {url}")

    async def _find(self, args: dict[str, Any]) -> dict[str, Any]:
        selector = _require_str(args, "selector")
        timeout_ms = _optional_timeout(args)
        info = await self.manager.get_element_info(selector, timeout_ms=timeout_ms)
        if info.found:
            text = f'Found <{info.tag}> element for selector "{selector}"'
            if info.text:
                text += f': "{info.text}"'
        else:
            text = f'No element found for selector "{selector}"'
        return text_result(text, data=info.to_dict())

    async def _click(self, args: dict[str, Any]) -> dict[str, Any]:
        selector = _require_str(args, "selector")
        timeout_ms = _optional_timeout(args)
        await self.manager.click(selector, timeout_ms=timeout_ms)
        return text_result(f'Clicked "{selector}"')

    async def _type(self, args: dict[str, Any]) -> dict[str, Any]:
        selector = _require_str(args, "selector")
        text = _require_str(args, "text", allow_empty=True)
        timeout_ms = _optional_timeout(args)
        clear = _optional_bool(args, "clear")
        await self.manager.type(
            selector,
            text,
            timeout_ms=timeout_ms,
            clear=True if clear is None else clear,
        )
        # The text itself is not echoed back; it may be a credential.
        return text_result(f'Typed {len(text)} characters into "{selector}"')

    async def _screenshot(self, args: dict[str, Any]) -> dict[str, Any]:
        filename = args.get("filename")
        return_base64 = _optional_bool(args, "returnBase64") or False
        full_page = _optional_bool(args, "fullPage") or False

        path: Path | None = None
        if filename is not None:
            path = self._screenshot_path(filename)

        data = await self.manager.screenshot(
            path=path, full_page=full_page, return_base64=return_base64
        )

        parts: list[str] = []
        if path is not None:
            parts.append(f"Screenshot saved to {path}")
        if return_base64:
            parts.append(f"returned as base64 ({len(data)} chars)")
        text = " and ".join(parts) if parts else "Screenshot captured"

        result = text_result(text)
        if return_base64:
            image = ImageContent(type="image", data=str(data), mimeType="image/png")
            result["content"].append(image.model_dump(by_alias=True, exclude_none=True))
        return result

    def _screenshot_path(self, filename: Any) -> Path:
        if not isinstance(filename, str) or not filename.strip():
            raise InvalidParams('Invalid "filename" parameter: expected non-empty string')
        relative = Path(filename)
        if relative.is_absolute() or ".." in relative.parts:
            raise InvalidParams(
                'Invalid "filename" parameter: must be relative to the screenshot directory'
            )
        return self.manager.cfg.screenshot_path / relative

    async def _quit(self, args: dict[str, Any]) -> dict[str, Any]:
        await self.manager.shutdown()
        return text_result("Browser session closed")
