"""Playwright browser automation exposed as an MCP tool server.

Provides a single-session browser manager with per-step logging and error
screenshots, a stdio JSON-RPC server that exposes it as MCP tools, and a
subprocess client for driving the server from tests.
"""

from pwmcp.browser import BrowserManager, ElementInfo
from pwmcp.config import Config, load
from pwmcp.errors import (
    ActionabilityTimeoutError,
    ActionError,
    AlreadyLaunchedError,
    BrowserError,
    NotLaunchedError,
)

__version__ = "0.1.0"

__all__ = [
    "ActionError",
    "ActionabilityTimeoutError",
    "AlreadyLaunchedError",
    "BrowserError",
    "BrowserManager",
    "Config",
    "ElementInfo",
    "NotLaunchedError",
    "load",
]
