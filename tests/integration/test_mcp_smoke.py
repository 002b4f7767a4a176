"""Smoke tests: the real server spawned over stdio by McpTestClient.

Protocol tests need no browser. Tests marked real_browser launch a headless
Chromium against a local HTML page (no network access needed).
"""
from __future__ import annotations

import asyncio
import os
import signal
import sys
from pathlib import Path

import pytest

from pwmcp.client import McpCallError, McpTestClient

REPO_ROOT = Path(__file__).parent.parent.parent

PAGE = """<!doctype html>
<html><head><title>Smoke Page</title></head>
<body>
  <h1>Smoke Page</h1>
  <a href="#more">More information...</a>
  <input id="name" value="prefilled">
</body></html>
"""


def server_env(tmp_path: Path, base: dict | None = None) -> dict[str, str]:
    return {
        **(base or os.environ),
        "HEADLESS": "true",
        "SCREENSHOT_DIR": str(tmp_path / "screenshots"),
        "LOG_LEVEL": "debug",
    }


def make_client(env: dict[str, str]) -> McpTestClient:
    return McpTestClient(
        command=[sys.executable, "-m", "pwmcp"],
        cwd=REPO_ROOT,
        env=env,
    )


async def initialize(client: McpTestClient) -> dict:
    response = await client.call(
        "initialize",
        {
            "protocolVersion": "2024-11-05",
            "capabilities": {},
            "clientInfo": {"name": "smoke-test", "version": "0.0.1"},
        },
    )
    await client.notify("notifications/initialized")
    return response["result"]


# ---------------------------------------------------------------------------
# Protocol (no browser)
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_handshake_and_tool_list(tmp_path):
    async with make_client(server_env(tmp_path)) as client:
        result = await initialize(client)
        assert result["protocolVersion"] == "2024-11-05"
        assert result["serverInfo"]["name"] == "playwright-mcp-framework"

        tools = (await client.call("tools/list"))["result"]["tools"]
        assert len(tools) == 7
        assert {t["name"] for t in tools} >= {"browser_launch", "browser_quit"}
    assert client.returncode == 0


@pytest.mark.asyncio
async def test_unknown_tool_and_not_launched(tmp_path):
    async with make_client(server_env(tmp_path)) as client:
        await initialize(client)
        with pytest.raises(McpCallError) as excinfo:
            await client.call_tool("browser_hover")
        assert excinfo.value.code == -32601

        with pytest.raises(McpCallError) as excinfo:
            await client.call_tool("browser_navigate", {"url": "https://example.com"})
        assert excinfo.value.code == -32603
        assert "browser_launch" in excinfo.value.message


@pytest.mark.asyncio
async def test_parse_error_does_not_kill_server(tmp_path):
    async with make_client(server_env(tmp_path)) as client:
        waiter = asyncio.create_task(client.wait_for_response(None))
        await asyncio.sleep(0)
        await client.send_raw("{this is not json")
        with pytest.raises(McpCallError) as excinfo:
            await waiter
        assert excinfo.value.code == -32700

        assert (await client.call("ping"))["result"] == {}


@pytest.mark.asyncio
@pytest.mark.parametrize("sig,expected", [(signal.SIGTERM, 0), (signal.SIGINT, 130)])
async def test_signal_exit_codes(tmp_path, sig, expected):
    client = make_client(server_env(tmp_path))
    await client.start()
    try:
        await initialize(client)
        client.send_signal(sig)
        assert await client.wait(timeout=10) == expected
    finally:
        await client.stop()


@pytest.mark.asyncio
async def test_stdout_carries_only_protocol(tmp_path):
    async with make_client(server_env(tmp_path)) as client:
        await initialize(client)
        await client.call("tools/list")
        await asyncio.sleep(0.1)
        # Diagnostics went to stderr as JSON log lines.
        assert "ready to receive requests" in client.stderr_tail()


# ---------------------------------------------------------------------------
# End to end (real Chromium)
# ---------------------------------------------------------------------------

@pytest.mark.real_browser
@pytest.mark.asyncio
async def test_end_to_end(real_browser, tmp_path):
    page = tmp_path / "page.html"
    page.write_text(PAGE)
    shots = Path(real_browser["SCREENSHOT_DIR"])

    async with make_client(real_browser) as client:
        await initialize(client)

        launched = await client.call_tool("browser_launch", {"headless": True})
        assert "headless: true" in launched["content"][0]["text"]

        await client.call_tool("browser_navigate", {"url": page.as_uri()})

        found = await client.call_tool("browser_find", {"selector": "a", "timeoutMs": 5000})
        text = found["content"][0]["text"]
        assert "Found" in text
        assert "<a>" in text
        assert found["data"]["found"] is True
        assert found["data"]["tag"] == "a"
        assert found["data"]["text"] == "More information..."

        missing = await client.call_tool("browser_find", {"selector": "#nope", "timeoutMs": 200})
        assert missing["data"] == {"selector": "#nope", "found": False}

        await client.call_tool("browser_type", {"selector": "#name", "text": "replaced"})

        shot = await client.call_tool(
            "browser_screenshot", {"filename": "smoke.png", "returnBase64": True}
        )
        assert (shots / "smoke.png").stat().st_size > 0
        assert shot["content"][1]["mimeType"] == "image/png"

        with pytest.raises(McpCallError) as excinfo:
            await client.call_tool(
                "browser_click", {"selector": "#does-not-exist", "timeoutMs": 500}
            )
        assert excinfo.value.code == -32603
        assert excinfo.value.data["kind"] == "action_timeout"
        assert len(list(shots.glob("error-*.png"))) == 1

        closed = await client.call_tool("browser_quit")
        assert closed["content"][0]["text"] == "Browser session closed"

        with pytest.raises(McpCallError) as excinfo:
            await client.call_tool("browser_navigate", {"url": page.as_uri()})
        assert excinfo.value.data["kind"] == "not_launched"
    assert client.returncode == 0
