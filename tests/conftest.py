"""Shared test fixtures for pwmcp.

Fixture tiers:
  test_config: headless Config with a tmp screenshot dir
  mock_playwright: async_playwright patched; browser/context/page are mocks
  manager: BrowserManager over mock_playwright (not launched)
  real_browser: skips unless Playwright can launch Chromium
"""
from __future__ import annotations

import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import structlog

from pwmcp.browser import BrowserManager
from pwmcp.config import Config
from pwmcp.logs import configure_logging
from tests.helpers import make_mock_page


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _logging() -> Generator[None, None, None]:
    """Route structlog to the (captured) stderr of the current test."""
    configure_logging("debug")
    yield
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()


# ---------------------------------------------------------------------------
# Config fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def test_config(tmp_path: Path) -> Config:
    """Isolated Config for a single test: headless, tmp screenshot dir."""
    return Config(
        headless=True,
        slow_mo_ms=0,
        default_timeout_ms=5000,
        screenshot_dir=tmp_path / "screenshots",
        log_level="debug",
        project_root=tmp_path,
    )


# ---------------------------------------------------------------------------
# Playwright mocks
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_playwright() -> Generator[dict, None, None]:
    """Patch async_playwright to hand out mock handles."""
    with patch("pwmcp.browser.async_playwright") as mock_ap:
        pw = MagicMock(name="playwright")
        pw.stop = AsyncMock()
        mock_ap.return_value.start = AsyncMock(return_value=pw)

        browser = MagicMock(name="browser")
        browser.close = AsyncMock()
        pw.chromium.launch = AsyncMock(return_value=browser)

        context = MagicMock(name="context")
        context.close = AsyncMock()
        browser.new_context = AsyncMock(return_value=context)

        page = make_mock_page()
        context.new_page = AsyncMock(return_value=page)

        yield {
            "async_playwright": mock_ap,
            "pw": pw,
            "browser": browser,
            "context": context,
            "page": page,
            "locator": page.locator.return_value,
        }


@pytest.fixture
def manager(test_config: Config, mock_playwright: dict) -> BrowserManager:
    return BrowserManager(test_config)


# ---------------------------------------------------------------------------
# real_browser fixture
# ---------------------------------------------------------------------------

_CHROMIUM_PROBE = (
    "from playwright.sync_api import sync_playwright\n"
    "with sync_playwright() as p:\n"
    "    p.chromium.launch(headless=True).close()\n"
)

_chromium_ok: bool | None = None


@pytest.fixture
def real_browser(tmp_path: Path) -> dict[str, str]:
    """Fixture for tests that launch a real Chromium (marked real_browser).

    Probes once per session in a subprocess; skips if the browser binaries
    are missing (run `playwright install chromium`). Returns an environment
    for spawning the server headless with a tmp screenshot dir.

    To run only real_browser tests:
        .venv/bin/python -m pytest tests/ -m real_browser -v
    """
    global _chromium_ok
    if _chromium_ok is None:
        try:
            result = subprocess.run(
                [sys.executable, "-c", _CHROMIUM_PROBE],
                capture_output=True,
                timeout=60,
            )
            _chromium_ok = result.returncode == 0
        except subprocess.TimeoutExpired:
            _chromium_ok = False
    if not _chromium_ok:
        pytest.skip("Chromium not available for Playwright, run `playwright install chromium`")

    return {
        **os.environ,
        "HEADLESS": "true",
        "SCREENSHOT_DIR": str(tmp_path / "screenshots"),
        "LOG_LEVEL": "debug",
    }


# ---------------------------------------------------------------------------
# pytest markers
# ---------------------------------------------------------------------------

def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "real_browser: mark test as requiring an installed Playwright Chromium",
    )
