"""Test helpers for pwmcp."""
from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

HELPERS_DIR = Path(__file__).parent
FAKE_SERVER_SCRIPT = HELPERS_DIR / "fake_server.py"

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24


def make_mock_page() -> MagicMock:
    """Page mock; screenshot() writes PNG_BYTES when given a path.

    page.locator() always returns the same locator mock (``.first`` included),
    so tests can set side effects on ``page.locator.return_value``.
    """
    page = MagicMock(name="page")
    page.url = "https://example.com/"
    page.title = AsyncMock(return_value="Example Domain")
    page.goto = AsyncMock(return_value=None)
    page.close = AsyncMock()

    async def _screenshot(path=None, full_page=False, type="png"):
        if path:
            Path(path).write_bytes(PNG_BYTES)
        return PNG_BYTES

    page.screenshot = AsyncMock(side_effect=_screenshot)

    locator = MagicMock(name="locator")
    locator.first = locator
    locator.click = AsyncMock()
    locator.press_sequentially = AsyncMock()
    locator.fill = AsyncMock()
    locator.wait_for = AsyncMock()
    locator.evaluate = AsyncMock(return_value="a")
    locator.inner_text = AsyncMock(return_value="More information...")
    locator.bounding_box = AsyncMock(
        return_value={"x": 10.0, "y": 20.0, "width": 100.0, "height": 18.0}
    )
    locator.count = AsyncMock(return_value=1)
    page.locator.return_value = locator
    return page
