#!/usr/bin/env python3
"""Proof of concept: launch, navigate, inspect, screenshot, quit.

Run with: .venv/bin/python scripts/poc_basic.py [url]

Honours HEADLESS / SLOWMO_MS / DEFAULT_TIMEOUT_MS / SCREENSHOT_DIR.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from pwmcp import config
from pwmcp.browser import BrowserManager
from pwmcp.logs import configure_logging

DEFAULT_URL = "https://example.com"


async def run(url: str) -> None:
    cfg = config.load()
    async with BrowserManager(cfg) as browser:
        print("[1/4] Browser launched")

        await browser.navigate(url)
        print(f"[2/4] Navigated: title='{await browser.get_title()}' url={await browser.get_url()}")

        info = await browser.get_element_info("h1", timeout_ms=5000)
        if info.found:
            print(f"[3/4] Found <{info.tag}>: {info.text!r} box={info.bounding_box}")
        else:
            print("[3/4] No <h1> on page")

        shot = cfg.screenshot_path / "poc-basic.png"
        await browser.screenshot(path=shot)
        print(f"[4/4] Screenshot: {shot}")
    print("Browser closed")


def main() -> None:
    url = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_URL
    configure_logging(config.load().log_level)
    asyncio.run(run(url))


if __name__ == "__main__":
    main()
