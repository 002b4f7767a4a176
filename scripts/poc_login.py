#!/usr/bin/env python3
"""Proof of concept: log into the saucedemo.com demo shop.

Run with: .venv/bin/python scripts/poc_login.py

Uses the public demo credentials published on the login page.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from pwmcp import config
from pwmcp.browser import BrowserManager
from pwmcp.errors import ActionError
from pwmcp.logs import configure_logging

LOGIN_URL = "https://www.saucedemo.com/"
USERNAME = "standard_user"
PASSWORD = "secret_sauce"


async def run() -> int:
    cfg = config.load()
    async with BrowserManager(cfg) as browser:
        await browser.navigate(LOGIN_URL)
        print(f"[1/4] Opened {LOGIN_URL}")

        try:
            await browser.type("#user-name", USERNAME)
            await browser.type("#password", PASSWORD)
            print("[2/4] Credentials entered")

            await browser.click("#login-button")
            await browser.wait_for_selector(".inventory_list", timeout_ms=10_000)
        except ActionError as exc:
            print(f"  ERROR: {exc}")
            print(f"  Error screenshot saved under {cfg.screenshot_path}")
            return 1
        print(f"[3/4] Logged in. URL: {await browser.get_url()}")

        items = await browser.find(".inventory_item").count()
        shot = cfg.screenshot_path / "poc-login-inventory.png"
        await browser.screenshot(path=shot, full_page=True)
        print(f"[4/4] {items} inventory items, screenshot: {shot}")
    return 0


def main() -> None:
    configure_logging(config.load().log_level)
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
