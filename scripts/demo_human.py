#!/usr/bin/env python3
"""Demo for watching BrowserManager work in a headed browser.

Ctrl+C or SIGTERM at any point still closes the browser: the shutdown
coordinator runs browser.shutdown() and the script exits with 130 / 0.

Run with: .venv/bin/python scripts/demo_human.py [url]
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from pwmcp import config
from pwmcp.browser import BrowserManager
from pwmcp.lifecycle import ExitCode, ShutdownCoordinator
from pwmcp.logs import configure_logging

DEFAULT_URL = "https://example.com"
PAUSE_SECONDS = 2


async def demo(browser: BrowserManager, url: str) -> None:
    print("[1/4] Launching browser (headed, slowed down)...")
    await browser.launch(headless=False, slow_mo_ms=500)

    print(f"[2/4] Navigating to {url}...")
    await browser.navigate(url)

    shot = browser.cfg.screenshot_path / "demo.png"
    print(f"[3/4] Full-page screenshot: {shot}")
    await browser.screenshot(path=shot, full_page=True)

    print("[4/4] Clicking the first link...")
    await browser.click("a")

    print(f"Waiting {PAUSE_SECONDS}s so you can see the result (Ctrl+C to stop early)")
    await asyncio.sleep(PAUSE_SECONDS)
    print("Demo completed")


async def run(url: str) -> int:
    cfg = config.load()
    browser = BrowserManager(cfg)
    coordinator = ShutdownCoordinator(browser.shutdown)
    loop = asyncio.get_running_loop()
    coordinator.install(loop)

    demo_task = asyncio.create_task(demo(browser, url))
    wait_task = asyncio.create_task(coordinator.wait())
    try:
        done, _ = await asyncio.wait(
            {demo_task, wait_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if demo_task in done:
            exc = demo_task.exception()
            if exc is not None:
                print(f"ERROR during demo: {exc}")
                coordinator.request_shutdown("demo failed", ExitCode.ERROR)
            else:
                coordinator.request_shutdown("demo finished", ExitCode.SUCCESS)
        else:
            print(f"Interrupted ({coordinator.reason}), browser closed")
        code = await wait_task
    finally:
        if not demo_task.done():
            demo_task.cancel()
            await asyncio.gather(demo_task, return_exceptions=True)
        coordinator.uninstall(loop)
        # Second line of defence; a no-op once the coordinator has run.
        await browser.shutdown()

    print(f"Browser closed (exit code {code})")
    return code


def main() -> None:
    url = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_URL
    configure_logging(config.load().log_level)
    sys.exit(asyncio.run(run(url)))


if __name__ == "__main__":
    main()
