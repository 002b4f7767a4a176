#!/usr/bin/env python3
"""Demo: failing actions produce clear errors and one error screenshot each.

Runs a click and a type against selectors that do not exist. Each failure
keeps the engine's original exception as ``__cause__``.

Run with: .venv/bin/python scripts/demo_error.py [--action click|type|both]
"""

import argparse
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

URL = "https://example.com"
MISSING_SELECTOR = "#does-not-exist"
MISSING_INPUT = "input#missing-field"


async def failing_click(browser: BrowserManager) -> None:
    await browser.click(MISSING_SELECTOR, timeout_ms=3000)


async def failing_type(browser: BrowserManager) -> None:
    await browser.type(MISSING_INPUT, "test text", timeout_ms=2000)


ACTIONS = {"click": failing_click, "type": failing_type}


def report(exc: ActionError) -> None:
    print(f"Caught expected {type(exc).__name__} ({exc.kind.value}):")
    print(f"  {exc}")
    cause = exc.__cause__
    if cause is not None:
        first_line = str(cause).splitlines()[0] if str(cause) else ""
        print(f"  cause: {type(cause).__name__}: {first_line[:80]}")


async def run(actions: list[str]) -> int:
    cfg = config.load()
    shots = cfg.screenshot_path
    before = set(shots.glob("error-*.png")) if shots.exists() else set()

    async with BrowserManager(cfg) as browser:
        await browser.navigate(URL)
        for name in actions:
            print(f"Attempting failing {name}...")
            try:
                await ACTIONS[name](browser)
            except ActionError as exc:
                report(exc)
            else:
                print(f"ERROR: {name} unexpectedly succeeded")
                return 1

    new_files = sorted(set(shots.glob("error-*.png")) - before)
    for path in new_files:
        print(f"Error screenshot: {path}")
    if len(new_files) != len(actions):
        print(f"ERROR: expected {len(actions)} error screenshot(s), found {len(new_files)}")
        return 1
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--action",
        choices=["click", "type", "both"],
        default="both",
        help="Which failing action to demonstrate (default: both)",
    )
    args = parser.parse_args()
    actions = ["click", "type"] if args.action == "both" else [args.action]

    configure_logging(config.load().log_level)
    sys.exit(asyncio.run(run(actions)))


if __name__ == "__main__":
    main()
