#!/usr/bin/env python3
"""Delete screenshots from SCREENSHOT_DIR.

Usage:
    python3 demo_clean.py                 # all *.png
    python3 demo_clean.py --pattern 'error-*.png'
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from pwmcp import config
from pwmcp.browser import BrowserManager
from pwmcp.logs import configure_logging


def main() -> None:
    parser = argparse.ArgumentParser(description="Clean screenshot directory")
    parser.add_argument("--pattern", default="*.png", help="filename pattern (* wildcard)")
    args = parser.parse_args()

    cfg = config.load()
    configure_logging(cfg.log_level)

    # Cleaning needs no running browser.
    deleted = BrowserManager(cfg).clean_screenshots(args.pattern)
    print(f"Deleted {deleted} file(s) matching {args.pattern!r} from {cfg.screenshot_path}")


if __name__ == "__main__":
    main()
