"""Load and provide pwmcp configuration from pwmcp.toml and the environment."""
from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from pwmcp.fs import resolve_absolute

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib  # type: ignore[import]
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[no-redef]

CONFIG_FILE = "pwmcp.toml"

_TRUE = ("true", "1", "yes")
_FALSE = ("false", "0", "no")


@dataclass
class Config:
    headless: bool = False
    slow_mo_ms: int = 0
    default_timeout_ms: int = 30_000
    screenshot_dir: Path = Path("./screenshots")
    log_level: str = "info"
    project_root: Path = field(default_factory=Path.cwd)

    @property
    def screenshot_path(self) -> Path:
        """Absolute screenshot directory; relative values hang off project_root."""
        return resolve_absolute(self.screenshot_dir, self.project_root)


def parse_bool(value: object, default: bool) -> bool:
    """Parse true/1/yes and false/0/no; anything else yields *default*."""
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    normalized = str(value).strip().lower()
    if normalized in _TRUE:
        return True
    if normalized in _FALSE:
        return False
    return default


def parse_non_negative_int(value: object, default: int) -> int:
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, int):
        return value if value >= 0 else default
    try:
        parsed = int(str(value).strip(), 10)
    except ValueError:
        return default
    return parsed if parsed >= 0 else default


def load(
    project_root: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """Load config from pwmcp.toml, then apply environment overrides.

    All fields have defaults, so neither the file nor any variable is required.
    """
    if project_root is None:
        project_root = Path.cwd()
    if environ is None:
        environ = os.environ

    toml_path = project_root / CONFIG_FILE
    data: dict = {}
    if toml_path.exists():
        with open(toml_path, "rb") as f:
            data = tomllib.load(f)

    browser = data.get("browser", {})
    logging_ = data.get("logging", {})

    headless = parse_bool(browser.get("headless"), False)
    slow_mo_ms = parse_non_negative_int(browser.get("slow_mo_ms"), 0)
    default_timeout_ms = parse_non_negative_int(browser.get("default_timeout_ms"), 30_000)
    screenshot_dir = browser.get("screenshot_dir") or "./screenshots"
    log_level = logging_.get("level") or "info"

    # Environment variables win over the file; empty values count as unset.
    headless = parse_bool(environ.get("HEADLESS") or None, headless)
    slow_mo_ms = parse_non_negative_int(environ.get("SLOWMO_MS") or None, slow_mo_ms)
    default_timeout_ms = parse_non_negative_int(
        environ.get("DEFAULT_TIMEOUT_MS") or None, default_timeout_ms
    )
    screenshot_dir = environ.get("SCREENSHOT_DIR") or screenshot_dir
    log_level = environ.get("LOG_LEVEL") or log_level

    return Config(
        headless=headless,
        slow_mo_ms=slow_mo_ms,
        default_timeout_ms=default_timeout_ms,
        screenshot_dir=Path(screenshot_dir),
        log_level=str(log_level).strip().lower(),
        project_root=project_root.resolve(),
    )
