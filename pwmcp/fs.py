"""Filesystem helpers for the screenshot directory."""
from __future__ import annotations

import re
from pathlib import Path


def ensure_dir(path: str | Path) -> Path:
    """mkdir -p that refuses to treat an existing file as a directory."""
    p = Path(path)
    if p.exists():
        if not p.is_dir():
            raise NotADirectoryError(f"Path exists but is not a directory: {p}")
        return p
    p.mkdir(parents=True, exist_ok=True)
    return p


def path_exists(path: str | Path) -> bool:
    return Path(path).exists()


def resolve_absolute(path: str | Path, base: str | Path | None = None) -> Path:
    """Resolve relative paths against *base* (default: the working directory)."""
    p = Path(path)
    if p.is_absolute():
        return p
    return (Path(base) if base is not None else Path.cwd()) / p


def matches_pattern(filename: str, pattern: str) -> bool:
    """Match a simple glob: ``*`` is any run of characters, all else literal."""
    regex = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.fullmatch(regex, filename, flags=re.DOTALL) is not None


def clean_directory(path: str | Path, pattern: str | None = None) -> int:
    """Delete regular files (non-recursive) matching *pattern*.

    Returns the number of files deleted; a missing directory counts as empty.
    """
    p = Path(path)
    if not p.exists():
        return 0
    if not p.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {p}")

    deleted = 0
    try:
        entries = list(p.iterdir())
    except FileNotFoundError:
        # Directory disappeared between the check and the listing.
        return 0

    for entry in entries:
        if not entry.is_file() or entry.is_symlink():
            continue
        if pattern and not matches_pattern(entry.name, pattern):
            continue
        try:
            entry.unlink()
        except FileNotFoundError:
            continue
        deleted += 1
    return deleted
