"""Diagnostic logging setup.

Everything is written to stderr (or an explicit stream). stdout belongs to
the JSON-RPC channel and must never carry log lines.
"""
from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def parse_level(name: str | None) -> int:
    """Map debug/info/warn/error to a stdlib level; unknown names mean info."""
    if not name:
        return logging.INFO
    return _LEVELS.get(name.strip().lower(), logging.INFO)


def configure_logging(level: str | None = "info", stream: TextIO | None = None) -> None:
    out = stream if stream is not None else sys.stderr
    numeric = parse_level(level)

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=out),
        cache_logger_on_first_use=False,
    )

    # Third-party libraries use stdlib logging; keep them on the same stream.
    logging.basicConfig(
        level=numeric,
        stream=out,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )
