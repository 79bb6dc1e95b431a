"""Timestamped diagnostic messages written to stderr."""

from __future__ import annotations

import sys
from datetime import datetime
from typing import NoReturn

from glmquota.ui import BLUE, BOLD, GRAY, MAGENTA, RED, style

_debug_mode = False


def set_debug_mode(enabled: bool) -> None:
    """Turn debug messages on or off."""
    global _debug_mode
    _debug_mode = bool(enabled)


def _write(level: str, color: str, msg: str) -> None:
    stamp = datetime.now().strftime("%H:%M:%S")
    sys.stderr.write(f"{style(stamp, GRAY)} {style(level, color, BOLD)} {msg}\n")


def info(msg: str) -> None:
    """Write an INFO line."""
    _write("INFO", BLUE, msg)


def error(msg: str) -> None:
    """Write an ERROR line."""
    _write("ERROR", RED, msg)


def debug(msg: str) -> None:
    """Write a DEBUG line when debug mode is on."""
    if _debug_mode:
        _write("DEBUG", MAGENTA, msg)


def fatal(msg: str) -> NoReturn:
    """Write an ERROR line and exit with status 1."""
    error(msg)
    sys.exit(1)