"""Terminal styling helpers and a plain text table."""

from __future__ import annotations

import sys

RESET = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"
ITALIC = "\033[3m"
UNDERLINE = "\033[4m"

BLACK = "\033[30m"
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
BLUE = "\033[34m"
MAGENTA = "\033[35m"
CYAN = "\033[36m"
WHITE = "\033[37m"
GRAY = "\033[90m"

BG_BLACK = "\033[40m"
BG_RED = "\033[41m"
BG_GREEN = "\033[42m"
BG_YELLOW = "\033[43m"
BG_BLUE = "\033[44m"
BG_MAGENTA = "\033[45m"
BG_CYAN = "\033[46m"
BG_WHITE = "\033[47m"

ICON_SUCCESS = "✔"
ICON_ERROR = "✘"
ICON_INFO = "ℹ"
ICON_WARN = "⚠"
ICON_BULLET = "•"
ICON_ARROW = "➜"


def style(text: str, *codes: str) -> str:
    """Wrap ``text`` in the given escape codes followed by a reset."""
    return "".join(codes) + text + RESET


def _announce(icon: str, color: str, msg: str) -> None:
    print(f"{style(icon, color, BOLD)} {msg}")


def success(msg: str) -> None:
    """Print a success line to stdout."""
    _announce(ICON_SUCCESS, GREEN, msg)


def error(msg: str) -> None:
    """Print an error line to stdout."""
    _announce(ICON_ERROR, RED, msg)


def warn(msg: str) -> None:
    """Print a warning line to stdout."""
    _announce(ICON_WARN, YELLOW, msg)


def info(msg: str) -> None:
    """Print an informational line to stdout."""
    _announce(ICON_INFO, BLUE, msg)


def header(msg: str) -> None:
    """Print an underlined section header."""
    print(f"\n{style(msg, CYAN, BOLD, UNDERLINE)}\n{' ' * len(msg)}")


def dimmed(msg: str) -> str:
    """Return ``msg`` styled in gray."""
    return style(msg, GRAY)


def accent(msg: str) -> str:
    """Return ``msg`` styled in bold cyan."""
    return style(msg, CYAN, BOLD)


class Table:
    """A simple left-aligned text table printed to stdout."""

    def __init__(self, *headers: str) -> None:
        self.headers: list[str] = list(headers)
        self.rows: list[list[str]] = []

    def add_row(self, *cells: str) -> None:
        """Append a row of cells."""
        self.rows.append(list(cells))

    def render(self) -> None:
        """Print the table; cells beyond the header count are dropped."""
        if not self.headers and not self.rows:
            return

        widths = [len(h) for h in self.headers]
        for row in self.rows:
            for i, cell in enumerate(row[: len(widths)]):
                widths[i] = max(widths[i], len(cell))

        out = sys.stdout
        out.write(
            "".join(style(h.ljust(w + 2), GRAY, BOLD) for h, w in zip(self.headers, widths))
            + "\n"
        )
        out.write("".join("-" * w + "  " for w in widths) + "\n")
        for row in self.rows:
            out.write("".join(cell.ljust(w + 2) for cell, w in zip(row, widths)) + "\n")
        out.write("\n")