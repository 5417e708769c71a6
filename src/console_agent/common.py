"""Common utility functions for the project."""

import re
import sys
from enum import Enum
from typing import (
    Any,
    TextIO,
)

_ANSI_RE = re.compile(r"\033\[[0-9;]*m")
_RESET = "\033[0m"


class AnsiColors(Enum):
    """
    ANSI color codes for terminal output.
    """

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    DIM = "\033[2m"


def _is_tty(stream: TextIO) -> bool:
    isatty = getattr(stream, "isatty", None)
    try:
        return bool(isatty and isatty())
    except ValueError:  # closed stream
        return False


def colorize(text: str, color: AnsiColors, stream: TextIO | None = None) -> str:
    """
    Wrap *text* in the colour escape codes when *stream* is a terminal.

    Args:
        text: The text to colour
        color: The color to use (AnsiColors enum)
        stream: The stream the text is destined for (default: ``sys.stdout``)
    """
    if not _is_tty(stream or sys.stdout):
        return text
    return f"{color.value}{text}{_RESET}"


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from *text*."""
    return _ANSI_RE.sub("", text)


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color.

    Args:
        text: The text to print
        color: The color to use (AnsiColors enum)
        args: Additional positional arguments for print
        kwargs: Additional keyword arguments for print
    """
    stream = kwargs.get("file") or sys.stdout
    print(colorize(text, color, stream), *args, **kwargs)
