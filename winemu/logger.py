"""Coloured console output with printf-style formatting."""

from __future__ import annotations

import enum
import re
import sys
from typing import Any, TextIO

__all__ = ["Color", "color_code", "Logger"]

_MAX_LENGTH = 0x1000 - 1
_LENGTH_MODIFIER = re.compile(r"%([-+ #0]*(?:\d+|\*)?(?:\.(?:\d+|\*))?)(?:hh|h|ll|l|z|j|t|L|I64)([diouxXeEfgGcs])")

_RESET = "\033[0m"


class Color(enum.Enum):
    BLACK = enum.auto()
    RED = enum.auto()
    GREEN = enum.auto()
    YELLOW = enum.auto()
    BLUE = enum.auto()
    CYAN = enum.auto()
    PINK = enum.auto()
    WHITE = enum.auto()
    GRAY = enum.auto()
    DARK_GRAY = enum.auto()


_CODES = {
    Color.BLACK: "\033[0;90m",
    Color.RED: "\033[0;91m",
    Color.GREEN: "\033[0;92m",
    Color.YELLOW: "\033[0;93m",
    Color.BLUE: "\033[0;94m",
    Color.CYAN: "\033[0;96m",
    Color.PINK: "\033[0;95m",
    Color.WHITE: "\033[0;97m",
    Color.DARK_GRAY: "\033[0;97m",
}


def color_code(color: Color) -> str:
    """ANSI escape sequence for a colour; gray is the terminal default."""
    return _CODES.get(color, _RESET)


def _format(message: str, args: tuple[Any, ...]) -> str:
    if args:
        text = _LENGTH_MODIFIER.sub(r"%\1\2", message) % args
    else:
        text = message
    return text[:_MAX_LENGTH]


class Logger:
    """Writes formatted, coloured messages to a stream (stdout by default)."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self._disabled = False

    def print(self, color: Color, message: str, *args: Any) -> None:
        if self._disabled:
            return
        text = _format(message, args)
        stream = self._stream if self._stream is not None else sys.stdout
        stream.write(color_code(color))
        try:
            stream.write(text)
        finally:
            stream.flush()
            stream.write(_RESET)
            stream.flush()

    def info(self, message: str, *args: Any) -> None:
        self.print(Color.CYAN, message, *args)

    def warn(self, message: str, *args: Any) -> None:
        self.print(Color.YELLOW, message, *args)

    def error(self, message: str, *args: Any) -> None:
        self.print(Color.RED, message, *args)

    def success(self, message: str, *args: Any) -> None:
        self.print(Color.GREEN, message, *args)

    def log(self, message: str, *args: Any) -> None:
        self.print(Color.GRAY, message, *args)

    def disable_output(self, value: bool) -> None:
        self._disabled = value