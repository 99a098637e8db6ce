"""Message levels, prefixes and console rendering."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TextIO

from rich.console import Console
from rich.text import Text


@dataclass(frozen=True)
class LevelStyle:
    """Rendering attributes of a message level."""

    marker: str
    color: str | None
    stderr: bool


class Level(Enum):
    """Message levels known to the runtime."""

    INFO = LevelStyle("", None, False)
    VERBOSE = LevelStyle("(VER) ", "bright_blue", False)
    DUMMY = LevelStyle("(DUM) ", "cyan", False)
    WARN = LevelStyle("(WAR) ", "bright_yellow", True)
    ERROR = LevelStyle("(ERR) ", "bold red", True)


def message_prefix(command: str | None, verb: str | None = None, daemon: str | None = None) -> str:
    """Return the ``[<command> <verb>] `` or ``[<daemon>] `` prefix."""
    if command:
        return f"[{command} {verb}] " if verb else f"[{command}] "
    if daemon:
        return f"[{daemon}] "
    return ""


def format_line(prefix: str, level: Level, message: str) -> str:
    """Return the full text line for *message* at *level*."""
    return f"{prefix}{level.value.marker}{message}"


class MessagePrinter:
    """Writes message lines to stdout or stderr, colored on request.

    Lines are printed as :class:`rich.text.Text` so that brackets in messages
    are never interpreted as console markup.
    """

    def __init__(self, stdout: TextIO | None = None, stderr: TextIO | None = None) -> None:
        self._stdout = stdout
        self._stderr = stderr

    def _console(self, *, to_stderr: bool, colored: bool) -> Console:
        stream = self._stderr if to_stderr else self._stdout
        return Console(
            file=stream,
            stderr=to_stderr and stream is None,
            no_color=not colored,
            color_system="standard" if colored else None,
            force_terminal=True if colored else None,
            highlight=False,
            soft_wrap=True,
            emoji=False,
        )

    def print(self, line: str, level: Level, *, colored: bool = False) -> None:
        """Print *line* on the stream of *level*."""
        style = level.value.color if colored else None
        console = self._console(to_stderr=level.value.stderr, colored=colored)
        console.print(Text(line, style=style or ""))


__all__ = ["Level", "LevelStyle", "MessagePrinter", "format_line", "message_prefix"]
