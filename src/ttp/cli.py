"""Console entry points of the TTP commands.

Each console script is a command whose first argument names a verb; the
command name is fixed by the entry point rather than derived from the
installed script path.
"""
from __future__ import annotations

import sys

from .commands import run


def _main(command: str) -> None:
    sys.exit(run([command, *sys.argv[1:]], command=command))


def ttp_main() -> None:
    """Entry point of the ``ttp`` command."""
    _main("ttp")


def dbms_main() -> None:
    """Entry point of the ``dbms`` command."""
    _main("dbms")


def daemon_main() -> None:
    """Entry point of the ``daemon`` command."""
    _main("daemon")


def services_main() -> None:
    """Entry point of the ``services`` command."""
    _main("services")


__all__ = ["daemon_main", "dbms_main", "services_main", "ttp_main"]
