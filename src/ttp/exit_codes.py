"""Exit codes used outside of the error-counter convention."""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Well-known exit codes.

    A regular run exits with its accumulated error count; these values cover
    the paths which terminate before any error could be counted.
    """

    OK = 0
    USAGE = 1
