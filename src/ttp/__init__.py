"""TTP package bootstrap.

The Tools Project bundles a command/verb runtime, a layered configuration
cascade, a DBMS indirection layer and a minimal daemon skeleton. This module
only exposes metadata other modules (and packaging machinery) rely upon.
"""
from __future__ import annotations

__all__ = ["__version__", "get_version"]

# NOTE: The version is duplicated in ``pyproject.toml``.
__version__ = "0.1.0a0"


def get_version() -> str:
    """Return the current package version."""
    return __version__
