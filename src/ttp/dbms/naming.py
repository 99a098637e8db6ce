"""Default backup file naming."""
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..context import ExecutionContext

BACKUP_SUFFIX = ".backup"


def compute_default_backup_filename(
    host: str,
    instance: str,
    database: str,
    mode: str,
    now: datetime,
    backup_path: Path,
) -> Path:
    """Return ``<backup_path>/<yymmdd>/<host>-<instance>-<database>-<yymmdd>-<HHMMSS>-<mode>.backup``."""
    day = now.strftime("%y%m%d")
    filename = f"{host}-{instance}-{database}-{day}-{now.strftime('%H%M%S')}-{mode}{BACKUP_SUFFIX}"
    return Path(backup_path) / day / filename


def ensure_backup_directory(ctx: ExecutionContext, output: Path) -> bool:
    """Create the parent directory of *output*, reporting failures."""
    directory = output.parent
    if directory.is_dir():
        return True
    if ctx.dummy_run:
        return ctx.dummy(f"creating directory '{directory}'")
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        ctx.error(f"unable to create '{directory}': {exc.strerror or exc}")
        return False
    ctx.verbose(f"created directory '{directory}'")
    return True


__all__ = ["BACKUP_SUFFIX", "compute_default_backup_filename", "ensure_backup_directory"]
