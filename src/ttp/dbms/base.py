"""Contracts shared by the DBMS backends."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from ..config import InstanceDefinition
    from ..context import ExecutionContext

BACKUP_MODES = ("full", "diff")
OPERATIONS = frozenset(
    {
        "backup_database",
        "restore_database",
        "get_live_databases",
        "get_database_tables",
        "exec_sql_command",
    }
)

SqlRow = dict[str, object]


class BackendError(RuntimeError):
    """Raised by backend internals when the database driver fails."""


@dataclass(frozen=True)
class BackupResult:
    """Outcome of a backup: its status and the produced file."""

    status: bool
    output: Path | None = None


@dataclass(frozen=True)
class SqlResult:
    """Outcome of a SQL batch.

    ``result`` is a list of rows for a single result set, or a list of such
    lists when several result sets were requested. ``columns`` holds the
    column names of each result set.
    """

    ok: bool
    result: list[object] = field(default_factory=list)
    columns: list[list[str]] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)


class DbmsBackend(Protocol):
    """Operations every DBMS backend provides."""

    def backup_database(
        self,
        ctx: ExecutionContext,
        instance: InstanceDefinition,
        *,
        database: str,
        output: Path,
        mode: str,
        compress: bool,
    ) -> BackupResult: ...

    def restore_database(
        self,
        ctx: ExecutionContext,
        instance: InstanceDefinition,
        *,
        database: str | None,
        full: Path,
        diff: Path | None,
        verifyonly: bool,
    ) -> bool: ...

    def get_live_databases(self, ctx: ExecutionContext, instance: InstanceDefinition) -> list[str]: ...

    def get_database_tables(
        self,
        ctx: ExecutionContext,
        instance: InstanceDefinition,
        database: str,
    ) -> list[str]: ...

    def exec_sql_command(
        self,
        ctx: ExecutionContext,
        instance: InstanceDefinition,
        sql: str,
        *,
        multiple: bool = False,
    ) -> SqlResult: ...


__all__ = [
    "BACKUP_MODES",
    "BackendError",
    "BackupResult",
    "DbmsBackend",
    "OPERATIONS",
    "SqlResult",
    "SqlRow",
]
