"""DBMS indirection: a per-instance facade over the registered backends.

Verbs address an instance through :class:`Dbms`, which validates arguments,
computes defaults and routes the call to the backend registered for the
instance package. Failures come back as ``False``, empty lists or
``SqlResult(ok=False)``; the caller turns them into errors and summaries.
"""
from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, cast

from rich import box
from rich.console import Console
from rich.table import Table

from .. import paths
from .base import BACKUP_MODES, BackupResult, SqlResult, SqlRow
from .naming import compute_default_backup_filename, ensure_backup_directory
from .registry import BackendRegistry, registry_for

if TYPE_CHECKING:
    from ..config import InstanceDefinition
    from ..context import ExecutionContext


class Dbms:
    """Operations on one DBMS instance of the current node."""

    def __init__(
        self,
        ctx: ExecutionContext,
        instance: str,
        *,
        registry: BackendRegistry | None = None,
        console: Console | None = None,
    ) -> None:
        self.ctx = ctx
        self.instance = instance
        self.registry = registry or registry_for(ctx)
        self._console = console

    @property
    def definition(self) -> InstanceDefinition | None:
        """Return the node definition of the instance."""
        if self.ctx.instance is not None and self.ctx.instance.name == self.instance:
            return self.ctx.instance.definition
        if self.ctx.config is None:
            return None
        return self.ctx.config.nodes.instances.get(self.instance)

    def _dispatch(self, operation: str, *args: object, **kwargs: object) -> object | None:
        return self.registry.dispatch(self.ctx, operation, self.instance, *args, **kwargs)

    def compute_default_backup_filename(self, database: str, mode: str = "full") -> Path:
        """Return the default output of a backup, under the instance ``backupPath``.

        Without ``backupPath`` the TTP temporary directory is used, with a
        warning.
        """
        definition = self.definition
        backup_path = definition.backup_path if definition is not None else None
        if backup_path is None:
            backup_path = paths.default_temp_dir()
            self.ctx.warn(
                f"instance='{self.instance}' backupPath is not specified, set to default temp directory"
            )
        output = compute_default_backup_filename(
            self.ctx.host, self.instance, database, mode, self.ctx.clock(), backup_path
        )
        self.ctx.verbose(f"computing output default as '{output}'")
        return output

    def backup_database(
        self,
        database: str,
        output: Path | str | None = None,
        mode: str = "full",
        compress: bool = False,
    ) -> BackupResult:
        """Back up *database*, computing a default *output* when not given."""
        if not database:
            self.ctx.error("database is mandatory, but is not specified")
            return BackupResult(status=False)
        if mode not in BACKUP_MODES:
            self.ctx.error(f"mode must be 'full' or 'diff', found '{mode}'")
            return BackupResult(status=False)
        target = Path(output) if output else self.compute_default_backup_filename(database, mode)
        if not ensure_backup_directory(self.ctx, target):
            return BackupResult(status=False)
        result = self._dispatch("backup_database", database=database, output=target, mode=mode, compress=compress)
        if not isinstance(result, BackupResult):
            return BackupResult(status=False)
        self.ctx.verbose(f"backup of '{self.instance}\\{database}' returns status={result.status}")
        return result

    def restore_database(
        self,
        database: str | None,
        full: Path | str | None,
        diff: Path | str | None = None,
        verifyonly: bool = False,
    ) -> bool:
        """Restore *full*, then *diff*, into *database* (or only verify them)."""
        errors = self.ctx.errors
        if not database and not verifyonly:
            self.ctx.error("database is mandatory, but is not specified")
        if not full:
            self.ctx.error("full backup is mandatory, but is not specified")
        if diff and not Path(diff).is_file():
            self.ctx.error(f"{diff}: file not found or not readable")
        if self.ctx.errors > errors:
            return False
        result = self._dispatch(
            "restore_database",
            database=database,
            full=Path(cast(str, full)),
            diff=Path(diff) if diff else None,
            verifyonly=verifyonly,
        )
        ok = result is True
        if not ok:
            self.ctx.error(f"{self.instance}\\{database or ''} NOT OK")
        return ok

    def get_live_databases(self) -> list[str]:
        """Return the user databases of the instance."""
        result = self._dispatch("get_live_databases")
        return list(cast(Sequence[str], result)) if isinstance(result, list) else []

    def get_database_tables(self, database: str) -> list[str]:
        """Return the ``schema.table`` names of *database*."""
        result = self._dispatch("get_database_tables", database)
        return list(cast(Sequence[str], result)) if isinstance(result, list) else []

    def database_exists(self, name: str) -> bool:
        """Return whether *name* is, verbatim, a live database of the instance."""
        return name in self.get_live_databases()

    def exec_sql_command(
        self,
        sql: str,
        tabular: bool = True,
        multiple: bool = False,
        json_path: Path | str | None = None,
        columns: bool = False,
    ) -> SqlResult:
        """Run *sql*, then display and/or save its result sets.

        Args:
            sql: The batch to execute.
            tabular: Display the result sets as tables.
            multiple: Expect several result sets.
            json_path: Also write the result as JSON into this file.
            columns: Print the column names of each result set.
        """
        result = self._dispatch("exec_sql_command", sql, multiple=multiple)
        if not isinstance(result, SqlResult):
            return SqlResult(ok=False)
        if not result.ok:
            return result
        sets = _result_sets(result, multiple)
        if columns:
            for names in result.columns:
                self.ctx.info(f"columns: {', '.join(names)}")
        if tabular:
            for index, rows in enumerate(sets):
                names = result.columns[index] if index < len(result.columns) else _row_names(rows)
                self.display_tabular(names, rows)
        else:
            self.ctx.verbose("do not display tabular result as tabular='false'")
        if json_path:
            self._write_json(Path(json_path), result.result)
        return result

    def display_tabular(self, names: Sequence[str], rows: Sequence[SqlRow]) -> None:
        """Print one result set as an ASCII table."""
        table = Table(box=box.ASCII, show_lines=False)
        for name in names:
            table.add_column(name)
        for row in rows:
            table.add_row(*("" if row.get(name) is None else str(row.get(name)) for name in names))
        console = self._console or Console(highlight=False, soft_wrap=True)
        console.print(table)

    def _write_json(self, path: Path, payload: object) -> None:
        if self.ctx.dummy_run:
            self.ctx.dummy(f"writing result into '{path}'")
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2, default=str) + "\n", encoding="utf-8")
        except OSError as exc:
            self.ctx.error(f"unable to write '{path}': {exc.strerror or exc}")
            return
        self.ctx.verbose(f"result written into '{path}'")


def _result_sets(result: SqlResult, multiple: bool) -> list[list[SqlRow]]:
    if multiple:
        return [[row for row in rows if isinstance(row, dict)] for rows in result.result if isinstance(rows, list)]
    return [[row for row in result.result if isinstance(row, dict)]]


def _row_names(rows: Sequence[SqlRow]) -> list[str]:
    return list(rows[0]) if rows else []


__all__ = [
    "BackendRegistry",
    "BackupResult",
    "Dbms",
    "SqlResult",
    "compute_default_backup_filename",
    "ensure_backup_directory",
    "registry_for",
]
