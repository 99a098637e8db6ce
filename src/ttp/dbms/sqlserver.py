"""SQL Server backend over ``pyodbc``.

The ODBC driver module is imported on first connection so that the rest of
the toolkit stays usable on nodes without an ODBC runtime; tests inject a fake
driver exposing the same ``connect``/``drivers``/``Error`` surface.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING, Any

from .base import BACKUP_MODES, BackupResult, SqlResult, SqlRow

if TYPE_CHECKING:
    from ..config import InstanceDefinition
    from ..context import ExecutionContext

SYSTEM_DATABASES = ("master", "tempdb", "model", "msdb")
SYSTEM_TABLES = ("dtproperties", "sysdiagrams")
DEFAULT_INSTANCE = "MSSQLSERVER"
PREFERRED_DRIVERS = (
    "ODBC Driver 18 for SQL Server",
    "ODBC Driver 17 for SQL Server",
    "SQL Server",
)


def quote_literal(value: object) -> str:
    """Return *value* as a T-SQL string literal."""
    return "'" + str(value).replace("'", "''") + "'"


def quote_name(value: str) -> str:
    """Return *value* as a bracketed T-SQL identifier."""
    return "[" + value.replace("]", "]]") + "]"


def server_name(instance: InstanceDefinition) -> str:
    """Return the ODBC ``SERVER`` of *instance*; the default instance is unnamed."""
    if instance.server:
        return instance.server
    if instance.name == DEFAULT_INSTANCE:
        return "localhost"
    return f"localhost\\{instance.name}"


@dataclass(slots=True)
class SqlServerBackend:
    """Backend addressing Microsoft SQL Server instances."""

    driver: Any = None
    timeout: int = 0
    _connections: dict[str, Any] = field(default_factory=dict)

    # Driver plumbing -------------------------------------------------
    def _module(self) -> ModuleType | Any:
        if self.driver is None:
            import pyodbc

            self.driver = pyodbc
        return self.driver

    def _connect(self, ctx: ExecutionContext, instance: InstanceDefinition) -> Any | None:
        connection = self._connections.get(instance.name)
        if connection is not None:
            ctx.verbose(f"instance '{instance.name}' already connected")
            return connection
        credentials = instance.first_account()
        if credentials is None:
            ctx.error(f"unable to get account/password couple for '{instance.name}' instance")
            return None
        account, secret = credentials
        driver = self._module()
        available = list(driver.drivers())
        odbc_driver = next((name for name in PREFERRED_DRIVERS if name in available), None)
        if odbc_driver is None:
            ctx.error(f"no SQL Server ODBC driver found (available: {', '.join(available) or 'none'})")
            return None
        server = server_name(instance)
        ctx.verbose(f"connecting to server='{server}' with account='{account}' through '{odbc_driver}'")
        conn_str = (
            f"DRIVER={{{odbc_driver}}};"
            f"SERVER={server};"
            f"UID={account};"
            f"PWD={secret};"
            "Encrypt=optional;"
        )
        try:
            connection = driver.connect(conn_str, autocommit=True, timeout=self.timeout)
        except driver.Error as exc:
            ctx.error(f"unable to connect to '{instance.name}' instance: {exc}")
            return None
        self._connections[instance.name] = connection
        return connection

    def _sql_exec(
        self,
        ctx: ExecutionContext,
        instance: InstanceDefinition,
        sql: str,
        *,
        multiple: bool = False,
        print_messages: bool = True,
        read_only: bool = False,
    ) -> SqlResult:
        if ctx.dummy_run and not read_only:
            ctx.dummy(sql)
            return SqlResult(ok=True)
        connection = self._connect(ctx, instance)
        if connection is None:
            return SqlResult(ok=False)
        ctx.verbose(f"executing '{sql}'")
        driver = self._module()
        sets: list[list[SqlRow]] = []
        columns: list[list[str]] = []
        messages: list[str] = []
        try:
            cursor = connection.cursor()
            cursor.execute(sql)
            while True:
                messages.extend(str(text).strip() for _, text in (cursor.messages or ()))
                if cursor.description:
                    names = [str(column[0]) for column in cursor.description]
                    rows = [dict(zip(names, row)) for row in cursor.fetchall()]
                    columns.append(names)
                    sets.append(rows)
                if not cursor.nextset():
                    break
            cursor.close()
        except driver.Error as exc:
            ctx.error(f"{instance.name}: {exc}")
            return SqlResult(ok=False, messages=messages)
        messages = [line for line in messages if line]
        if print_messages:
            for line in messages:
                ctx.info(line, with_log=False)
        result: list[object]
        if multiple:
            result = list(sets)
        else:
            result = list(sets[0]) if sets else []
            columns = columns[:1]
        return SqlResult(ok=True, result=result, columns=columns, messages=messages)

    # Backend operations ----------------------------------------------
    def backup_database(
        self,
        ctx: ExecutionContext,
        instance: InstanceDefinition,
        *,
        database: str,
        output: Path,
        mode: str,
        compress: bool,
    ) -> BackupResult:
        """Back up *database* into *output*."""
        if mode not in BACKUP_MODES:
            ctx.error(f"mode must be 'full' or 'diff', found '{mode}'")
            return BackupResult(status=False)
        stamp = ctx.clock().strftime("%Y-%m-%d %H:%M:%S")
        options = "NOFORMAT, NOINIT, MEDIANAME='SQLServerBackups'"
        label = "Full"
        if mode == "diff":
            options += ", DIFFERENTIAL"
            label = "Differential"
        if compress:
            options += ", COMPRESSION"
        sql = (
            f"USE master; BACKUP DATABASE {quote_name(database)} TO DISK={quote_literal(output)} "
            f"WITH {options}, NAME={quote_literal(f'{database} {label} Backup {stamp}')};"
        )
        res = self._sql_exec(ctx, instance, sql)
        return BackupResult(status=res.ok, output=output)

    def restore_database(
        self,
        ctx: ExecutionContext,
        instance: InstanceDefinition,
        *,
        database: str | None,
        full: Path,
        diff: Path | None,
        verifyonly: bool,
    ) -> bool:
        """Restore *full* then *diff* into *database*, or only verify them."""
        if not database and not verifyonly:
            ctx.error("database is mandatory, not specified")
            return False
        target = database or Path(full).stem
        if not verifyonly and not self._set_offline(ctx, instance, target):
            return False
        files: list[tuple[Path, bool]] = [(Path(full), diff is None)]
        if diff is not None:
            files.append((Path(diff), True))
        for path, last in files:
            if verifyonly:
                ok = self._verify(ctx, instance, target, path)
            else:
                ok = self._restore_file(ctx, instance, target, path, last=last)
            if not ok:
                return False
        return True

    def get_live_databases(self, ctx: ExecutionContext, instance: InstanceDefinition) -> list[str]:
        """Return the user databases of *instance*, sorted by name."""
        res = self._sql_exec(
            ctx,
            instance,
            "select name from master.sys.databases order by name",
            print_messages=False,
            read_only=True,
        )
        if not res.ok:
            return []
        names = [str(row["name"]) for row in _rows(res.result) if row.get("name") not in SYSTEM_DATABASES]
        ctx.verbose(f"found {len(names)} databases in '{instance.name}'")
        return names

    def get_database_tables(self, ctx: ExecutionContext, instance: InstanceDefinition, database: str) -> list[str]:
        """Return the ``schema.table`` base tables of *database*."""
        if not database:
            ctx.error("database is mandatory, but not specified")
            return []
        res = self._sql_exec(
            ctx,
            instance,
            f"SELECT TABLE_SCHEMA,TABLE_NAME FROM {quote_name(database)}.INFORMATION_SCHEMA.TABLES "
            "WHERE TABLE_TYPE='BASE TABLE' ORDER BY TABLE_SCHEMA,TABLE_NAME",
            print_messages=False,
            read_only=True,
        )
        if not res.ok:
            return []
        tables = [
            f"{row['TABLE_SCHEMA']}.{row['TABLE_NAME']}"
            for row in _rows(res.result)
            if row.get("TABLE_NAME") not in SYSTEM_TABLES
        ]
        ctx.verbose(f"found {len(tables)} tables in '{instance.name}\\{database}'")
        return tables

    def exec_sql_command(
        self,
        ctx: ExecutionContext,
        instance: InstanceDefinition,
        sql: str,
        *,
        multiple: bool = False,
    ) -> SqlResult:
        """Run an arbitrary SQL batch."""
        if not sql:
            ctx.error("command is mandatory, but not specified")
            return SqlResult(ok=False)
        return self._sql_exec(ctx, instance, sql, multiple=multiple)

    # Restore helpers -------------------------------------------------
    def _set_offline(self, ctx: ExecutionContext, instance: InstanceDefinition, database: str) -> bool:
        if database not in self.get_live_databases(ctx, instance):
            return True
        res = self._sql_exec(
            ctx,
            instance,
            f"ALTER DATABASE {quote_name(database)} SET OFFLINE WITH ROLLBACK IMMEDIATE;",
        )
        return res.ok

    def _move_clause(
        self,
        ctx: ExecutionContext,
        instance: InstanceDefinition,
        database: str,
        path: Path,
    ) -> str | None:
        res = self._sql_exec(
            ctx,
            instance,
            f"RESTORE FILELISTONLY FROM DISK={quote_literal(path)}",
            print_messages=False,
            read_only=True,
        )
        rows = _rows(res.result)
        if not res.ok or not rows:
            ctx.error("unable to get the files list of the backup set")
            return None
        if instance.data_path is None:
            ctx.error(f"'dataPath' is not set for '{instance.name}' instance")
            return None
        moves: list[str] = []
        counters = {"D": 0, "L": 0}
        for row in rows:
            kind = "D" if str(row.get("Type", "")) == "D" else "L"
            counters[kind] += 1
            suffix = ".mdf" if kind == "D" else ".ldf"
            if counters[kind] > 1:
                suffix = f"_{counters[kind]}{'.ndf' if kind == 'D' else '.ldf'}"
            target = instance.data_path / f"{database}{suffix}"
            moves.append(f"MOVE {quote_literal(row.get('LogicalName', ''))} TO {quote_literal(target)}")
        return ", ".join(moves)

    def _restore_file(
        self,
        ctx: ExecutionContext,
        instance: InstanceDefinition,
        database: str,
        path: Path,
        *,
        last: bool,
    ) -> bool:
        ctx.verbose(f"restoring {path}")
        move = self._move_clause(ctx, instance, database, path)
        if move is None:
            return False
        recovery = "RECOVERY" if last else "NORECOVERY"
        clauses = ", ".join(item for item in (recovery, move) if item)
        res = self._sql_exec(
            ctx,
            instance,
            f"RESTORE DATABASE {quote_name(database)} FROM DISK={quote_literal(path)} WITH {clauses};",
        )
        return res.ok

    def _verify(self, ctx: ExecutionContext, instance: InstanceDefinition, database: str, path: Path) -> bool:
        ctx.verbose(f"verifying {path}")
        move = self._move_clause(ctx, instance, database, path)
        if move is None:
            return False
        sql = f"RESTORE VERIFYONLY FROM DISK={quote_literal(path)}"
        if move:
            sql += f" WITH {move}"
        res = self._sql_exec(ctx, instance, sql + ";")
        return res.ok


def _rows(result: Sequence[object]) -> list[SqlRow]:
    return [row for row in result if isinstance(row, dict)]


__all__ = [
    "DEFAULT_INSTANCE",
    "PREFERRED_DRIVERS",
    "SYSTEM_DATABASES",
    "SYSTEM_TABLES",
    "SqlServerBackend",
    "quote_literal",
    "quote_name",
    "server_name",
]
