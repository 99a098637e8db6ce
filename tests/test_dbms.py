"""Tests for the DBMS facade and backend registry."""
from __future__ import annotations

import io
import json
from collections.abc import Callable
from pathlib import Path

import pytest
from rich.console import Console

from conftest import FIXED_NOW, NODE, FakeBackend
from ttp.config import InstanceDefinition, NodeConfig
from ttp.context import ExecutionContext
from ttp.dbms import BackendRegistry, Dbms, SqlResult, compute_default_backup_filename, ensure_backup_directory
from ttp.dbms.registry import default_registry, normalize_package
from ttp.dbms.sqlserver import SqlServerBackend


@pytest.mark.parametrize(
    "package",
    ["TTP::SqlServer", "Mods::SqlServer", "SqlServer", "sql-server", " sqlserver "],
)
def test_normalize_package(package: str) -> None:
    """Package spellings converge on one registry key."""
    assert normalize_package(package) == "sqlserver"


def test_default_registry_holds_sqlserver() -> None:
    """The bundled registry addresses SQL Server and builds its backend once."""
    registry = default_registry()
    assert registry.names() == ["sqlserver"]
    backend = registry.backend_for("TTP::SqlServer")
    assert isinstance(backend, SqlServerBackend)
    assert registry.backend_for("sqlserver") is backend
    assert registry.backend_for("Oracle") is None


def test_dispatch_reports_configuration_problems(
    make_ctx: Callable[..., ExecutionContext],
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Unknown operations, instances and packages are errors yielding ``None``."""
    ctx = make_ctx("dbms", "list")
    registry = BackendRegistry()

    assert registry.dispatch(ctx, "drop_everything", "MSSQL") is None
    assert registry.dispatch(ctx, "get_live_databases", "GHOST") is None
    assert registry.dispatch(ctx, "get_live_databases", "MSSQL") is None
    assert ctx.errors == 3

    err = capsys.readouterr().err
    assert "unknown DBMS operation 'drop_everything'" in err
    assert "instance 'GHOST' is not defined in host configuration" in err
    assert "unknown DBMS package 'TTP::Fake' for 'MSSQL' instance" in err


def test_dispatch_reaches_the_registered_backend(
    make_ctx: Callable[..., ExecutionContext],
    fake_backend: FakeBackend,
) -> None:
    """Operations are routed to the backend of the instance package."""
    ctx = make_ctx("dbms", "list")
    dbms = Dbms(ctx, "MSSQL")

    assert dbms.get_live_databases() == ["Audit", "Billing"]
    assert dbms.get_database_tables("Billing") == ["dbo.Customers", "dbo.Invoices"]
    assert dbms.database_exists("Audit") is True
    assert dbms.database_exists("audit") is False
    assert ctx.errors == 0


def test_compute_default_backup_filename(tmp_path: Path) -> None:
    """The default name holds the host, instance, database, stamp and mode."""
    output = compute_default_backup_filename(NODE, "MSSQL", "Billing", "diff", FIXED_NOW, tmp_path)
    assert output == tmp_path / "240102" / "NODE1-MSSQL-Billing-240102-030405-diff.backup"


def test_backup_computes_default_output(
    make_ctx: Callable[..., ExecutionContext],
    fake_backend: FakeBackend,
    tmp_path: Path,
) -> None:
    """Without an output, the backup lands under the instance ``backupPath``."""
    ctx = make_ctx("dbms", "backup")
    result = Dbms(ctx, "MSSQL").backup_database("Billing")

    expected = tmp_path / "backups" / NODE / "240102" / "NODE1-MSSQL-Billing-240102-030405-full.backup"
    assert result.status is True
    assert result.output == expected
    assert expected.parent.is_dir()
    assert fake_backend.calls == [("backup", "MSSQL", "Billing", expected, "full", False)]


def test_backup_without_backup_path_uses_temp_dir(
    make_ctx: Callable[..., ExecutionContext],
    capsys: pytest.CaptureFixture[str],
) -> None:
    """A missing ``backupPath`` falls back to the temporary directory, with a warning."""
    ctx = make_ctx("dbms", "backup", dummy_run=True)
    assert ctx.config is not None
    instance = ctx.config.nodes.instances["MSSQL"]
    ctx.config.node_config = NodeConfig(
        name=NODE,
        instances={"MSSQL": InstanceDefinition(name="MSSQL", package=instance.package, accounts=instance.accounts)},
        services=ctx.config.nodes.services,
    )
    output = Dbms(ctx, "MSSQL").compute_default_backup_filename("Billing")

    assert output.parent.parent.name == "ttp"
    assert "backupPath is not specified" in capsys.readouterr().err


def test_backup_rejects_bad_arguments(make_ctx: Callable[..., ExecutionContext], fake_backend: FakeBackend) -> None:
    """A missing database or an unknown mode fails before dispatch."""
    ctx = make_ctx("dbms", "backup")
    dbms = Dbms(ctx, "MSSQL")

    assert dbms.backup_database("").status is False
    assert dbms.backup_database("Billing", mode="incremental").status is False
    assert ctx.errors == 2
    assert fake_backend.calls == []


def test_ensure_backup_directory_in_dummy_mode(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Dummy mode announces the directory creation without doing it."""
    ctx = ExecutionContext(command="dbms", verb="backup", env={"TTP_NODE": NODE}, dummy_run=True)
    target = tmp_path / "new" / "file.backup"

    assert ensure_backup_directory(ctx, target) is True
    assert not target.parent.exists()
    assert "(DUM) creating directory" in capsys.readouterr().out


def test_restore_checks_arguments_and_reports_failure(
    make_ctx: Callable[..., ExecutionContext],
    fake_backend: FakeBackend,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Missing files are errors; a backend failure is reported once."""
    ctx = make_ctx("dbms", "restore")
    dbms = Dbms(ctx, "MSSQL")
    full = tmp_path / "full.backup"
    full.write_text("", encoding="utf-8")

    assert dbms.restore_database("Billing", full, tmp_path / "missing.backup") is False
    assert ctx.errors == 1
    assert fake_backend.calls == []

    assert dbms.restore_database("Billing", full) is True
    fake_backend.ok = False
    assert dbms.restore_database("Billing", full) is False
    assert ctx.errors == 2
    assert "MSSQL\\Billing NOT OK" in capsys.readouterr().err

    assert dbms.restore_database(None, full, verifyonly=True) is False
    assert fake_backend.calls[-1] == ("restore", "MSSQL", None, full, None, True)


def test_exec_sql_command_displays_and_writes_json(
    make_ctx: Callable[..., ExecutionContext],
    fake_backend: FakeBackend,
    tmp_path: Path,
) -> None:
    """Result sets are rendered as tables and saved as JSON."""
    ctx = make_ctx("dbms", "sql")
    buffer = io.StringIO()
    dbms = Dbms(ctx, "MSSQL", console=Console(file=buffer, width=80))
    target = tmp_path / "out" / "result.json"

    result = dbms.exec_sql_command("select * from t", json_path=target)

    assert result.ok is True
    table = buffer.getvalue()
    assert "id" in table and "name" in table and "a" in table
    assert json.loads(target.read_text(encoding="utf-8")) == [{"id": 1, "name": "a"}]
    assert fake_backend.calls == [("sql", "MSSQL", "select * from t", False)]


def test_exec_sql_command_multiple_sets_and_columns(
    make_ctx: Callable[..., ExecutionContext],
    fake_backend: FakeBackend,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Each result set gets its own table; column names can be printed."""
    fake_backend.sql_result = SqlResult(
        ok=True,
        result=[[{"a": 1}], [{"b": None}]],
        columns=[["a"], ["b"]],
    )
    ctx = make_ctx("dbms", "sql")
    buffer = io.StringIO()
    dbms = Dbms(ctx, "MSSQL", console=Console(file=buffer, width=80))

    dbms.exec_sql_command("select 1; select 2", multiple=True, columns=True)

    out = capsys.readouterr().out
    assert "columns: a" in out
    assert "columns: b" in out
    assert buffer.getvalue().count("+-") >= 4


def test_exec_sql_command_json_in_dummy_mode(
    make_ctx: Callable[..., ExecutionContext],
    tmp_path: Path,
) -> None:
    """Dummy mode does not write the JSON file."""
    ctx = make_ctx("dbms", "sql", dummy_run=True)
    target = tmp_path / "result.json"
    Dbms(ctx, "MSSQL", console=Console(file=io.StringIO())).exec_sql_command("select 1", tabular=False, json_path=target)
    assert not target.exists()
