"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import pytest

from ttp.commands import VerbRegistry
from ttp.config import InstanceDefinition, load_configuration
from ttp.context import ExecutionContext
from ttp.dbms import BackendRegistry, BackupResult, SqlResult

NODE = "NODE1"
FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5)


def fixed_clock() -> datetime:
    """Return the frozen time of the tests."""
    return FIXED_NOW


class FakeBackend:
    """In-memory DBMS backend recording its calls."""

    def __init__(self) -> None:
        self.databases = ["Audit", "Billing"]
        self.tables = {"Billing": ["dbo.Customers", "dbo.Invoices"]}
        self.calls: list[tuple[object, ...]] = []
        self.ok = True
        self.sql_result = SqlResult(ok=True, result=[{"id": 1, "name": "a"}], columns=[["id", "name"]])

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
        self.calls.append(("backup", instance.name, database, output, mode, compress))
        return BackupResult(status=self.ok, output=output)

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
        self.calls.append(("restore", instance.name, database, full, diff, verifyonly))
        return self.ok

    def get_live_databases(self, ctx: ExecutionContext, instance: InstanceDefinition) -> list[str]:
        return list(self.databases)

    def get_database_tables(self, ctx: ExecutionContext, instance: InstanceDefinition, database: str) -> list[str]:
        return list(self.tables.get(database, []))

    def exec_sql_command(
        self,
        ctx: ExecutionContext,
        instance: InstanceDefinition,
        sql: str,
        *,
        multiple: bool = False,
    ) -> SqlResult:
        self.calls.append(("sql", instance.name, sql, multiple))
        return self.sql_result


def write_json(path: Path, payload: object) -> Path:
    """Write *payload* as JSON into *path*, creating its directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """Create a site tree with one node hosting one instance and two services."""
    root = tmp_path / "site"
    write_json(
        root / "toops.json",
        {
            "toops": {
                "logsDir": str(tmp_path / "logs"),
                "executionReports": {"dir": str(tmp_path / "reports")},
                "DBMS": {"backupsRoot": str(tmp_path / "backups")},
            },
            "site": {"name": "test site"},
        },
    )
    write_json(
        root / "nodes" / f"{NODE}.json",
        {
            NODE: {
                "DBMSInstances": {
                    "MSSQL": {
                        "package": "TTP::Fake",
                        "backupPath": str(tmp_path / "backups" / "<HOST>"),
                        "dataPath": str(tmp_path / "data"),
                        "accounts": {"sa": "secret"},
                    }
                },
                "Services": {
                    "billing": {
                        "instance": "MSSQL",
                        "databases": ["Billing", "Audit"],
                        "workloads": {
                            "daily": [
                                {"name": "backup billing", "order": "20", "commands": ["dbms backup --service billing --full"]},
                            ]
                        },
                    },
                    "crm": {
                        "hidden": True,
                        "instance": "MSSQL",
                        "databases": ["Crm"],
                        "workloads": {
                            "daily": [{"label": "purge crm", "order": "10", "commands": ["ttp vars --logsDir"]}],
                            "weekly": [{"name": "archive"}],
                        },
                    },
                },
            }
        },
    )
    return root


@pytest.fixture
def env(site: Path) -> dict[str, str]:
    """Return the environment pointing at the test site."""
    return {"TTP_SITE": str(site), "TTP_NODE": NODE, "USER": "tester"}


@pytest.fixture
def fake_backend() -> FakeBackend:
    """Return a fresh in-memory backend."""
    return FakeBackend()


@pytest.fixture
def make_ctx(env: dict[str, str], fake_backend: FakeBackend) -> Callable[..., ExecutionContext]:
    """Return a factory of contexts bound to the test site and the fake backend."""

    def factory(command: str | None = "dbms", verb: str | None = None, *, load: bool = True, **kwargs: object) -> ExecutionContext:
        ctx = ExecutionContext(command=command, verb=verb, env=dict(env), clock=fixed_clock, **kwargs)  # type: ignore[arg-type]
        ctx.backends = BackendRegistry({"Fake": lambda: fake_backend})
        if load:
            load_configuration(ctx)
        return ctx

    return factory


@pytest.fixture
def registry() -> VerbRegistry:
    """Return the registry of the built-in verbs."""
    return VerbRegistry(["ttp.verbs"])
