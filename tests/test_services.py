"""Services and workloads tests."""
from __future__ import annotations

from collections.abc import Callable

from ttp.context import ExecutionContext
from ttp.services import defined_services, defined_worktasks, service_definition, used_workloads


def test_hidden_services_are_filtered(make_ctx: Callable[..., ExecutionContext]) -> None:
    """Hidden services are listed only on request."""
    ctx = make_ctx("services", "list")
    assert defined_services(ctx) == ["billing"]
    assert defined_services(ctx, hidden=True) == ["billing", "crm"]


def test_worktasks_are_tagged_and_ordered(make_ctx: Callable[..., ExecutionContext]) -> None:
    """Tasks carry their service and are sorted on their order key."""
    ctx = make_ctx("services", "workloads")
    tasks = defined_worktasks(ctx, "daily", hidden=True)

    assert [task["service"] for task in tasks] == ["crm", "billing"]
    assert tasks[0]["label"] == "purge crm"
    assert defined_worktasks(ctx, "daily") == [
        {"name": "backup billing", "order": "20", "commands": ["dbms backup --service billing --full"], "service": "billing"}
    ]
    assert defined_worktasks(ctx, "monthly") == []


def test_used_workloads(make_ctx: Callable[..., ExecutionContext]) -> None:
    """Workload names are collected across the visible services."""
    ctx = make_ctx("services", "workloads")
    assert used_workloads(ctx) == ["daily"]
    assert used_workloads(ctx, hidden=True) == ["daily", "weekly"]


def test_service_definition_reads_typed_fields(make_ctx: Callable[..., ExecutionContext]) -> None:
    """The typed definition exposes instance, databases and visibility."""
    ctx = make_ctx("services", "vars")
    definition = service_definition(ctx, "crm")

    assert definition is not None
    assert definition.instance == "MSSQL"
    assert definition.databases == ("Crm",)
    assert definition.hidden is True
    assert service_definition(ctx, "ghost") is None
