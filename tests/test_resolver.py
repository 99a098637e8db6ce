"""Service and instance resolution tests."""
from __future__ import annotations

from collections.abc import Callable

import pytest

from conftest import FakeBackend
from ttp.config import build_node_config
from ttp.context import ExecutionContext
from ttp import resolver
from ttp.resolver import (
    check_instance_name,
    check_service_name,
    database_exists,
    resolve_selector,
    select_databases,
)


def test_selector_requires_exactly_one_option(
    make_ctx: Callable[..., ExecutionContext],
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Neither or both selectors are one error each."""
    ctx = make_ctx("dbms", "backup")
    assert resolve_selector(ctx) is None
    assert ctx.errors == 1
    assert "none found" in capsys.readouterr().err

    ctx = make_ctx("dbms", "backup")
    assert resolve_selector(ctx, service="billing", instance="MSSQL") is None
    assert ctx.errors == 1
    assert "both found" in capsys.readouterr().err


def test_service_resolves_to_its_instance(make_ctx: Callable[..., ExecutionContext]) -> None:
    """A service selector resolves to the instance it declares, and is cached."""
    ctx = make_ctx("dbms", "backup")
    resolved = resolve_selector(ctx, service="billing")

    assert ctx.errors == 0
    assert resolved is not None
    assert resolved.name == "MSSQL"
    assert resolved.package == "TTP::Fake"
    assert ctx.service is not None and ctx.service.name == "billing"
    assert ctx.config is not None and ctx.config.service_name == "billing"
    assert ctx.config.var("databases") == ["Billing", "Audit"]


def test_unknown_service_and_instance_are_errors(
    make_ctx: Callable[..., ExecutionContext],
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Undeclared names are reported."""
    ctx = make_ctx("dbms", "backup")
    assert check_service_name(ctx, "ghost") is None
    assert check_instance_name(ctx, "NOPE") is None
    assert ctx.errors == 2
    err = capsys.readouterr().err
    assert "service 'ghost' is not defined in host configuration" in err
    assert "instance 'NOPE' is not defined in host configuration" in err


def test_missing_mandatory_service(make_ctx: Callable[..., ExecutionContext]) -> None:
    """A missing service is an error only when mandatory."""
    ctx = make_ctx("services", "vars")
    assert check_service_name(ctx, None, mandatory=False) is None
    assert ctx.errors == 0
    assert check_service_name(ctx, None) is None
    assert ctx.errors == 1


def test_single_instance_is_used_with_a_warning(
    make_ctx: Callable[..., ExecutionContext],
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Without any default, the sole instance of the node is selected."""
    ctx = make_ctx("dbms", "list")
    assert check_instance_name(ctx) == "MSSQL"
    assert ctx.errors == 0
    assert "relying on a single instance definition" in capsys.readouterr().err


def test_no_instance_without_single_fallback(make_ctx: Callable[..., ExecutionContext]) -> None:
    """Disabling the single-instance fallback makes the instance mandatory."""
    ctx = make_ctx("dbms", "list")
    assert check_instance_name(ctx, single=False) is None
    assert ctx.errors == 1

    ctx = make_ctx("dbms", "list")
    assert check_instance_name(ctx, single=False, mandatory=False) is None
    assert ctx.errors == 0


def test_instance_without_package_is_an_error(make_ctx: Callable[..., ExecutionContext]) -> None:
    """An instance must name the package addressing it."""
    ctx = make_ctx("dbms", "list")
    assert ctx.config is not None
    ctx.config.node["DBMSInstances"]["MSSQL"].pop("package")  # type: ignore[index, union-attr]
    ctx.config.node_config = build_node_config(ctx.host, ctx.config.node)
    assert check_instance_name(ctx, "MSSQL") is None
    assert ctx.errors == 1


def test_database_exists_is_case_sensitive(
    make_ctx: Callable[..., ExecutionContext],
    fake_backend: FakeBackend,
) -> None:
    """Existence is a verbatim match against the live databases."""
    ctx = make_ctx("dbms", "list")
    assert database_exists(ctx, "MSSQL", "Billing") is True
    assert database_exists(ctx, "MSSQL", "billing") is False
    fake_backend.databases = []
    assert database_exists(ctx, "MSSQL", "Billing") is False


def test_select_databases(make_ctx: Callable[..., ExecutionContext]) -> None:
    """An explicit database wins; otherwise the service list is used."""
    ctx = make_ctx("dbms", "backup")
    assert select_databases(ctx, "Other", "billing") == ["Other"]
    assert select_databases(ctx, None, "billing") == ["Billing", "Audit"]
    assert select_databases(ctx) == []

    check_service_name(ctx, "crm")
    assert select_databases(ctx) == ["Crm"]


def test_service_selector_without_selected_service(
    make_ctx: Callable[..., ExecutionContext],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A service check which selects nothing resolves to no instance."""
    monkeypatch.setattr(resolver, "check_service_name", lambda _ctx, candidate: candidate)
    ctx = make_ctx("dbms", "backup")

    assert resolve_selector(ctx, service="billing") is None
    assert ctx.instance is None
