"""Configuration cascade tests."""
from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from conftest import NODE, fixed_clock, write_json
from ttp.config import (
    ConfigError,
    apply_env_overrides,
    build_node_config,
    build_site_config,
    deep_merge,
    load_configuration,
    load_host,
    load_site,
    read_document,
)
from ttp.context import ExecutionContext
from ttp.services import service_config


def _ctx(env: dict[str, str]) -> ExecutionContext:
    return ExecutionContext(command="ttp", verb="vars", env=env, clock=fixed_clock)


def test_missing_site_variable_is_a_warning(capsys: pytest.CaptureFixture[str]) -> None:
    """Without ``TTP_SITE`` the site document is empty and no error is counted."""
    ctx = _ctx({"TTP_NODE": NODE})
    assert load_site(ctx) == {}
    assert ctx.errors == 0
    assert "TTP_SITE is not set" in capsys.readouterr().err


def test_site_rejects_foreign_top_level_keys(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Site keys outside the ``toops`` and ``site`` families are an error."""
    write_json(tmp_path / "toops.json", {"toops": {}, "siteName": "ok", "other": 1})
    ctx = _ctx({"TTP_SITE": str(tmp_path), "TTP_NODE": NODE})

    assert load_site(ctx) == {}
    assert ctx.errors == 1
    assert "site own keys should be inside the 'site' hierarchy" in capsys.readouterr().err


def test_site_reads_yaml_documents(tmp_path: Path) -> None:
    """A ``toops.yml`` site document is accepted."""
    (tmp_path / "toops.yml").write_text("toops:\n  logsDir: /var/log/ttp\n", encoding="utf-8")
    ctx = _ctx({"TTP_SITE": str(tmp_path)})

    assert load_site(ctx) == {"toops": {"logsDir": "/var/log/ttp"}}


def test_env_overrides_take_precedence(tmp_path: Path) -> None:
    """``TTP_`` variables override site keys, case-insensitively, with coerced values."""
    write_json(tmp_path / "toops.json", {"toops": {"logsDir": "/a", "msgVerbose": {"withLog": True}}})
    env = {
        "TTP_SITE": str(tmp_path),
        "TTP_NODE": NODE,
        "TTP_TOOPS__LOGSDIR": "/b",
        "TTP_TOOPS__MSGVERBOSE__WITHLOG": "false",
        "TTP_TOOPS__NEWKEY": "12",
    }
    site = load_site(_ctx(env))

    assert site["toops"] == {"logsDir": "/b", "msgVerbose": {"withLog": False}, "newkey": 12}


def test_env_override_conflicting_with_scalar_raises() -> None:
    """A nested override below a scalar value cannot be applied."""
    document: dict[str, object] = {"toops": {"logsDir": "/a"}}
    with pytest.raises(ConfigError):
        apply_env_overrides(document, {"TTP_TOOPS__LOGSDIR__SUB": "x"})


def test_site_values_are_evaluated(tmp_path: Path) -> None:
    """Site values may reference other site values and the environment."""
    write_json(
        tmp_path / "toops.json",
        {
            "toops": {
                "root": "[eval:env('BASE', '/srv')]",
                "logsDir": "[eval:path(var('root'), 'logs')]",
            }
        },
    )
    site = load_site(_ctx({"TTP_SITE": str(tmp_path), "BASE": "/data"}))

    assert site["toops"]["logsDir"] == str(Path("/data") / "logs")


def test_load_host_reads_node_and_substitutes_macros(
    site: Path,
    env: dict[str, str],
    tmp_path: Path,
) -> None:
    """The node body gets its name and ``<HOST>`` macros are replaced."""
    ctx = _ctx(env)
    node = load_host(ctx, NODE.lower(), site)

    assert ctx.errors == 0
    assert node["name"] == NODE
    instance = node["DBMSInstances"]["MSSQL"]  # type: ignore[index]
    assert instance["backupPath"] == str(tmp_path / "backups" / NODE)  # type: ignore[index]


def test_load_host_searches_site_then_roots(tmp_path: Path) -> None:
    """Node documents are searched in the site tree, then in the extra roots."""
    extra = tmp_path / "extra"
    write_json(extra / "nodes" / "OTHER.json", {"OTHER": {"from": "roots"}})
    ctx = _ctx({})

    node = load_host(ctx, "other", tmp_path / "site", (extra,))
    assert node == {"from": "roots", "name": "OTHER"}

    write_json(tmp_path / "site" / "machines" / "OTHER.json", {"OTHER": {"from": "site"}})
    node = load_host(ctx, "other", tmp_path / "site", (extra,))
    assert node["from"] == "site"


def test_load_host_missing_file_is_an_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """A node without configuration is reported as an error."""
    ctx = _ctx({})
    assert load_host(ctx, "ghost", tmp_path) == {}
    assert ctx.errors == 1
    assert "unable to find a configuration for node 'GHOST'" in capsys.readouterr().err


def test_load_host_rejects_mismatched_top_level_key(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """The single top-level key must be the hostname."""
    write_json(tmp_path / "NODE2.json", {"NODE3": {}})
    ctx = _ctx({})

    assert load_host(ctx, "node2", tmp_path) == {}
    assert ctx.errors == 1
    assert "hostname 'NODE2' expected, found 'NODE3'" in capsys.readouterr().err


def test_read_document_reports_invalid_json(tmp_path: Path) -> None:
    """Malformed documents raise ``ConfigError``."""
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        read_document(path)

    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ConfigError, match="expected a mapping"):
        read_document(path)


def test_load_configuration_builds_typed_views(
    make_ctx: Callable[..., ExecutionContext],
    tmp_path: Path,
) -> None:
    """The loaded configuration exposes the site and node typed views."""
    ctx = make_ctx("ttp", "vars")
    config = ctx.config
    assert config is not None
    assert ctx.errors == 0
    assert config.site_config.logs_dir == tmp_path / "logs"
    assert config.site_config.execution_reports_dir == tmp_path / "reports"
    assert sorted(config.nodes.instances) == ["MSSQL"]
    assert config.nodes.instances["MSSQL"].package == "TTP::Fake"
    assert config.nodes.instances["MSSQL"].first_account() == ("sa", "secret")
    assert sorted(config.nodes.services) == ["billing", "crm"]
    assert ctx.logger is not None
    assert ctx.logger.main_log_path.parent == tmp_path / "logs" / "240102"


def test_var_looks_up_the_merged_configuration(make_ctx: Callable[..., ExecutionContext], tmp_path: Path) -> None:
    """Node values win over the site ``toops`` keys; missing paths are ``None``."""
    ctx = make_ctx("ttp", "vars")
    config = ctx.config
    assert config is not None

    assert config.var(("DBMS", "backupsRoot")) == str(tmp_path / "backups")
    assert config.var("DBMSInstances.MSSQL.package") == "TTP::Fake"
    assert config.var(("DBMS", "nope")) is None
    assert config.var(("nothing", "here")) is None

    config.node["DBMS"] = {"backupsRoot": "/node/backups"}
    assert config.var(("DBMS", "backupsRoot")) == "/node/backups"


def test_service_document_is_merged_under_node_subtree(
    make_ctx: Callable[..., ExecutionContext],
    site: Path,
) -> None:
    """The node subtree wins over the service document, with ``<SERVICE>`` replaced."""
    write_json(
        site / "services" / "billing.json",
        {"instance": "OTHER", "description": "the <SERVICE> service", "extra": {"a": 1}},
    )
    ctx = make_ctx("services", "vars")

    document = service_config(ctx, "billing")
    assert document is not None
    assert document["instance"] == "MSSQL"
    assert document["description"] == "the billing service"
    assert document["extra"] == {"a": 1}
    assert document["name"] == "billing"


def test_build_site_config_rejects_bad_types() -> None:
    """Typed views raise ``ConfigError`` on wrong value types."""
    with pytest.raises(ConfigError):
        build_site_config({"toops": {"msgOut": {"withLog": "maybe"}}})
    with pytest.raises(ConfigError):
        build_site_config({"toops": {"executionReports": "nope"}})

    config = build_site_config({"toops": {"msgOut": {"withLog": "no"}, "DBMS": {"instance": "MSSQL"}}})
    assert config.msg_out_with_log is False
    assert config.default_instance == "MSSQL"


def test_build_node_config_rejects_bad_instances() -> None:
    """Instances must be mappings with string accounts."""
    with pytest.raises(ConfigError):
        build_node_config("n", {"DBMSInstances": {"X": "not a mapping"}})
    with pytest.raises(ConfigError):
        build_node_config("n", {"DBMSInstances": {"X": {"accounts": {"sa": 12}}}})


def test_deep_merge_merges_mappings_and_replaces_leaves() -> None:
    """Sibling keys merge; the most specific leaf wins."""
    target: dict[str, object] = {"a": {"b": 1, "c": 2}, "d": [1]}
    deep_merge(target, {"a": {"c": 3, "e": 4}, "d": [2]})
    assert target == {"a": {"b": 1, "c": 3, "e": 4}, "d": [2]}


def test_message_log_policy_follows_site(site: Path, env: dict[str, str], tmp_path: Path) -> None:
    """``toops.msgOut.withLog=false`` keeps info lines out of the log."""
    write_json(
        site / "toops.json",
        {"toops": {"logsDir": str(tmp_path / "logs"), "msgOut": {"withLog": False}}},
    )
    ctx = _ctx(env)
    load_configuration(ctx)
    ctx.info("stdout only")
    ctx.warn("logged warning")

    assert ctx.logger is not None
    log = ctx.logger.main_log_path.read_text(encoding="utf-8")
    assert "stdout only" not in log
    assert "logged warning" in log
