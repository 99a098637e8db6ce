"""Execution report tests."""
from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from pathlib import Path

import pytest

from conftest import NODE
from ttp.context import ExecutionContext
from ttp.reports import ExecutionReport, ReportError, write_json_atomic


def test_record_is_written_with_run_fields(make_ctx: Callable[..., ExecutionContext], tmp_path: Path) -> None:
    """The record gets the run fields and lands in the configured directory."""
    ctx = make_ctx("dbms", "backup", args=["--service", "billing"])
    record = ExecutionReport(ctx).record({"instance": "MSSQL", "database": "Billing", "mode": "full"})

    assert record is not None
    files = list((tmp_path / "reports").glob("*.json"))
    assert [path.name for path in files] == ["20240102030405000000.json"]
    written = json.loads(files[0].read_text(encoding="utf-8"))
    assert written == record
    assert written["cmdline"] == "dbms backup --service billing"
    assert written["host"] == NODE
    assert written["code"] == 0
    assert written["started"] == "2024-01-02 03:04:05.000000"
    assert written["dummy"] is False


def test_publisher_gets_topic_and_filtered_payload(make_ctx: Callable[..., ExecutionContext]) -> None:
    """The bus payload omits the excluded fields."""
    published: list[tuple[str, Mapping[str, object]]] = []
    ctx = make_ctx("dbms", "backup")
    report = ExecutionReport(ctx, publisher=lambda topic, payload: published.append((topic, payload)))

    report.record({"instance": "MSSQL", "database": "Billing", "output": "/b"}, topic=("MSSQL", "Billing"))

    topic, payload = published[0]
    assert topic == f"{NODE}/executionReport/dbms/backup/MSSQL/Billing"
    assert "instance" not in payload
    assert "host" not in payload
    assert payload["output"] == "/b"


def test_configured_excludes_replace_the_defaults(make_ctx: Callable[..., ExecutionContext]) -> None:
    """``executionReports.excludes`` overrides the default bus exclusions."""
    ctx = make_ctx("dbms", "backup")
    published: list[Mapping[str, object]] = []
    report = ExecutionReport(ctx, publisher=lambda _topic, payload: published.append(payload), excludes=["output"])
    report.record({"instance": "MSSQL", "output": "/b"})

    assert published[0]["instance"] == "MSSQL"
    assert "output" not in published[0]


def test_dummy_mode_does_not_write(
    make_ctx: Callable[..., ExecutionContext],
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Dummy runs only announce the report file."""
    ctx = make_ctx("dbms", "backup", dummy_run=True)
    record = ExecutionReport(ctx).record({"database": "Billing"})

    assert record is not None and record["dummy"] is True
    assert not (tmp_path / "reports").exists()
    assert "(DUM) writing execution report into" in capsys.readouterr().out


def test_write_failure_is_an_error(
    make_ctx: Callable[..., ExecutionContext],
    tmp_path: Path,
) -> None:
    """An unwritable directory reports an error and returns ``None``."""
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    ctx = make_ctx("dbms", "backup")

    assert ExecutionReport(ctx, directory=blocker / "reports").record({"database": "Billing"}) is None
    assert ctx.errors == 1


def test_write_json_atomic(tmp_path: Path) -> None:
    """The document is written whole, without leftover temporary files."""
    target = tmp_path / "nested" / "report.json"
    write_json_atomic(target, {"a": 1, "path": Path("/x")})

    assert json.loads(target.read_text(encoding="utf-8")) == {"a": 1, "path": "/x"}
    assert [path.name for path in target.parent.iterdir()] == ["report.json"]

    with pytest.raises(ReportError):
        write_json_atomic(target / "below-a-file.json", {})
