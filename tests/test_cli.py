"""Console entry point tests."""
from __future__ import annotations

import sys
import tomllib
from pathlib import Path

import pytest

from ttp import cli

PYPROJECT = Path(__file__).resolve().parents[1] / "pyproject.toml"


def test_every_entry_point_is_a_console_script() -> None:
    """Exported entry points and declared console scripts match one to one."""
    scripts = tomllib.loads(PYPROJECT.read_text(encoding="utf-8"))["project"]["scripts"]
    targets = {target.split(":", 1)[1] for target in scripts.values() if target.startswith("ttp.cli:")}

    assert targets == set(cli.__all__)
    for name, target in scripts.items():
        assert target == f"ttp.cli:{name}_main"


def test_entry_point_fixes_the_command(monkeypatch: pytest.MonkeyPatch) -> None:
    """The command comes from the entry point, the verb from the arguments."""
    received: list[tuple[list[str], str | None]] = []

    def fake_run(argv: list[str], *, command: str | None = None) -> int:
        received.append((argv, command))
        return 3

    monkeypatch.setattr(cli, "run", fake_run)
    monkeypatch.setattr(sys, "argv", ["/opt/bin/anything", "list", "--commands"])

    with pytest.raises(SystemExit) as excinfo:
        cli.ttp_main()

    assert excinfo.value.code == 3
    assert received == [(["ttp", "list", "--commands"], "ttp")]
