"""Comment-driven help rendering tests."""
from __future__ import annotations

from pathlib import Path

from ttp.helptext import command_one_liner, help_command, help_verb, one_liner, substitute_defaults, tagged_lines

VERB_SOURCE = """\
# @(#) back up a database
# @(#) the backup file name is computed when not given
# @(-) --[no]help              print this message, and exit [${help}]
# @(-) --output=<filename>     target file [${output}]
# @(@) Note: a differential backup needs a previous full one.
  # @(#) indented lines are not tags
\"\"\"Docstring.\"\"\"
"""


def _write(tmp_path: Path, name: str, content: str) -> Path:
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return path


def test_tagged_lines_and_one_liner(tmp_path: Path) -> None:
    """Only lines starting with the tag are collected, in order."""
    path = _write(tmp_path, "backup.py", VERB_SOURCE)
    assert tagged_lines(path, "# @(#) ") == [
        "back up a database",
        "the backup file name is computed when not given",
    ]
    assert one_liner(path) == "back up a database"
    assert one_liner(tmp_path / "missing.py") == ""
    assert one_liner(None) == ""


def test_substitute_defaults() -> None:
    """Placeholders take the verb defaults; unknown ones become empty."""
    assert substitute_defaults("[${help}] [${other}]", {"help": "no"}) == "[no] []"


def test_help_command_sorts_verbs_case_insensitively(tmp_path: Path) -> None:
    """Verbs are listed under the command one-liner, case-insensitively sorted."""
    command = _write(tmp_path, "__init__.py", "# @(#) manage DBMS\n")
    verbs = {
        "restore": _write(tmp_path, "restore.py", "# @(#) restore a database\n"),
        "Backup": _write(tmp_path, "Backup.py", "# @(#) back up\n"),
        "list": None,
    }

    assert help_command("dbms", command, verbs) == [
        "dbms: manage DBMS",
        "  Backup: back up",
        "  list:",
        "  restore: restore a database",
    ]
    assert command_one_liner("dbms", None) == "dbms:"


def test_help_verb_layout(tmp_path: Path) -> None:
    """The verb help lists the pre-usage, usage and post-usage lines."""
    command = _write(tmp_path, "__init__.py", "# @(#) manage DBMS\n")
    verb = _write(tmp_path, "backup.py", VERB_SOURCE)

    lines = help_verb("dbms", command, "backup", verb, {"help": "no", "output": "DEFAULT"})
    assert lines == [
        "dbms: manage DBMS",
        "  backup: back up a database",
        "    the backup file name is computed when not given",
        "    Usage: dbms backup [options]",
        "    where available options are:",
        "      --[no]help              print this message, and exit [no]",
        "      --output=<filename>     target file [DEFAULT]",
        "    Note: a differential backup needs a previous full one.",
    ]
