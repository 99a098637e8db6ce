"""Help rendering driven by tagged comments.

Command packages and verb modules document themselves with three comment
tags, each at the start of a line:

``# @(#) ``
    pre-usage text; the first such line is the one-liner,
``# @(-) ``
    one usage line per option, where ``${name}`` is replaced by the verb
    default of ``name``,
``# @(@) ``
    post-usage notes, printed verbatim.
"""
from __future__ import annotations

import re
from collections.abc import Mapping
from pathlib import Path

PRE_USAGE_TAG = "# @(#) "
USAGE_TAG = "# @(-) "
POST_USAGE_TAG = "# @(@) "

PLACEHOLDER_RE = re.compile(r"\$\{(\w+)\}")


def tagged_lines(path: Path | None, tag: str) -> list[str]:
    """Return the text following *tag* on the lines of *path* which start with it."""
    if path is None:
        return []
    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        return []
    return [line[len(tag) :].rstrip() for line in content.splitlines() if line.startswith(tag)]


def one_liner(path: Path | None) -> str:
    """Return the first pre-usage line of *path*, or an empty string."""
    lines = tagged_lines(path, PRE_USAGE_TAG)
    return lines[0] if lines else ""


def substitute_defaults(line: str, defaults: Mapping[str, object]) -> str:
    """Replace each ``${name}`` of *line* by the default value of ``name``."""

    def _value(match: re.Match[str]) -> str:
        value = defaults.get(match.group(1))
        return "" if value is None else str(value)

    return PLACEHOLDER_RE.sub(_value, line)


def command_one_liner(command: str, command_path: Path | None) -> str:
    """Return the ``<command>: <one-liner>`` line."""
    return f"{command}: {one_liner(command_path)}".rstrip()


def help_command(command: str, command_path: Path | None, verbs: Mapping[str, Path | None]) -> list[str]:
    """Return the command help: its one-liner, then one line per verb.

    Verbs are sorted case-insensitively.
    """
    lines = [command_one_liner(command, command_path)]
    for verb in sorted(verbs, key=lambda name: (name.lower(), name)):
        lines.append(f"  {verb}: {one_liner(verbs[verb])}".rstrip())
    return lines


def help_verb(
    command: str,
    command_path: Path | None,
    verb: str,
    verb_path: Path | None,
    defaults: Mapping[str, object] | None = None,
) -> list[str]:
    """Return the full help of *verb*."""
    values = defaults or {}
    lines = [command_one_liner(command, command_path)]
    pre_usage = tagged_lines(verb_path, PRE_USAGE_TAG)
    lines.append(f"  {verb}: {pre_usage[0] if pre_usage else ''}".rstrip())
    lines.extend(f"    {line}" for line in pre_usage[1:])
    lines.append(f"    Usage: {command} {verb} [options]")
    lines.append("    where available options are:")
    lines.extend(f"      {substitute_defaults(line, values)}" for line in tagged_lines(verb_path, USAGE_TAG))
    lines.extend(f"    {line}" for line in tagged_lines(verb_path, POST_USAGE_TAG))
    return lines


__all__ = [
    "POST_USAGE_TAG",
    "PRE_USAGE_TAG",
    "USAGE_TAG",
    "command_one_liner",
    "help_command",
    "help_verb",
    "one_liner",
    "substitute_defaults",
    "tagged_lines",
]
