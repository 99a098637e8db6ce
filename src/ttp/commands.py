"""Command/verb runtime.

A command (``dbms``, ``daemon``, ...) is a console script whose first
argument names a verb. Verbs are registered once at startup in a
:class:`VerbRegistry`: each verb package holds one sub-package per command
and one ``<verb>.py`` module per verb. The built-in package is ``ttp.verbs``;
other distributions add theirs through the ``ttp.verbs`` entry-point group.

The selected verb module is imported in-process and its one-command ``app``
runs with the remaining arguments and the shared :class:`ExecutionContext`.
The process exit code is the number of errors reported during the run.
"""
from __future__ import annotations

import importlib
import os
import pkgutil
import sys
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from importlib.metadata import entry_points
from pathlib import Path
from types import ModuleType

import click
import typer

from .config import load_configuration
from .context import ExecutionContext, RunExit
from .exit_codes import ExitCode
from .helptext import help_command, help_verb
from .messages import Level

BUILTIN_VERB_PACKAGE = "ttp.verbs"
VERB_PACKAGES_GROUP = "ttp.verbs"
RESERVED_COMMANDS = frozenset({"bin", "config", "dyn", "libexec", "run", "verbs"})

BASE_DEFAULTS: dict[str, object] = {
    "help": "no",
    "colored": "no",
    "dummy": "no",
    "verbose": "no",
}

HELP_OPTION = typer.Option(False, "--help/--nohelp", help="print this message, and exit")
COLORED_OPTION = typer.Option(
    False,
    "--colored/--nocolored",
    help="color the output depending of the message level",
)
DUMMY_OPTION = typer.Option(False, "--dummy/--nodummy", help="dummy run")
VERBOSE_OPTION = typer.Option(False, "--verbose/--noverbose", help="run verbosely")


@dataclass(frozen=True)
class VerbEntry:
    """One registered verb."""

    command: str
    name: str
    module: str
    path: Path | None

    def load(self) -> ModuleType:
        """Import and return the verb module."""
        return importlib.import_module(self.module)


class VerbRegistry:
    """Startup table of the available commands and verbs."""

    def __init__(self, packages: Sequence[str]) -> None:
        self.packages = list(packages)
        self.failures: list[tuple[str, str]] = []
        self._command_paths: dict[str, Path | None] = {}
        self._verbs: dict[str, dict[str, VerbEntry]] = {}
        for package in self.packages:
            self._scan(package)

    @classmethod
    def discover(cls) -> VerbRegistry:
        """Return the registry of the built-in and advertised verb packages."""
        return cls(verb_packages())

    def _scan(self, package_name: str) -> None:
        try:
            package = importlib.import_module(package_name)
        except ImportError as exc:
            self.failures.append((package_name, str(exc)))
            return
        for info in pkgutil.iter_modules(getattr(package, "__path__", [])):
            if not info.ispkg or info.name.startswith("_") or info.name in RESERVED_COMMANDS:
                continue
            dotted = f"{package_name}.{info.name}"
            try:
                command_package = importlib.import_module(dotted)
            except ImportError as exc:
                self.failures.append((dotted, str(exc)))
                continue
            self._add_command(info.name, command_package)

    def _add_command(self, command: str, package: ModuleType) -> None:
        init_file = getattr(package, "__file__", None)
        self._command_paths.setdefault(command, Path(init_file) if init_file else None)
        verbs = self._verbs.setdefault(command, {})
        for location in getattr(package, "__path__", []):
            for info in pkgutil.iter_modules([location]):
                if info.ispkg or info.name.startswith("_") or info.name in verbs:
                    continue
                source = Path(location) / f"{info.name}.py"
                verbs[info.name] = VerbEntry(
                    command=command,
                    name=info.name,
                    module=f"{package.__name__}.{info.name}",
                    path=source if source.is_file() else None,
                )

    def commands(self) -> list[str]:
        """Return the registered command names, sorted."""
        return sorted(self._verbs)

    def command_path(self, command: str) -> Path | None:
        """Return the file carrying the one-liner of *command*."""
        return self._command_paths.get(command)

    def verbs(self, command: str) -> dict[str, VerbEntry]:
        """Return the verbs of *command*, keyed by name."""
        return dict(self._verbs.get(command, {}))

    def find(self, command: str, verb: str) -> VerbEntry | None:
        """Return the entry of ``<command> <verb>``, ``None`` when not registered."""
        return self._verbs.get(command, {}).get(verb)


def verb_packages() -> list[str]:
    """Return the built-in verb package followed by the advertised ones."""
    packages = [BUILTIN_VERB_PACKAGE]
    for entry in entry_points(group=VERB_PACKAGES_GROUP):
        if entry.module not in packages:
            packages.append(entry.module)
    return packages


def command_name(argv0: str) -> str:
    """Return the command name of the invoking script path."""
    return Path(argv0).stem


def print_lines(ctx: ExecutionContext, lines: Iterable[str]) -> None:
    for line in lines:
        ctx.printer.print(line, Level.INFO)


def echo(ctx: ExecutionContext, line: str) -> None:
    """Print a raw output line and mirror it into the daily log."""
    ctx.printer.print(line, Level.INFO)
    if ctx.logger is not None:
        ctx.logger.append(line)


def echo_value(ctx: ExecutionContext, label: str, value: object) -> None:
    """Print *value* as ``<label>: <value>`` lines, one per leaf."""
    if isinstance(value, Mapping):
        for key, item in value.items():
            echo_value(ctx, f"{label},{key}", item)
    elif isinstance(value, list):
        for index, item in enumerate(value):
            echo_value(ctx, f"{label},{index}", item)
    else:
        echo(ctx, f" {label}: {'' if value is None else value}")


def render_verb_help(ctx: ExecutionContext, defaults: Mapping[str, object] | None = None) -> None:
    """Print the full help of the running verb."""
    values = {**BASE_DEFAULTS, **(defaults or {})}
    print_lines(ctx, help_verb(ctx.command or "", ctx.command_path, ctx.verb or "", ctx.verb_path, values))


def begin_verb(
    typer_ctx: typer.Context,
    defaults: Mapping[str, object],
    *,
    help_: bool,
    colored: bool,
    dummy: bool,
    verbose: bool,
) -> ExecutionContext | None:
    """Apply the baseline flags to the run context.

    Returns ``None`` after rendering the verb help when ``--help`` is given.
    """
    ctx = typer_ctx.obj
    if not isinstance(ctx, ExecutionContext):
        raise RuntimeError("verb invoked without an execution context")
    ctx.colored = colored
    ctx.dummy_run = dummy
    ctx.verbose_enabled = verbose
    if help_:
        render_verb_help(ctx, defaults)
        return None
    ctx.verbose(f"found colored='{colored}'")
    ctx.verbose(f"found dummy='{dummy}'")
    ctx.verbose(f"found verbose='{verbose}'")
    return ctx


def invoke_verb(ctx: ExecutionContext, entry: VerbEntry, args: Sequence[str]) -> None:
    """Load the verb module of *entry* and run it with *args*."""
    try:
        module = entry.load()
    except ImportError as exc:
        ctx.error(f"unable to load '{entry.module}': {exc}")
        return
    app = getattr(module, "app", None)
    if not isinstance(app, typer.Typer):
        ctx.error(f"'{entry.module}' doesn't provide a verb application")
        return
    defaults = getattr(module, "DEFAULTS", {})
    if not args:
        render_verb_help(ctx, defaults)
        return
    command = typer.main.get_command(app)
    try:
        command.main(
            args=list(args),
            prog_name=f"{ctx.command} {ctx.verb}",
            standalone_mode=False,
            obj=ctx,
        )
    except click.ClickException as exc:
        ctx.error(exc.format_message())
        ctx.info(f"try '{ctx.command} {ctx.verb} --help' to get full usage syntax")
        ctx.exit(int(ExitCode.USAGE))
    except click.exceptions.Abort:
        ctx.error("aborted")


def run_verb(ctx: ExecutionContext, entry: VerbEntry, args: Sequence[str]) -> None:
    """Run *entry*, recording the outcome in the operations log."""
    if ctx.logger is None:
        invoke_verb(ctx, entry, args)
        return
    errors = ctx.errors
    pending: RunExit | None = None
    with ctx.logger.operation(
        f"{entry.command} {entry.name}",
        args={"argv": list(args), "dummy": ctx.dummy_run},
        target={"kind": "verb", "module": entry.module},
    ) as op:
        try:
            invoke_verb(ctx, entry, args)
        except RunExit as exc:
            pending = exc
        reported = ctx.errors - errors
        rc = pending.code if pending is not None else ctx.errors
        if reported or rc:
            op.error(f"{reported} error(s) reported", rc=rc)
        else:
            op.success("completed", changed=0)
    if pending is not None:
        raise pending


def dispatch(ctx: ExecutionContext, tokens: Sequence[str], registry: VerbRegistry | None = None) -> None:
    """Run the command state machine; always ends with :meth:`ExecutionContext.exit`."""
    command = ctx.command or ""
    if command in RESERVED_COMMANDS:
        ctx.error(f"command '{command}' is a reserved word. Aborting.")
        ctx.exit()
    load_configuration(ctx)
    ctx.log(" ".join(["executing", command, *tokens]))
    verbs = registry if registry is not None else VerbRegistry.discover()
    ctx.verbs = verbs
    for package, reason in verbs.failures:
        ctx.warn(f"unable to register verbs from '{package}': {reason}")
    if command not in verbs.commands():
        ctx.error(f"command '{command}' doesn't have any registered verb")
        ctx.exit()
    ctx.command_path = verbs.command_path(command)
    if not tokens:
        table = {name: entry.path for name, entry in verbs.verbs(command).items()}
        print_lines(ctx, help_command(command, ctx.command_path, table))
        ctx.exit()
    verb, args = tokens[0], list(tokens[1:])
    ctx.verb = verb
    entry = verbs.find(command, verb)
    if entry is None:
        ctx.error(f"verb not found: '{command} {verb}' (most probably, '{verb}' is not a valid verb)")
        ctx.exit()
    ctx.verb_path = entry.path
    run_verb(ctx, entry, args)
    ctx.exit()


def run(
    argv: Sequence[str] | None = None,
    *,
    registry: VerbRegistry | None = None,
    env: Mapping[str, str] | None = None,
    command: str | None = None,
    clock: Callable[[], datetime] | None = None,
) -> int:
    """Run one command invocation and return its exit code.

    Args:
        argv: The full argument vector, ``argv[0]`` naming the command.
        registry: The verb table; discovered when omitted.
        env: The environment; ``os.environ`` when omitted.
        command: Overrides the command name derived from ``argv[0]``.
        clock: The run clock; ``datetime.now`` when omitted.
    """
    vector = list(sys.argv if argv is None else argv)
    name = command or (command_name(vector[0]) if vector else "")
    ctx = ExecutionContext(
        command=name,
        env=dict(os.environ if env is None else env),
        args=vector[1:],
        clock=clock or datetime.now,
    )
    try:
        dispatch(ctx, vector[1:], registry)
    except RunExit as exc:
        return exc.code
    return ctx.errors


__all__ = [
    "BASE_DEFAULTS",
    "COLORED_OPTION",
    "DUMMY_OPTION",
    "HELP_OPTION",
    "RESERVED_COMMANDS",
    "VERBOSE_OPTION",
    "VerbEntry",
    "VerbRegistry",
    "begin_verb",
    "command_name",
    "dispatch",
    "echo",
    "echo_value",
    "render_verb_help",
    "run",
    "run_verb",
    "verb_packages",
]
