# @(#) list various TTP objects
#
# @(-) --[no]help              print this message, and exit [${help}]
# @(-) --[no]colored           color the output depending of the message level [${colored}]
# @(-) --[no]dummy             dummy run (ignored here) [${dummy}]
# @(-) --[no]verbose           run verbosely [${verbose}]
# @(-) --[no]commands          list the available commands [${commands}]
# @(-) --[no]services          list the defined services on this host [${services}]
"""List the registered commands or the services of the node."""
from __future__ import annotations

import typer

from ...commands import (
    COLORED_OPTION,
    DUMMY_OPTION,
    HELP_OPTION,
    VERBOSE_OPTION,
    VerbRegistry,
    begin_verb,
    echo,
)
from ...context import ExecutionContext
from ...helptext import command_one_liner
from ...services import defined_services

DEFAULTS: dict[str, object] = {
    "commands": "no",
    "services": "no",
}

app = typer.Typer(add_completion=False)


def list_commands(ctx: ExecutionContext) -> None:
    ctx.info("displaying available commands...")
    registry = ctx.verbs if ctx.verbs is not None else VerbRegistry.discover()
    names = registry.commands()
    for name in names:
        echo(ctx, f" {command_one_liner(name, registry.command_path(name))}")
    ctx.info(f"{len(names)} found command(s)")


def list_services(ctx: ExecutionContext) -> None:
    ctx.info(f"displaying services defined on {ctx.host}...")
    names = defined_services(ctx)
    for name in names:
        echo(ctx, f" {name}")
    ctx.info(f"{len(names)} found defined service(s)")


@app.command(add_help_option=False)
def list_(
    typer_ctx: typer.Context,
    help_: bool = HELP_OPTION,
    colored: bool = COLORED_OPTION,
    dummy: bool = DUMMY_OPTION,
    verbose: bool = VERBOSE_OPTION,
    commands: bool = typer.Option(False, "--commands/--nocommands", help="list the available commands"),
    services: bool = typer.Option(False, "--services/--noservices", help="list the defined services"),
) -> None:
    ctx = begin_verb(typer_ctx, DEFAULTS, help_=help_, colored=colored, dummy=dummy, verbose=verbose)
    if ctx is None:
        return
    ctx.verbose(f"found commands='{commands}' services='{services}'")
    if commands:
        list_commands(ctx)
    if services:
        list_services(ctx)
