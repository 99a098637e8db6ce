# @(#) list the services and the workloads of the node
#
# @(-) --[no]help              print this message, and exit [${help}]
# @(-) --[no]colored           color the output depending of the message level [${colored}]
# @(-) --[no]dummy             dummy run (ignored here) [${dummy}]
# @(-) --[no]verbose           run verbosely [${verbose}]
# @(-) --[no]services          list services defined on this machine [${services}]
# @(-) --[no]workloads         list workloads used on this machine [${workloads}]
# @(-) --[no]hidden            also display hidden services or workloads on hidden services [${hidden}]
#
# @(@) with:
# @(@)   services list --services [--hidden]     list services defined on the current machine, plus maybe the hidden ones
# @(@)   services list --workloads [--hidden]    list workloads defined on the current machine, plus maybe the hidden ones
"""List the services defined on the node and the workloads they use."""
from __future__ import annotations

import typer

from ...commands import COLORED_OPTION, DUMMY_OPTION, HELP_OPTION, VERBOSE_OPTION, begin_verb, echo
from ...context import ExecutionContext
from ...services import defined_services, used_workloads

DEFAULTS: dict[str, object] = {
    "services": "no",
    "workloads": "no",
    "hidden": "no",
}

app = typer.Typer(add_completion=False)


def list_services(ctx: ExecutionContext, hidden: bool) -> None:
    ctx.info(f"displaying services defined on {ctx.host}...")
    names = defined_services(ctx, hidden=hidden)
    for name in names:
        echo(ctx, f" {name}")
    ctx.info(f"{len(names)} found defined service(s)")


def list_workloads(ctx: ExecutionContext, hidden: bool) -> None:
    ctx.info(f"displaying workloads used on {ctx.host}...")
    names = used_workloads(ctx, hidden=hidden)
    for name in names:
        echo(ctx, f" {name}")
    ctx.info(f"{len(names)} found used workload(s)")


@app.command(add_help_option=False)
def list_(
    typer_ctx: typer.Context,
    help_: bool = HELP_OPTION,
    colored: bool = COLORED_OPTION,
    dummy: bool = DUMMY_OPTION,
    verbose: bool = VERBOSE_OPTION,
    services: bool = typer.Option(False, "--services/--noservices", help="list services defined on this machine"),
    workloads: bool = typer.Option(False, "--workloads/--noworkloads", help="list workloads used on this machine"),
    hidden: bool = typer.Option(False, "--hidden/--nohidden", help="also display hidden services"),
) -> None:
    ctx = begin_verb(typer_ctx, DEFAULTS, help_=help_, colored=colored, dummy=dummy, verbose=verbose)
    if ctx is None:
        return
    ctx.verbose(f"found services='{services}' workloads='{workloads}' hidden='{hidden}'")
    if services:
        list_services(ctx, hidden)
    if workloads:
        list_workloads(ctx, hidden)
