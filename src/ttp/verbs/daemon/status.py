# @(#) get the running status of a TTP daemon
#
# @(-) --[no]help              print this message, and exit [${help}]
# @(-) --[no]colored           color the output depending of the message level [${colored}]
# @(-) --[no]dummy             dummy run [${dummy}]
# @(-) --[no]verbose           run verbosely [${verbose}]
# @(-) --json=<filename>       the JSON file which characterizes this daemon [${json}]
# @(-) --bname=<name>          the JSON file basename [${bname}]
# @(-) --port=<port>           the port number to address [${port}]
"""Ask a daemon for its status."""
from __future__ import annotations

import typer

from ...commands import COLORED_OPTION, DUMMY_OPTION, HELP_OPTION, VERBOSE_OPTION, begin_verb, echo
from ...context import ExecutionContext
from ._common import request, select_port

DEFAULTS: dict[str, object] = {
    "json": "",
    "bname": "",
    "port": "",
}

app = typer.Typer(add_completion=False)


def do_status(ctx: ExecutionContext, port: int) -> None:
    ctx.info("requesting the daemon for its status...")
    answer = request(ctx, port, "status")
    if answer is None:
        ctx.warn("no answer from the daemon")
        ctx.error("NOT OK")
        return
    for line in answer.splitlines():
        echo(ctx, line)
    ctx.info("done")


@app.command(add_help_option=False)
def status(
    typer_ctx: typer.Context,
    help_: bool = HELP_OPTION,
    colored: bool = COLORED_OPTION,
    dummy: bool = DUMMY_OPTION,
    verbose: bool = VERBOSE_OPTION,
    json: str | None = typer.Option(None, "--json", help="the JSON file which characterizes this daemon"),
    bname: str | None = typer.Option(None, "--bname", help="the JSON file basename"),
    port: int | None = typer.Option(None, "--port", help="the port number to address"),
) -> None:
    ctx = begin_verb(typer_ctx, DEFAULTS, help_=help_, colored=colored, dummy=dummy, verbose=verbose)
    if ctx is None:
        return
    ctx.verbose(f"found json='{json or ''}' bname='{bname or ''}' port='{'' if port is None else port}'")

    target = select_port(ctx, json=json, bname=bname, port=port)
    if ctx.has_errors() or target is None:
        return
    do_status(ctx, target)
