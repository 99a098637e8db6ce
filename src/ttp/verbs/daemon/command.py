# @(#) send a command to a running daemon
#
# @(-) --[no]help              print this message, and exit [${help}]
# @(-) --[no]colored           color the output depending of the message level [${colored}]
# @(-) --[no]dummy             dummy run [${dummy}]
# @(-) --[no]verbose           run verbosely [${verbose}]
# @(-) --json=<filename>       the JSON file which characterizes this daemon [${json}]
# @(-) --bname=<name>          the JSON file basename [${bname}]
# @(-) --port=<port>           the port number to address [${port}]
# @(-) --command=<command>     the command to be sent to the daemon [${command}]
#
# @(@) The command line is sent verbatim; the daemon answers with one or more lines terminated by 'OK'.
"""Send one command line to a daemon and print its answer."""
from __future__ import annotations

import typer

from ...commands import COLORED_OPTION, DUMMY_OPTION, HELP_OPTION, VERBOSE_OPTION, begin_verb, echo
from ...context import ExecutionContext
from ...daemon import DaemonError, answer_is_ok, send_command
from ._common import select_port

DEFAULTS: dict[str, object] = {
    "json": "",
    "bname": "",
    "port": "",
    "command": "",
}

app = typer.Typer(add_completion=False)


def do_send(ctx: ExecutionContext, port: int, command: str) -> None:
    if ctx.dummy_run:
        ctx.dummy("OK")
    else:
        try:
            answer = send_command(port, command)
        except DaemonError as exc:
            ctx.error(str(exc))
        else:
            ctx.verbose(f"sent '{command}' to port {port}")
            for line in answer.splitlines():
                echo(ctx, line)
            if not answer_is_ok(answer):
                ctx.warn("the daemon answer is not acknowledged")
    if ctx.has_errors():
        ctx.error("NOT OK")
    else:
        ctx.info("success")


@app.command(add_help_option=False)
def command(
    typer_ctx: typer.Context,
    help_: bool = HELP_OPTION,
    colored: bool = COLORED_OPTION,
    dummy: bool = DUMMY_OPTION,
    verbose: bool = VERBOSE_OPTION,
    json: str | None = typer.Option(None, "--json", help="the JSON file which characterizes this daemon"),
    bname: str | None = typer.Option(None, "--bname", help="the JSON file basename"),
    port: int | None = typer.Option(None, "--port", help="the port number to address"),
    command_: str | None = typer.Option(None, "--command", help="the command to be sent to the daemon"),
) -> None:
    ctx = begin_verb(typer_ctx, DEFAULTS, help_=help_, colored=colored, dummy=dummy, verbose=verbose)
    if ctx is None:
        return
    ctx.verbose(f"found json='{json or ''}' bname='{bname or ''}' port='{'' if port is None else port}'")
    ctx.verbose(f"found command='{command_ or ''}'")

    target = select_port(ctx, json=json, bname=bname, port=port)
    if not command_:
        ctx.error("'--command' option is mandatory, but is not specified")

    if ctx.has_errors() or target is None or not command_:
        return
    do_send(ctx, target, command_)
